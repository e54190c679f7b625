import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.database import get_db
from src.models.database import CarModel as DBCarModel
from src.models.schemas import Availability, CarInventory, CarInventoryCreate, CarInventoryUpdate
from src.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter()

RECORD_EXISTS = "Inventory record for this car model already exists"


@router.post("/", response_model=CarInventory)
async def create_inventory_record(record_data: CarInventoryCreate, db: Session = Depends(get_db)):
    """Create the stock record of a car model"""
    if db.get(DBCarModel, record_data.car_model_id) is None:
        raise HTTPException(status_code=404, detail="Car model not found")

    service = InventoryService(db)
    if service.get(record_data.car_model_id) is not None:
        raise HTTPException(status_code=400, detail=RECORD_EXISTS)

    try:
        record = service.create(record_data.car_model_id, record_data.quantity)
        db.commit()
    except IntegrityError as e:
        # Another request created the record after the check above
        db.rollback()
        logger.warning(f"Inventory record of car model {record_data.car_model_id} created concurrently: {e.orig}")
        raise HTTPException(status_code=400, detail=RECORD_EXISTS)
    db.refresh(record)
    return record


@router.get("/", response_model=List[CarInventory])
async def get_inventory_records(db: Session = Depends(get_db)):
    """Get all inventory records"""
    return InventoryService(db).list_records()


@router.get("/{car_model_id}", response_model=CarInventory)
async def get_inventory_record(car_model_id: UUID, db: Session = Depends(get_db)):
    """Get the stock record of a car model"""
    record = InventoryService(db).get(car_model_id)
    if not record:
        raise HTTPException(status_code=404, detail="Inventory record not found")
    return record


@router.put("/{car_model_id}", response_model=CarInventory)
async def update_inventory_record(
    car_model_id: UUID,
    record_data: CarInventoryUpdate,
    db: Session = Depends(get_db)
):
    """Restock: set the available quantity of a car model"""
    service = InventoryService(db)
    record = service.get(car_model_id)
    if not record:
        raise HTTPException(status_code=404, detail="Inventory record not found")

    service.set_quantity(record, record_data.quantity)
    db.commit()
    db.refresh(record)
    return record


@router.delete("/{car_model_id}", response_model=CarInventory)
async def delete_inventory_record(car_model_id: UUID, db: Session = Depends(get_db)):
    """Delete the stock record of a car model; it can no longer be ordered until a new record is created"""
    service = InventoryService(db)
    record = service.get(car_model_id)
    if not record:
        raise HTTPException(status_code=404, detail="Inventory record not found")

    deleted = CarInventory.model_validate(record)
    service.delete(record)
    db.commit()
    return deleted


@router.get("/{car_model_id}/availability", response_model=Availability)
async def check_availability(
    car_model_id: UUID,
    quantity: int = Query(1, gt=0),
    db: Session = Depends(get_db)
):
    """Check whether a quantity of a car model can be reserved right now"""
    availability = InventoryService(db).check_availability(car_model_id, quantity)
    return Availability(
        car_model_id=car_model_id,
        requested_quantity=quantity,
        is_available=availability.is_available,
        available_quantity=availability.available_quantity,
    )
