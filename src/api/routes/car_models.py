import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import extract
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.database import get_db
from src.models.database import CarInventory as DBCarInventory
from src.models.database import CarModel as DBCarModel
from src.models.database import OrderItem as DBOrderItem
from src.models.schemas import CarModel, CarModelCreate, CarModelUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=CarModel)
async def create_car_model(car_data: CarModelCreate, db: Session = Depends(get_db)):
    """Add a car model to the catalog"""
    values = car_data.model_dump()
    values["price"] = Decimal(str(car_data.price))
    car_model = DBCarModel(**values)
    db.add(car_model)
    db.commit()
    db.refresh(car_model)
    return car_model


@router.get("/", response_model=List[CarModel])
async def get_car_models(db: Session = Depends(get_db)):
    """Get the whole catalog"""
    return db.query(DBCarModel).all()


@router.get("/search", response_model=List[CarModel])
async def search_car_models(
    car_model_id: Optional[UUID] = None,
    manufacturer: Optional[str] = None,
    model_name: Optional[str] = None,
    country: Optional[str] = None,
    color: Optional[str] = None,
    production_date: Optional[datetime] = None,
    price: Optional[float] = Query(None, gt=0),
    db: Session = Depends(get_db)
):
    """
    Search the catalog.

    Text filters match case-insensitively anywhere in the value, the
    production date matches by year and the price exactly. Filters that are
    not given are ignored.
    """
    if car_model_id is not None and db.get(DBCarModel, car_model_id) is None:
        raise HTTPException(status_code=404, detail="Car model not found")

    query = db.query(DBCarModel)
    if car_model_id is not None:
        query = query.filter(DBCarModel.id == car_model_id)
    for column, value in (
        (DBCarModel.manufacturer, manufacturer),
        (DBCarModel.model_name, model_name),
        (DBCarModel.country, country),
        (DBCarModel.color, color),
    ):
        if value and value.strip():
            query = query.filter(column.ilike(f"%{value.strip()}%"))
    if production_date is not None:
        query = query.filter(extract("year", DBCarModel.production_date) == production_date.year)
    if price is not None:
        query = query.filter(DBCarModel.price == Decimal(str(price)))

    results = query.all()
    logger.info(f"Car model search found {len(results)} models")
    return results


@router.get("/{car_model_id}", response_model=CarModel)
async def get_car_model(car_model_id: UUID, db: Session = Depends(get_db)):
    """Get a specific car model"""
    car_model = db.get(DBCarModel, car_model_id)
    if not car_model:
        raise HTTPException(status_code=404, detail="Car model not found")
    return car_model


@router.put("/{car_model_id}", response_model=CarModel)
async def update_car_model(car_model_id: UUID, car_data: CarModelUpdate, db: Session = Depends(get_db)):
    """Change the fields given in the request; existing order lines keep their unit price"""
    car_model = db.get(DBCarModel, car_model_id)
    if not car_model:
        raise HTTPException(status_code=404, detail="Car model not found")

    changes = car_data.model_dump(exclude_unset=True, exclude_none=True)
    if "price" in changes:
        changes["price"] = Decimal(str(changes["price"]))
    for field, value in changes.items():
        setattr(car_model, field, value)
    db.commit()
    db.refresh(car_model)
    return car_model


@router.delete("/{car_model_id}", response_model=CarModel)
async def delete_car_model(car_model_id: UUID, db: Session = Depends(get_db)):
    """Delete a car model that has neither an inventory record nor order lines"""
    car_model = db.get(DBCarModel, car_model_id)
    if not car_model:
        raise HTTPException(status_code=404, detail="Car model not found")
    if db.query(DBCarInventory.id).filter(DBCarInventory.car_model_id == car_model_id).first() is not None:
        raise HTTPException(status_code=400, detail="Car model has an inventory record and cannot be deleted")
    if db.query(DBOrderItem.id).filter(DBOrderItem.car_model_id == car_model_id).first() is not None:
        raise HTTPException(status_code=400, detail="Car model is used in orders and cannot be deleted")

    deleted = CarModel.model_validate(car_model)
    db.delete(car_model)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Car model {car_model_id} not deleted: {e.orig}")
        raise HTTPException(status_code=400, detail="Car model is still referenced and cannot be deleted")
    logger.info(f"Car model {car_model_id} deleted")
    return deleted
