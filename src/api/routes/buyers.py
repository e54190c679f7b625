import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.database import get_db
from src.models.database import Buyer as DBBuyer, Order as DBOrder, utcnow
from src.models.schemas import Buyer, BuyerCreate, BuyerUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=Buyer)
async def create_buyer(buyer_data: BuyerCreate, db: Session = Depends(get_db)):
    """Register a buyer"""
    buyer = DBBuyer(**buyer_data.model_dump(), created_at=utcnow())
    db.add(buyer)
    db.commit()
    db.refresh(buyer)
    return buyer


@router.get("/", response_model=List[Buyer])
async def get_buyers(db: Session = Depends(get_db)):
    """Get all buyers"""
    return db.query(DBBuyer).all()


@router.get("/{buyer_id}", response_model=Buyer)
async def get_buyer(buyer_id: UUID, db: Session = Depends(get_db)):
    """Get a specific buyer"""
    buyer = db.get(DBBuyer, buyer_id)
    if not buyer:
        raise HTTPException(status_code=404, detail="Buyer not found")
    return buyer


@router.put("/{buyer_id}", response_model=Buyer)
async def update_buyer(buyer_id: UUID, buyer_data: BuyerUpdate, db: Session = Depends(get_db)):
    """Change the fields given in the request; the rest stay as they are"""
    buyer = db.get(DBBuyer, buyer_id)
    if not buyer:
        raise HTTPException(status_code=404, detail="Buyer not found")

    for field, value in buyer_data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(buyer, field, value)
    db.commit()
    db.refresh(buyer)
    return buyer


@router.delete("/{buyer_id}", response_model=Buyer)
async def delete_buyer(buyer_id: UUID, db: Session = Depends(get_db)):
    """Delete a buyer that has no orders"""
    buyer = db.get(DBBuyer, buyer_id)
    if not buyer:
        raise HTTPException(status_code=404, detail="Buyer not found")
    if db.query(DBOrder.id).filter(DBOrder.buyer_id == buyer_id).first() is not None:
        raise HTTPException(status_code=400, detail="Buyer has orders and cannot be deleted")

    deleted = Buyer.model_validate(buyer)
    db.delete(buyer)
    try:
        db.commit()
    except IntegrityError as e:
        # An order was placed for the buyer after the check above
        db.rollback()
        logger.warning(f"Buyer {buyer_id} not deleted: {e.orig}")
        raise HTTPException(status_code=400, detail="Buyer has orders and cannot be deleted")
    logger.info(f"Buyer {buyer_id} deleted")
    return deleted
