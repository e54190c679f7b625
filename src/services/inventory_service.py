import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.models.database import CarInventory, utcnow
from src.services.results import InsufficientStockError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    is_available: bool
    available_quantity: int


class InventoryService:
    """
    Stock ledger for car models.

    Mutations run on the caller's session and never commit, so they belong to
    the transaction of the order write they support. ``decrease`` is a single
    conditional UPDATE: the row is only touched while enough stock remains,
    which keeps concurrent reservations of the last units from overselling
    without relying on an earlier availability read.
    """

    def __init__(self, db: Session):
        self.db = db

    def _current_quantity(self, car_model_id: UUID) -> Optional[int]:
        return self.db.execute(
            select(CarInventory.quantity).where(CarInventory.car_model_id == car_model_id)
        ).scalar_one_or_none()

    def check_availability(self, car_model_id: UUID, requested_quantity: int) -> AvailabilityResult:
        quantity = self._current_quantity(car_model_id)
        if quantity is None:
            return AvailabilityResult(is_available=False, available_quantity=0)
        return AvailabilityResult(
            is_available=quantity >= requested_quantity,
            available_quantity=quantity,
        )

    def decrease(self, car_model_id: UUID, quantity: int, field: Optional[str] = "quantity") -> None:
        updated = self.db.execute(
            update(CarInventory)
            .where(
                CarInventory.car_model_id == car_model_id,
                CarInventory.quantity >= quantity,
            )
            .values(quantity=CarInventory.quantity - quantity, last_updated=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount

        if updated == 0:
            available = self._current_quantity(car_model_id) or 0
            raise InsufficientStockError(car_model_id, quantity, available, field)

        logger.info(f"Reserved {quantity} unit(s) of car model {car_model_id}")

    def increase(self, car_model_id: UUID, quantity: int) -> None:
        updated = self.db.execute(
            update(CarInventory)
            .where(CarInventory.car_model_id == car_model_id)
            .values(quantity=CarInventory.quantity + quantity, last_updated=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount

        if updated == 0:
            raise NotFoundError(
                f"No inventory record for car model {car_model_id}", "car_model_id"
            )

        logger.info(f"Released {quantity} unit(s) of car model {car_model_id}")

    # Inventory record management

    def get(self, car_model_id: UUID) -> Optional[CarInventory]:
        return self.db.execute(
            select(CarInventory).where(CarInventory.car_model_id == car_model_id)
        ).scalar_one_or_none()

    def list_records(self) -> List[CarInventory]:
        return list(self.db.execute(select(CarInventory)).scalars())

    def create(self, car_model_id: UUID, quantity: int) -> CarInventory:
        record = CarInventory(car_model_id=car_model_id, quantity=quantity, last_updated=utcnow())
        self.db.add(record)
        self.db.flush()
        return record

    def set_quantity(self, record: CarInventory, quantity: int) -> CarInventory:
        record.quantity = quantity
        record.last_updated = utcnow()
        self.db.flush()
        return record

    def delete(self, record: CarInventory) -> None:
        self.db.delete(record)
        self.db.flush()
        logger.info(f"Inventory record of car model {record.car_model_id} deleted")
