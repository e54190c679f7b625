import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.orm.attributes import flag_modified

from src.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Buyer(Base):
    """Customer placing orders"""
    __tablename__ = "buyers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    surname = Column(String, nullable=False)
    middlename = Column(String)
    email = Column(String, nullable=False)
    phone_number = Column(String)
    address = Column(String)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    orders = relationship("Order", back_populates="buyer")


class Employee(Base):
    """Dealership employee handling orders"""
    __tablename__ = "employees"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    surname = Column(String, nullable=False)
    middlename = Column(String)
    age = Column(Integer)
    sell_counter = Column(Integer, default=0)
    login = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False, default="User")  # User or Admin

    orders = relationship("Order", back_populates="employee")


class CarModel(Base):
    """Catalog entry for a car; price is the current list price"""
    __tablename__ = "car_models"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    manufacturer = Column(String, nullable=False)
    model_name = Column(String, nullable=False)
    country = Column(String)
    color = Column(String)
    production_date = Column(DateTime(timezone=True))
    price = Column(Numeric(12, 2), nullable=False)
    configuration = Column(JSON)  # interior, wheel size, audio system
    engine = Column(JSON)  # volume, fuel type, power

    inventory = relationship("CarInventory", back_populates="car_model", uselist=False)


class CarInventory(Base):
    """Stock ledger entry: units of a car model available for reservation"""
    __tablename__ = "car_inventories"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_car_inventories_quantity_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    car_model_id = Column(Uuid, ForeignKey("car_models.id"), unique=True, index=True, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    car_model = relationship("CarModel", back_populates="inventory")


class Order(Base):
    """Order aggregate; owns its items and the derived total price"""
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completion_date = Column(DateTime(timezone=True))
    price = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    delivery_address = Column(JSON, nullable=False)
    buyer_id = Column(Uuid, ForeignKey("buyers.id"), nullable=False)
    employee_id = Column(Uuid, ForeignKey("employees.id"), nullable=False)
    # Bumped on every write; a stale writer fails its flush with StaleDataError
    version = Column(Integer, nullable=False, default=1)

    buyer = relationship("Buyer", back_populates="orders")
    employee = relationship("Employee", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    __mapper_args__ = {"version_id_col": version}

    def touch(self) -> None:
        """Force a versioned UPDATE of the order row even if no column changes"""
        flag_modified(self, "price")

    def recompute_total(self) -> Decimal:
        self.price = sum(
            (Decimal(item.unit_price) * item.quantity for item in self.items),
            Decimal("0"),
        )
        return self.price

    def add_item(
        self,
        car_model_id: uuid.UUID,
        quantity: int,
        unit_price: Decimal,
        comment: Optional[str] = None,
    ) -> "OrderItem":
        item = OrderItem(
            id=uuid.uuid4(),
            order_id=self.id,
            car_model_id=car_model_id,
            quantity=quantity,
            unit_price=unit_price,
            comment=comment,
            position=max((existing.position for existing in self.items), default=-1) + 1,
        )
        self.items.append(item)
        return item

    def find_item(self, order_item_id: uuid.UUID) -> Optional["OrderItem"]:
        return next((item for item in self.items if item.id == order_item_id), None)

    def remove_items(self, order_item_ids: Iterable[uuid.UUID]) -> List["OrderItem"]:
        wanted = set(order_item_ids)
        removed = [item for item in self.items if item.id in wanted]
        for item in removed:
            self.items.remove(item)
        return removed


class OrderItem(Base):
    """Order line; unit_price is the car model price captured at reservation time"""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False)
    car_model_id = Column(Uuid, ForeignKey("car_models.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    comment = Column(String(500))
    position = Column(Integer, nullable=False, default=0)

    order = relationship("Order", back_populates="items")
    car_model = relationship("CarModel")


class IdempotencyRequest(Base):
    """Outcome of a request handled under a client-supplied idempotency key"""
    __tablename__ = "idempotency_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    key = Column(String(100), unique=True, index=True, nullable=False)
    status = Column(String(50), nullable=False, default="Completed")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(Uuid)
    response_json = Column(String)
