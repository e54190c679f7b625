from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _ensure_future(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return value
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if aware <= datetime.now(timezone.utc):
        raise ValueError("Completion date must be in the future")
    return aware


class OrderAddress(BaseModel):
    country: str = Field(min_length=1)
    region: str = Field(min_length=1)
    city: str = Field(min_length=1)
    street: str = Field(min_length=1)


# Catalog

class BuyerCreate(BaseModel):
    name: str
    surname: str
    middlename: Optional[str] = None
    email: str
    phone_number: Optional[str] = None
    address: Optional[str] = None


class BuyerUpdate(BaseModel):
    name: Optional[str] = None
    surname: Optional[str] = None
    middlename: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None


class Buyer(BuyerCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime


class EmployeeCreate(BaseModel):
    name: str
    surname: str
    middlename: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=18)
    login: str
    role: str = "User"


class EmployeeUpdate(BaseModel):
    name: Optional[str] = None
    surname: Optional[str] = None
    middlename: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=18)
    login: Optional[str] = None
    role: Optional[str] = None


class Employee(EmployeeCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sell_counter: Optional[int] = None


class CarModelCreate(BaseModel):
    manufacturer: str
    model_name: str
    country: Optional[str] = None
    color: Optional[str] = None
    production_date: Optional[datetime] = None
    price: float = Field(gt=0)
    configuration: Optional[Dict[str, Any]] = None
    engine: Optional[Dict[str, Any]] = None


class CarModelUpdate(BaseModel):
    manufacturer: Optional[str] = None
    model_name: Optional[str] = None
    country: Optional[str] = None
    color: Optional[str] = None
    production_date: Optional[datetime] = None
    price: Optional[float] = Field(default=None, gt=0)
    configuration: Optional[Dict[str, Any]] = None
    engine: Optional[Dict[str, Any]] = None


class CarModel(CarModelCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID


# Inventory

class CarInventoryCreate(BaseModel):
    car_model_id: UUID
    quantity: int = Field(ge=0)


class CarInventoryUpdate(BaseModel):
    quantity: int = Field(ge=0)


class CarInventory(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    car_model_id: UUID
    quantity: int
    last_updated: datetime


class Availability(BaseModel):
    car_model_id: UUID
    requested_quantity: int
    is_available: bool
    available_quantity: int


# Order commands

class OrderItemCreate(BaseModel):
    car_model_id: UUID
    quantity: int = Field(gt=0)
    comment: Optional[str] = Field(default=None, max_length=500)


class OrderCreate(BaseModel):
    buyer_id: UUID
    employee_id: UUID
    delivery_address: OrderAddress
    completion_date: Optional[datetime] = None
    items: List[OrderItemCreate] = []

    @field_validator("completion_date")
    @classmethod
    def completion_date_in_future(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_future(value)


class OrderUpdate(BaseModel):
    delivery_address: Optional[OrderAddress] = None
    completion_date: Optional[datetime] = None
    buyer_id: Optional[UUID] = None
    employee_id: Optional[UUID] = None

    @field_validator("completion_date")
    @classmethod
    def completion_date_in_future(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_future(value)


class OrderItemsAdd(BaseModel):
    items: List[OrderItemCreate] = Field(min_length=1)


class OrderItemUpdate(BaseModel):
    car_model_id: Optional[UUID] = None
    quantity: Optional[int] = Field(default=None, gt=0)
    comment: Optional[str] = Field(default=None, max_length=500)


# Order views

class OrderItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    car_model_id: UUID
    quantity: int
    unit_price: float
    comment: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    completion_date: Optional[datetime] = None
    price: float
    delivery_address: OrderAddress
    buyer_id: UUID
    employee_id: UUID
    items: List[OrderItem] = []


# Events

class OrderCreatedEvent(BaseModel):
    order_id: UUID
    buyer_id: UUID
    total_amount: float
    created_at: datetime


class OrderDeletedEvent(OrderCreatedEvent):
    pass
