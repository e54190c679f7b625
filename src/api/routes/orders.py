from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from src.api.dependencies import get_idempotency_key, get_order_query_service, get_order_service
from src.api.results import unwrap
from src.models.schemas import Order, OrderCreate, OrderUpdate
from src.services.order_queries import OrderQueryService
from src.services.order_service import OrderWorkflowService

router = APIRouter()


@router.post("/", response_model=Order)
async def create_order(
    order_data: OrderCreate,
    idempotency_key: str = Depends(get_idempotency_key),
    service: OrderWorkflowService = Depends(get_order_service),
):
    """Place an order, reserving stock for every item"""
    return unwrap(await service.create_order(idempotency_key, order_data))


@router.get("/", response_model=List[Order])
async def get_orders(queries: OrderQueryService = Depends(get_order_query_service)):
    """Get all orders"""
    return unwrap(await queries.get_all_orders())


@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: UUID, queries: OrderQueryService = Depends(get_order_query_service)):
    """Get a specific order"""
    return unwrap(await queries.get_order(order_id))


@router.put("/{order_id}", response_model=Order)
async def edit_order(
    order_id: UUID,
    order_data: OrderUpdate,
    idempotency_key: str = Depends(get_idempotency_key),
    service: OrderWorkflowService = Depends(get_order_service),
):
    """Change delivery details, buyer or employee of an order"""
    return unwrap(await service.edit_order(idempotency_key, order_id, order_data))


@router.delete("/{order_id}", response_model=Order)
async def delete_order(
    order_id: UUID,
    idempotency_key: str = Depends(get_idempotency_key),
    service: OrderWorkflowService = Depends(get_order_service),
):
    """Delete an order and return its reserved stock to inventory"""
    return unwrap(await service.delete_order(idempotency_key, order_id))
