from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_idempotency_key, get_order_service
from src.api.results import unwrap
from src.models.schemas import Order, OrderItemCreate, OrderItemsAdd, OrderItemUpdate
from src.services.order_service import OrderWorkflowService

router = APIRouter()


@router.post("/{order_id}/items", response_model=Order)
async def add_order_item(
    order_id: UUID,
    item_data: OrderItemCreate,
    idempotency_key: str = Depends(get_idempotency_key),
    service: OrderWorkflowService = Depends(get_order_service),
):
    """Add one item to an order"""
    return unwrap(await service.add_item(idempotency_key, order_id, item_data))


@router.post("/{order_id}/items/batch", response_model=Order)
async def add_order_items(
    order_id: UUID,
    items_data: OrderItemsAdd,
    idempotency_key: str = Depends(get_idempotency_key),
    service: OrderWorkflowService = Depends(get_order_service),
):
    """Add several items to an order; either all of them are added or none"""
    return unwrap(await service.add_items(idempotency_key, order_id, items_data))


@router.put("/{order_id}/items/{order_item_id}", response_model=Order)
async def edit_order_item(
    order_id: UUID,
    order_item_id: UUID,
    item_data: OrderItemUpdate,
    idempotency_key: str = Depends(get_idempotency_key),
    service: OrderWorkflowService = Depends(get_order_service),
):
    """Change car model, quantity or comment of an order item"""
    return unwrap(await service.edit_item(idempotency_key, order_id, order_item_id, item_data))


@router.delete("/{order_id}/items", response_model=Order)
async def remove_order_items(
    order_id: UUID,
    item_id: List[UUID] = Query(...),
    idempotency_key: str = Depends(get_idempotency_key),
    service: OrderWorkflowService = Depends(get_order_service),
):
    """Remove items from an order and release their stock"""
    return unwrap(await service.remove_items(idempotency_key, order_id, item_id))
