import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from src.models.database import Order as DBOrder
from src.models.schemas import Order
from src.services.results import ErrorDetail, INTERNAL_ERROR, NOT_FOUND, OperationResult

logger = logging.getLogger(__name__)

ALL_ORDERS_CACHE_KEY = "Order:all"


def order_cache_key(order_id: UUID) -> str:
    return f"Order:{order_id}"


class OrderQueryService:
    """Read side for orders with read-through caching"""

    def __init__(self, db: Session, cache):
        self.db = db
        self.cache = cache

    async def get_order(self, order_id: UUID) -> OperationResult[Order]:
        cache_key = order_cache_key(order_id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Order {order_id} served from cache")
            return OperationResult.success(Order.model_validate(cached))
        generation = self.cache.generation(cache_key)

        try:
            order = self.db.get(DBOrder, order_id)
            if order is None:
                logger.warning(f"Order {order_id} not found")
                return OperationResult.failure(
                    ErrorDetail(code=NOT_FOUND, message=f"Order with ID {order_id} not found", field="order_id")
                )
            result = Order.model_validate(order)
        except Exception as e:
            logger.exception(f"Error loading order {order_id}")
            return OperationResult.failure(
                ErrorDetail(code=INTERNAL_ERROR, message=str(e), field="GetOrderById")
            )

        self._store(cache_key, result.model_dump(mode="json"), generation)
        return OperationResult.success(result)

    async def get_all_orders(self) -> OperationResult[List[Order]]:
        cached = self.cache.get(ALL_ORDERS_CACHE_KEY)
        if cached is not None:
            logger.info(f"{len(cached)} order(s) served from cache")
            return OperationResult.success([Order.model_validate(order) for order in cached])
        generation = self.cache.generation(ALL_ORDERS_CACHE_KEY)

        try:
            orders = self.db.execute(
                select(DBOrder).options(selectinload(DBOrder.items)).order_by(DBOrder.created_at)
            ).scalars().all()
            result = [Order.model_validate(order) for order in orders]
        except Exception as e:
            logger.exception("Error loading orders")
            return OperationResult.failure(
                ErrorDetail(code=INTERNAL_ERROR, message=str(e), field="GetAllOrders")
            )

        self._store(ALL_ORDERS_CACHE_KEY, [order.model_dump(mode="json") for order in result], generation)
        logger.info(f"Loaded {len(result)} order(s)")
        return OperationResult.success(result)

    def _store(self, cache_key: str, value, generation: Optional[int]) -> None:
        # The generation is taken before the database read; a newer
        # invalidation makes the cache drop this write
        if generation is None:
            return
        self.cache.set(cache_key, value, generation=generation)
