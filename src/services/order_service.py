import logging
import uuid
from typing import Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.database import run_in_transaction
from src.models.database import Buyer, CarModel, Employee, utcnow
from src.models.database import Order as DBOrder
from src.models.schemas import (
    Order,
    OrderCreate,
    OrderItemCreate,
    OrderItemsAdd,
    OrderItemUpdate,
    OrderUpdate,
)
from src.services.idempotency_service import IdempotencyService
from src.services.inventory_service import InventoryService
from src.services.notifier import OrderEventNotifier
from src.services.order_queries import ALL_ORDERS_CACHE_KEY, order_cache_key
from src.services.results import (
    INTERNAL_ERROR,
    ErrorDetail,
    InsufficientStockError,
    NotFoundError,
    OperationResult,
    OrderWorkflowError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

ORDER_RESOURCE = "Order"


class OrderWorkflowService:
    """
    Order placement and order item mutations.

    Every mutating operation follows the same frame:

    1. A request whose idempotency key was already handled is answered from
       the current state of the order it produced, without side effects.
    2. The operation body, the inventory adjustments it makes and the
       idempotency record all commit in one transaction, re-run as a whole on
       transient database failures.
    3. Cache invalidation and event publication happen only after commit.

    Expected failures come back as failed results; nothing is raised to the
    caller.
    """

    def __init__(self, db: Session, cache, notifier: OrderEventNotifier):
        self.db = db
        self.cache = cache
        self.notifier = notifier
        self.inventory = InventoryService(db)
        self.idempotency = IdempotencyService(db)

    async def create_order(self, idempotency_key: str, command: OrderCreate) -> OperationResult[Order]:
        def body() -> Order:
            self._require(Buyer, command.buyer_id, "buyer_id", "Buyer")
            self._require(Employee, command.employee_id, "employee_id", "Employee")

            car_models: Dict[UUID, CarModel] = {}
            requested: Dict[UUID, int] = {}
            for item in command.items:
                car_models[item.car_model_id] = self._require(
                    CarModel, item.car_model_id, "items.car_model_id", "Car model"
                )
                requested[item.car_model_id] = requested.get(item.car_model_id, 0) + item.quantity

            for car_model_id, quantity in requested.items():
                self._ensure_available(car_model_id, quantity, "items.quantity")

            # Reserve stock only after every item passed validation
            order = DBOrder(
                id=uuid.uuid4(),
                created_at=utcnow(),
                completion_date=command.completion_date,
                delivery_address=command.delivery_address.model_dump(),
                buyer_id=command.buyer_id,
                employee_id=command.employee_id,
            )
            for item in command.items:
                self.inventory.decrease(item.car_model_id, item.quantity, "items.quantity")
                order.add_item(item.car_model_id, item.quantity, car_models[item.car_model_id].price, item.comment)

            order.recompute_total()
            self.db.add(order)
            return self._snapshot(order)

        return await self._execute("CreateOrder", idempotency_key, body, self.notifier.order_created)

    async def add_item(self, idempotency_key: str, order_id: UUID, command: OrderItemCreate) -> OperationResult[Order]:
        def body() -> Order:
            order = self._load_order(order_id)
            car_model = self._require(CarModel, command.car_model_id, "car_model_id", "Car model")
            self._reserve(car_model.id, command.quantity, "quantity")
            order.add_item(car_model.id, command.quantity, car_model.price, command.comment)
            order.recompute_total()
            return self._snapshot(order)

        return await self._execute("AddOrderItem", idempotency_key, body)

    async def add_items(self, idempotency_key: str, order_id: UUID, command: OrderItemsAdd) -> OperationResult[Order]:
        def body() -> Order:
            order = self._load_order(order_id)
            for item in command.items:
                car_model = self._require(CarModel, item.car_model_id, "items.car_model_id", "Car model")
                self._reserve(car_model.id, item.quantity, "items.quantity")
                order.add_item(car_model.id, item.quantity, car_model.price, item.comment)
            order.recompute_total()
            return self._snapshot(order)

        return await self._execute("AddOrderItems", idempotency_key, body)

    async def edit_item(
        self,
        idempotency_key: str,
        order_id: UUID,
        order_item_id: UUID,
        command: OrderItemUpdate,
    ) -> OperationResult[Order]:
        def body() -> Order:
            order = self._load_order(order_id)
            item = order.find_item(order_item_id)
            if item is None:
                raise NotFoundError(
                    f"Order item with ID {order_item_id} not found in order {order_id}", "order_item_id"
                )

            if command.car_model_id is None and command.quantity is None and command.comment is None:
                raise ValidationFailedError("Nothing to change: provide car_model_id, quantity or comment", "order_item")

            old_car_model_id = item.car_model_id
            old_quantity = item.quantity
            new_quantity = command.quantity if command.quantity is not None else old_quantity

            if command.car_model_id is not None and command.car_model_id != old_car_model_id:
                # Released units go back before the new model is reserved; a
                # failed reservation rolls the release back with the transaction
                self.inventory.increase(old_car_model_id, old_quantity)
                car_model = self._require(CarModel, command.car_model_id, "car_model_id", "Car model")
                self._reserve(car_model.id, new_quantity, "quantity")
                item.car_model_id = car_model.id
                item.unit_price = car_model.price
            else:
                delta = new_quantity - old_quantity
                if delta > 0:
                    self._reserve(old_car_model_id, delta, "quantity")
                elif delta < 0:
                    self.inventory.increase(old_car_model_id, -delta)

            item.quantity = new_quantity
            if command.comment is not None:
                item.comment = command.comment

            order.recompute_total()
            return self._snapshot(order)

        return await self._execute("EditOrderItem", idempotency_key, body)

    async def remove_items(
        self,
        idempotency_key: str,
        order_id: UUID,
        order_item_ids: List[UUID],
    ) -> OperationResult[Order]:
        def body() -> Order:
            order = self._load_order(order_id)
            removed = order.remove_items(order_item_ids)
            if not removed:
                raise NotFoundError(
                    f"None of the order items {[str(i) for i in order_item_ids]} belong to order {order_id}",
                    "order_item_ids",
                )
            for item in removed:
                self.inventory.increase(item.car_model_id, item.quantity)

            order.recompute_total()
            return self._snapshot(order)

        return await self._execute("DeleteOrderItems", idempotency_key, body)

    async def edit_order(self, idempotency_key: str, order_id: UUID, command: OrderUpdate) -> OperationResult[Order]:
        def body() -> Order:
            order = self._load_order(order_id)
            if command.buyer_id is not None:
                self._require(Buyer, command.buyer_id, "buyer_id", "Buyer")
                order.buyer_id = command.buyer_id
            if command.employee_id is not None:
                self._require(Employee, command.employee_id, "employee_id", "Employee")
                order.employee_id = command.employee_id
            if command.delivery_address is not None:
                order.delivery_address = command.delivery_address.model_dump()
            if command.completion_date is not None:
                order.completion_date = command.completion_date
            return self._snapshot(order)

        return await self._execute("EditOrder", idempotency_key, body)

    async def delete_order(self, idempotency_key: str, order_id: UUID) -> OperationResult[Order]:
        def body() -> Order:
            order = self._load_order(order_id)
            snapshot = Order.model_validate(order)
            # Deleting an order cancels its reservations
            for item in order.items:
                self.inventory.increase(item.car_model_id, item.quantity)
            self.db.delete(order)
            self.db.flush()
            return snapshot

        return await self._execute("DeleteOrder", idempotency_key, body, self.notifier.order_deleted)

    async def _execute(
        self,
        command_name: str,
        idempotency_key: str,
        body: Callable[[], Order],
        after_commit: Optional[Callable[[Order], None]] = None,
    ) -> OperationResult[Order]:
        logger.info(f"Processing {command_name} with idempotency key {idempotency_key}")

        def unit_of_work() -> Order:
            snapshot = body()
            self.idempotency.save(idempotency_key, ORDER_RESOURCE, snapshot.id, snapshot.model_dump_json())
            return snapshot

        try:
            replayed = self._replay(idempotency_key)
            if replayed is not None:
                return replayed

            snapshot = await run_in_transaction(self.db, unit_of_work)
        except OrderWorkflowError as e:
            logger.warning(f"{command_name} rejected: {e.message}")
            return OperationResult.failure(e.to_detail())
        except IntegrityError as e:
            # A concurrent request with the same key may have committed first
            try:
                replayed = self._replay(idempotency_key)
            except Exception:
                logger.exception(f"Replay of {command_name} with key {idempotency_key} failed")
                replayed = None
            if replayed is not None:
                logger.info(f"{command_name} with key {idempotency_key} completed concurrently, replaying")
                return replayed
            return self._internal_failure(command_name, e)
        except Exception as e:
            return self._internal_failure(command_name, e)

        self.cache.remove(ALL_ORDERS_CACHE_KEY)
        self.cache.remove(order_cache_key(snapshot.id))
        if after_commit is not None:
            after_commit(snapshot)

        logger.info(f"{command_name} completed for order {snapshot.id}")
        return OperationResult.success(snapshot)

    def _replay(self, idempotency_key: str) -> Optional[OperationResult[Order]]:
        resource_id, response_json = self.idempotency.get_by_key(idempotency_key)
        if resource_id is None:
            return None

        order = self.db.get(DBOrder, resource_id)
        if order is not None:
            return OperationResult.success(Order.model_validate(order))
        if response_json:
            # The order is gone (replayed delete): answer with what was returned then
            return OperationResult.success(Order.model_validate_json(response_json))
        raise NotFoundError(f"Order with ID {resource_id} no longer exists", "order_id")

    def _internal_failure(self, command_name: str, error: Exception) -> OperationResult[Order]:
        logger.exception(f"Unexpected error while processing {command_name}")
        return OperationResult.failure(
            ErrorDetail(code=INTERNAL_ERROR, message=f"{command_name} failed: {error}", field=command_name)
        )

    def _require(self, model, entity_id: UUID, field: str, label: str):
        entity = self.db.get(model, entity_id)
        if entity is None:
            raise NotFoundError(f"{label} with ID {entity_id} not found", field)
        return entity

    def _load_order(self, order_id: UUID) -> DBOrder:
        order = self._require(DBOrder, order_id, "order_id", "Order")
        # Concurrent writers of the same order conflict on its version
        order.touch()
        return order

    def _ensure_available(self, car_model_id: UUID, quantity: int, field: str) -> None:
        availability = self.inventory.check_availability(car_model_id, quantity)
        if not availability.is_available:
            raise InsufficientStockError(car_model_id, quantity, availability.available_quantity, field)

    def _reserve(self, car_model_id: UUID, quantity: int, field: str) -> None:
        self._ensure_available(car_model_id, quantity, field)
        self.inventory.decrease(car_model_id, quantity, field)

    def _snapshot(self, order: DBOrder) -> Order:
        self.db.flush()
        return Order.model_validate(order)
