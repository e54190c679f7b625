import logging

from src.models.schemas import Order, OrderCreatedEvent, OrderDeletedEvent

logger = logging.getLogger(__name__)

ORDER_CREATED = "OrderCreated"
ORDER_DELETED = "OrderDeleted"


class OrderEventNotifier:
    """
    Fire-and-forget order notifications.

    Called only after the order transaction has committed. A publish failure
    is logged and dropped; it never turns a committed order into a failure.
    """

    def __init__(self, publisher):
        self.publisher = publisher

    def order_created(self, order: Order) -> None:
        event = OrderCreatedEvent(
            order_id=order.id,
            buyer_id=order.buyer_id,
            total_amount=order.price,
            created_at=order.created_at,
        )
        self._publish(ORDER_CREATED, event.model_dump(mode="json"))

    def order_deleted(self, order: Order) -> None:
        event = OrderDeletedEvent(
            order_id=order.id,
            buyer_id=order.buyer_id,
            total_amount=order.price,
            created_at=order.created_at,
        )
        self._publish(ORDER_DELETED, event.model_dump(mode="json"))

    def _publish(self, event_type: str, data: dict) -> None:
        try:
            self.publisher.publish(event_type, data)
        except Exception:
            logger.exception(f"Failed to publish {event_type} for order {data.get('order_id')}")
