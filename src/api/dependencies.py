from fastapi import Depends, Header
from sqlalchemy.orm import Session

from src.core.cache import get_cache
from src.core.database import get_db
from src.core.messaging import get_event_publisher
from src.services.notifier import OrderEventNotifier
from src.services.order_queries import OrderQueryService
from src.services.order_service import OrderWorkflowService


def get_idempotency_key(idempotency_key: str = Header(..., alias="Idempotency-Key", min_length=1, max_length=100)) -> str:
    return idempotency_key


def get_order_service(
    db: Session = Depends(get_db),
    cache=Depends(get_cache),
    publisher=Depends(get_event_publisher),
) -> OrderWorkflowService:
    return OrderWorkflowService(db, cache, OrderEventNotifier(publisher))


def get_order_query_service(db: Session = Depends(get_db), cache=Depends(get_cache)) -> OrderQueryService:
    return OrderQueryService(db, cache)
