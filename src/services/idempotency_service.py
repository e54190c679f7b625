import logging
from typing import NamedTuple, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.models.database import IdempotencyRequest, utcnow

logger = logging.getLogger(__name__)


class IdempotencyLookup(NamedTuple):
    resource_id: Optional[UUID]
    response_json: Optional[str]


class IdempotencyService:
    """
    Maps client-supplied idempotency keys to the outcome they produced.

    ``save`` only stages the record on the caller's session; it is committed
    together with the business write it describes. The unique ``key`` column
    makes a concurrent duplicate fail with an IntegrityError, which rolls
    back the duplicate's business write as well.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_key(self, key: str) -> IdempotencyLookup:
        logger.info(f"Checking idempotency record for key {key}")
        record = self.db.execute(
            select(IdempotencyRequest).where(IdempotencyRequest.key == key)
        ).scalar_one_or_none()
        if record is None:
            return IdempotencyLookup(None, None)
        logger.info(f"Idempotency record found for key {key}: {record.resource_type} {record.resource_id}")
        return IdempotencyLookup(record.resource_id, record.response_json)

    def save(self, key: str, resource_type: str, resource_id: UUID, response_json: Optional[str] = None) -> None:
        """Raises IntegrityError if another request already stored ``key``"""
        self.db.add(
            IdempotencyRequest(
                key=key,
                resource_type=resource_type,
                resource_id=resource_id,
                response_json=response_json,
                created_at=utcnow(),
                status="Completed",
            )
        )
        self.db.flush()
        logger.info(f"Idempotency record staged for key {key}: {resource_type} {resource_id}")
