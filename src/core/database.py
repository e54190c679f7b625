import asyncio
import logging
from typing import Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from src.core.config import (
    DATABASE_URL,
    TRANSACTION_MAX_RETRIES,
    TRANSACTION_RETRY_BACKOFF_SECONDS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Driver messages for failures that succeed when the whole transaction is re-run
TRANSIENT_ERROR_MARKERS = (
    "database is locked",
    "deadlock detected",
    "could not serialize access",
    "server closed the connection",
    "connection reset",
)


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_transient_error(error: OperationalError) -> bool:
    if error.connection_invalidated:
        return True
    message = str(error.orig).lower()
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


async def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    max_retries: int = TRANSACTION_MAX_RETRIES,
    backoff: float = TRANSACTION_RETRY_BACKOFF_SECONDS,
) -> T:
    """
    Execute ``operation`` and commit it as one unit of work.

    Any failure rolls the session back. Transient database failures and
    version conflicts re-run the whole operation, so ``operation`` must read
    everything it depends on itself instead of reusing state loaded before
    the call.
    """
    for attempt in range(1, max_retries + 1):
        try:
            result = operation()
            db.commit()
            return result
        except OperationalError as e:
            db.rollback()
            if attempt == max_retries or not is_transient_error(e):
                raise
            logger.warning(
                f"Transient database failure on attempt {attempt}/{max_retries}, retrying: {e.orig}"
            )
            await asyncio.sleep(backoff * attempt)
        except StaleDataError as e:
            # Another transaction changed the same versioned row first
            db.rollback()
            if attempt == max_retries:
                raise
            logger.warning(f"Concurrent update on attempt {attempt}/{max_retries}, retrying: {e}")
            await asyncio.sleep(backoff * attempt)
        except Exception:
            db.rollback()
            raise

    raise RuntimeError("Transaction retries exhausted")
