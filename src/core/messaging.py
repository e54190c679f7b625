import json
import logging
from typing import Any, Dict

import redis

from src.core.cache import redis_client
from src.core.config import ORDER_EVENTS_CHANNEL

logger = logging.getLogger(__name__)


class RedisEventPublisher:
    """Publishes event envelopes on a Redis pub/sub channel"""

    def __init__(self, client: redis.Redis, channel: str = ORDER_EVENTS_CHANNEL):
        self.client = client
        self.channel = channel

    def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        message = json.dumps({"event_type": event_type, "data": data}, default=str)
        receivers = self.client.publish(self.channel, message)
        logger.info(f"Published {event_type} to {self.channel} ({receivers} subscriber(s))")


def get_event_publisher() -> RedisEventPublisher:
    """Event publisher dependency for FastAPI"""
    return RedisEventPublisher(redis_client)
