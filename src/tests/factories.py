from sqlalchemy import select

from src.models.database import CarInventory
from src.models.schemas import OrderAddress

ADDRESS = OrderAddress(country="Russia", region="Moscow Oblast", city="Moscow", street="Tverskaya 1")


class InMemoryCache:
    """Stands in for RedisCache in tests, including its generation check"""

    def __init__(self):
        self.store = {}
        self.removed = []
        self.generations = {}

    def get(self, key):
        return self.store.get(key)

    def generation(self, key):
        return self.generations.get(key, 0)

    def set(self, key, value, ttl=None, generation=None):
        if generation is not None and generation != self.generation(key):
            return
        self.store[key] = value

    def remove(self, key):
        self.removed.append(key)
        self.generations[key] = self.generation(key) + 1
        self.store.pop(key, None)


class RecordingPublisher:
    """Collects published events instead of sending them to Redis"""

    def __init__(self):
        self.events = []

    def publish(self, event_type, data):
        self.events.append((event_type, data))


class FailingPublisher:
    def publish(self, event_type, data):
        raise ConnectionError("event channel unavailable")


def stock(db, car_model_id):
    """Current available quantity straight from the database"""
    return db.execute(
        select(CarInventory.quantity).where(CarInventory.car_model_id == car_model_id)
    ).scalar_one()
