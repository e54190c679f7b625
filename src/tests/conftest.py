import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./cars_trade_test.db")

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from factories import InMemoryCache, RecordingPublisher
from main import app
from src.core.cache import get_cache
from src.core.database import Base, get_db
from src.core.messaging import get_event_publisher
from src.models.database import Buyer, CarInventory, CarModel, Employee
from src.services.notifier import OrderEventNotifier
from src.services.order_service import OrderWorkflowService


@pytest.fixture
def test_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'cars_trade.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def service(test_db, cache, publisher):
    return OrderWorkflowService(test_db, cache, OrderEventNotifier(publisher))


@pytest.fixture
def catalog(test_db):
    """Buyer, employee and two car models: sedan (100.00, 5 in stock) and coupe (250.00, 3 in stock)"""
    buyer = Buyer(name="Ivan", surname="Petrov", email="ivan.petrov@example.com")
    employee = Employee(name="Anna", surname="Smirnova", login="a.smirnova", role="User")
    sedan = CarModel(manufacturer="Lada", model_name="Vesta", color="white", price=Decimal("100.00"))
    coupe = CarModel(manufacturer="Lexus", model_name="RC", color="black", price=Decimal("250.00"))
    test_db.add_all([buyer, employee, sedan, coupe])
    test_db.flush()
    test_db.add_all([
        CarInventory(car_model_id=sedan.id, quantity=5),
        CarInventory(car_model_id=coupe.id, quantity=3),
    ])
    test_db.commit()

    return SimpleNamespace(
        buyer_id=buyer.id,
        employee_id=employee.id,
        sedan_id=sedan.id,
        coupe_id=coupe.id,
    )


@pytest.fixture
def client(session_factory, cache, publisher):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    yield TestClient(app)
    app.dependency_overrides.clear()
