import uuid

import pytest

from factories import stock
from src.api.routes import employees
from src.services.inventory_service import InventoryService


def order_payload(catalog, *items):
    return {
        "buyer_id": str(catalog.buyer_id),
        "employee_id": str(catalog.employee_id),
        "delivery_address": {
            "country": "Russia",
            "region": "Moscow Oblast",
            "city": "Moscow",
            "street": "Tverskaya 1",
        },
        "completion_date": "2099-01-01T12:00:00Z",
        "items": list(items),
    }


def item(car_model_id, quantity, comment=None):
    payload = {"car_model_id": str(car_model_id), "quantity": quantity}
    if comment is not None:
        payload["comment"] = comment
    return payload


def headers(key):
    return {"Idempotency-Key": key}


@pytest.fixture
def placed_order(client, catalog):
    """Order with two sedans, placed through the API"""
    response = client.post(
        "/api/v1/orders/",
        json=order_payload(catalog, item(catalog.sedan_id, 2)),
        headers=headers("fixture-order"),
    )
    assert response.status_code == 200
    return response.json()


class TestOrderAPI:
    """Order endpoints"""

    def test_create_order(self, client, catalog, test_db, publisher):
        response = client.post(
            "/api/v1/orders/",
            json=order_payload(catalog, item(catalog.sedan_id, 2, "metallic paint")),
            headers=headers("api-create"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["price"] == 200.0
        assert data["buyer_id"] == str(catalog.buyer_id)
        assert data["items"][0]["unit_price"] == 100.0
        assert data["items"][0]["comment"] == "metallic paint"
        assert stock(test_db, catalog.sedan_id) == 3
        assert publisher.events[0][0] == "OrderCreated"

    def test_create_order_requires_idempotency_key(self, client, catalog):
        response = client.post("/api/v1/orders/", json=order_payload(catalog, item(catalog.sedan_id, 1)))

        assert response.status_code == 422

    def test_create_order_replay(self, client, catalog, test_db):
        payload = order_payload(catalog, item(catalog.sedan_id, 2))

        first = client.post("/api/v1/orders/", json=payload, headers=headers("api-replay"))
        second = client.post("/api/v1/orders/", json=payload, headers=headers("api-replay"))

        assert first.status_code == second.status_code == 200
        assert first.json()["id"] == second.json()["id"]
        assert stock(test_db, catalog.sedan_id) == 3

    def test_create_order_insufficient_stock(self, client, catalog, test_db):
        response = client.post(
            "/api/v1/orders/",
            json=order_payload(catalog, item(catalog.coupe_id, 4)),
            headers=headers("api-too-many"),
        )

        assert response.status_code == 400
        error = response.json()["detail"][0]
        assert error["code"] == "INSUFFICIENT_STOCK"
        assert error["field"] == "items.quantity"
        assert "Requested: 4, Available: 3" in error["message"]
        assert stock(test_db, catalog.coupe_id) == 3

    def test_create_order_unknown_buyer(self, client, catalog):
        payload = order_payload(catalog, item(catalog.sedan_id, 1))
        payload["buyer_id"] = str(uuid.uuid4())

        response = client.post("/api/v1/orders/", json=payload, headers=headers("api-no-buyer"))

        assert response.status_code == 404
        assert response.json()["detail"][0]["field"] == "buyer_id"

    def test_create_order_rejects_past_completion_date(self, client, catalog):
        payload = order_payload(catalog, item(catalog.sedan_id, 1))
        payload["completion_date"] = "2001-01-01T00:00:00Z"

        response = client.post("/api/v1/orders/", json=payload, headers=headers("api-past"))

        assert response.status_code == 422

    def test_create_order_rejects_non_positive_quantity(self, client, catalog):
        response = client.post(
            "/api/v1/orders/",
            json=order_payload(catalog, item(catalog.sedan_id, 0)),
            headers=headers("api-zero"),
        )

        assert response.status_code == 422

    def test_get_order(self, client, placed_order):
        response = client.get(f"/api/v1/orders/{placed_order['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == placed_order["id"]
        assert data["price"] == placed_order["price"]
        assert data["items"] == placed_order["items"]
        assert data["delivery_address"] == placed_order["delivery_address"]

    def test_get_unknown_order(self, client):
        response = client.get(f"/api/v1/orders/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"][0]["code"] == "NOT_FOUND"

    def test_get_orders_is_cached(self, client, placed_order, cache):
        response = client.get("/api/v1/orders/")

        assert response.status_code == 200
        assert [order["id"] for order in response.json()] == [placed_order["id"]]
        assert cache.get("Order:all")[0]["id"] == placed_order["id"]

    def test_mutation_invalidates_cached_order(self, client, placed_order, cache):
        client.get(f"/api/v1/orders/{placed_order['id']}")
        assert cache.get(f"Order:{placed_order['id']}") is not None

        response = client.put(
            f"/api/v1/orders/{placed_order['id']}",
            json={"completion_date": "2099-06-01T00:00:00Z"},
            headers=headers("api-edit-order"),
        )

        assert response.status_code == 200
        assert cache.get(f"Order:{placed_order['id']}") is None
        refreshed = client.get(f"/api/v1/orders/{placed_order['id']}").json()
        assert refreshed["completion_date"].startswith("2099-06-01")

    def test_delete_order(self, client, placed_order, catalog, test_db, publisher):
        response = client.delete(f"/api/v1/orders/{placed_order['id']}", headers=headers("api-delete"))

        assert response.status_code == 200
        assert response.json()["id"] == placed_order["id"]
        assert stock(test_db, catalog.sedan_id) == 5
        assert client.get(f"/api/v1/orders/{placed_order['id']}").status_code == 404
        assert publisher.events[-1][0] == "OrderDeleted"


class TestOrderItemAPI:
    """Order item endpoints"""

    def test_add_item(self, client, placed_order, catalog, test_db):
        response = client.post(
            f"/api/v1/orders/{placed_order['id']}/items",
            json=item(catalog.coupe_id, 1),
            headers=headers("api-add-item"),
        )

        assert response.status_code == 200
        assert response.json()["price"] == 450.0
        assert stock(test_db, catalog.coupe_id) == 2

    def test_add_items_batch(self, client, placed_order, catalog, test_db):
        response = client.post(
            f"/api/v1/orders/{placed_order['id']}/items/batch",
            json={"items": [item(catalog.sedan_id, 1), item(catalog.coupe_id, 2)]},
            headers=headers("api-add-batch"),
        )

        assert response.status_code == 200
        assert len(response.json()["items"]) == 3
        assert response.json()["price"] == 800.0
        assert stock(test_db, catalog.sedan_id) == 2
        assert stock(test_db, catalog.coupe_id) == 1

    def test_add_items_batch_requires_items(self, client, placed_order):
        response = client.post(
            f"/api/v1/orders/{placed_order['id']}/items/batch",
            json={"items": []},
            headers=headers("api-add-empty"),
        )

        assert response.status_code == 422

    def test_edit_item(self, client, placed_order, catalog, test_db):
        item_id = placed_order["items"][0]["id"]

        response = client.put(
            f"/api/v1/orders/{placed_order['id']}/items/{item_id}",
            json={"quantity": 5},
            headers=headers("api-edit-item"),
        )

        assert response.status_code == 200
        assert response.json()["price"] == 500.0
        assert stock(test_db, catalog.sedan_id) == 0

    def test_edit_item_insufficient_stock(self, client, placed_order, catalog, test_db):
        item_id = placed_order["items"][0]["id"]

        response = client.put(
            f"/api/v1/orders/{placed_order['id']}/items/{item_id}",
            json={"quantity": 6},
            headers=headers("api-edit-too-many"),
        )

        assert response.status_code == 400
        assert response.json()["detail"][0]["code"] == "INSUFFICIENT_STOCK"
        assert stock(test_db, catalog.sedan_id) == 3

    def test_empty_item_edit_is_bad_request(self, client, placed_order):
        item_id = placed_order["items"][0]["id"]

        response = client.put(
            f"/api/v1/orders/{placed_order['id']}/items/{item_id}",
            json={},
            headers=headers("api-edit-nothing"),
        )

        assert response.status_code == 400
        assert response.json()["detail"][0]["code"] == "VALIDATION_ERROR"

    def test_remove_items(self, client, placed_order, catalog, test_db):
        item_id = placed_order["items"][0]["id"]

        response = client.delete(
            f"/api/v1/orders/{placed_order['id']}/items",
            params={"item_id": [item_id]},
            headers=headers("api-remove"),
        )

        assert response.status_code == 200
        assert response.json()["items"] == []
        assert response.json()["price"] == 0.0
        assert stock(test_db, catalog.sedan_id) == 5

    def test_remove_unknown_items(self, client, placed_order):
        response = client.delete(
            f"/api/v1/orders/{placed_order['id']}/items",
            params={"item_id": [str(uuid.uuid4())]},
            headers=headers("api-remove-missing"),
        )

        assert response.status_code == 404


class TestInventoryAPI:
    def test_get_inventory(self, client, catalog):
        response = client.get(f"/api/v1/inventory/{catalog.sedan_id}")

        assert response.status_code == 200
        assert response.json()["quantity"] == 5

    def test_list_inventory(self, client, catalog):
        response = client.get("/api/v1/inventory/")

        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_restock(self, client, catalog, test_db):
        response = client.put(f"/api/v1/inventory/{catalog.coupe_id}", json={"quantity": 10})

        assert response.status_code == 200
        assert stock(test_db, catalog.coupe_id) == 10

    def test_restock_rejects_negative_quantity(self, client, catalog):
        response = client.put(f"/api/v1/inventory/{catalog.coupe_id}", json={"quantity": -1})

        assert response.status_code == 422

    def test_availability(self, client, catalog):
        response = client.get(f"/api/v1/inventory/{catalog.coupe_id}/availability", params={"quantity": 4})

        assert response.status_code == 200
        assert response.json()["is_available"] is False
        assert response.json()["available_quantity"] == 3

    def test_create_inventory_record(self, client):
        car_model = client.post(
            "/api/v1/car-models/",
            json={"manufacturer": "Kia", "model_name": "Rio", "price": 80.0},
        ).json()

        response = client.post("/api/v1/inventory/", json={"car_model_id": car_model["id"], "quantity": 7})
        duplicate = client.post("/api/v1/inventory/", json={"car_model_id": car_model["id"], "quantity": 1})

        assert response.status_code == 200
        assert response.json()["quantity"] == 7
        assert duplicate.status_code == 400

    def test_create_inventory_for_unknown_car_model(self, client):
        response = client.post("/api/v1/inventory/", json={"car_model_id": str(uuid.uuid4()), "quantity": 1})

        assert response.status_code == 404

    def test_create_inventory_record_created_concurrently(self, client, monkeypatch):
        car_model = client.post(
            "/api/v1/car-models/",
            json={"manufacturer": "Kia", "model_name": "Rio", "price": 80.0},
        ).json()
        client.post("/api/v1/inventory/", json={"car_model_id": car_model["id"], "quantity": 7})
        # The existence check misses the record another request has just committed
        monkeypatch.setattr(InventoryService, "get", lambda self, car_model_id: None)

        response = client.post("/api/v1/inventory/", json={"car_model_id": car_model["id"], "quantity": 1})

        assert response.status_code == 400
        assert response.json()["detail"] == "Inventory record for this car model already exists"

    def test_delete_inventory_record(self, client, catalog, test_db):
        response = client.delete(f"/api/v1/inventory/{catalog.coupe_id}")

        assert response.status_code == 200
        assert response.json()["quantity"] == 3
        assert InventoryService(test_db).get(catalog.coupe_id) is None
        assert client.get(f"/api/v1/inventory/{catalog.coupe_id}").status_code == 404

    def test_delete_unknown_inventory_record(self, client):
        assert client.delete(f"/api/v1/inventory/{uuid.uuid4()}").status_code == 404


class TestCatalogAPI:
    def test_create_and_get_buyer(self, client):
        created = client.post(
            "/api/v1/buyers/",
            json={"name": "Olga", "surname": "Ivanova", "email": "olga@example.com"},
        )

        assert created.status_code == 200
        fetched = client.get(f"/api/v1/buyers/{created.json()['id']}")
        assert fetched.json()["email"] == "olga@example.com"

    def test_unknown_buyer(self, client):
        assert client.get(f"/api/v1/buyers/{uuid.uuid4()}").status_code == 404

    def test_employee_login_is_unique(self, client, catalog):
        response = client.post(
            "/api/v1/employees/",
            json={"name": "Boris", "surname": "Orlov", "login": "a.smirnova"},
        )

        assert response.status_code == 400

    def test_employee_login_taken_concurrently(self, client, catalog, monkeypatch):
        # The uniqueness check misses a login another request has just committed
        monkeypatch.setattr(employees, "_login_taken", lambda db, login: False)

        response = client.post(
            "/api/v1/employees/",
            json={"name": "Boris", "surname": "Orlov", "login": "a.smirnova"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Login already exists"
        assert len(client.get("/api/v1/employees/").json()) == 1

    def test_list_car_models(self, client, catalog):
        response = client.get("/api/v1/car-models/")

        assert response.status_code == 200
        assert {model["model_name"] for model in response.json()} == {"Vesta", "RC"}

    def test_update_buyer(self, client, catalog):
        response = client.put(
            f"/api/v1/buyers/{catalog.buyer_id}",
            json={"phone_number": "+7 900 000 00 00", "address": "Moscow"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["phone_number"] == "+7 900 000 00 00"
        assert data["address"] == "Moscow"
        assert data["name"] == "Ivan"
        assert client.get(f"/api/v1/buyers/{catalog.buyer_id}").json()["address"] == "Moscow"

    def test_update_unknown_buyer(self, client):
        assert client.put(f"/api/v1/buyers/{uuid.uuid4()}", json={"name": "Olga"}).status_code == 404

    def test_delete_buyer(self, client, catalog):
        response = client.delete(f"/api/v1/buyers/{catalog.buyer_id}")

        assert response.status_code == 200
        assert response.json()["surname"] == "Petrov"
        assert client.get(f"/api/v1/buyers/{catalog.buyer_id}").status_code == 404

    def test_buyer_with_orders_is_not_deleted(self, client, catalog, placed_order):
        response = client.delete(f"/api/v1/buyers/{catalog.buyer_id}")

        assert response.status_code == 400
        assert client.get(f"/api/v1/buyers/{catalog.buyer_id}").status_code == 200
        assert client.get(f"/api/v1/orders/{placed_order['id']}").status_code == 200

    def test_update_employee(self, client, catalog):
        response = client.put(
            f"/api/v1/employees/{catalog.employee_id}",
            json={"role": "Admin", "age": 30},
        )

        assert response.status_code == 200
        assert response.json()["role"] == "Admin"
        assert response.json()["age"] == 30
        assert response.json()["login"] == "a.smirnova"

    def test_update_employee_keeps_own_login(self, client, catalog):
        response = client.put(f"/api/v1/employees/{catalog.employee_id}", json={"login": "a.smirnova"})

        assert response.status_code == 200

    def test_update_employee_to_taken_login(self, client, catalog):
        other = client.post(
            "/api/v1/employees/",
            json={"name": "Boris", "surname": "Orlov", "login": "b.orlov"},
        ).json()

        response = client.put(f"/api/v1/employees/{other['id']}", json={"login": "a.smirnova"})

        assert response.status_code == 400
        assert client.get(f"/api/v1/employees/{other['id']}").json()["login"] == "b.orlov"

    def test_update_employee_login_taken_concurrently(self, client, catalog, monkeypatch):
        other = client.post(
            "/api/v1/employees/",
            json={"name": "Boris", "surname": "Orlov", "login": "b.orlov"},
        ).json()
        monkeypatch.setattr(employees, "_login_taken", lambda db, login: False)

        response = client.put(f"/api/v1/employees/{other['id']}", json={"login": "a.smirnova"})

        assert response.status_code == 400
        assert client.get(f"/api/v1/employees/{other['id']}").json()["login"] == "b.orlov"

    def test_delete_employee(self, client, catalog):
        response = client.delete(f"/api/v1/employees/{catalog.employee_id}")

        assert response.status_code == 200
        assert client.get(f"/api/v1/employees/{catalog.employee_id}").status_code == 404

    def test_employee_with_orders_is_not_deleted(self, client, catalog, placed_order):
        response = client.delete(f"/api/v1/employees/{catalog.employee_id}")

        assert response.status_code == 400
        assert client.get(f"/api/v1/employees/{catalog.employee_id}").status_code == 200

    def test_delete_unknown_employee(self, client):
        assert client.delete(f"/api/v1/employees/{uuid.uuid4()}").status_code == 404

    def test_update_car_model(self, client, catalog, placed_order):
        response = client.put(
            f"/api/v1/car-models/{catalog.sedan_id}",
            json={"price": 120.0, "color": "grey"},
        )

        assert response.status_code == 200
        assert response.json()["price"] == 120.0
        assert response.json()["color"] == "grey"
        assert response.json()["model_name"] == "Vesta"
        # Placed orders keep the price captured when the car was reserved
        order = client.get(f"/api/v1/orders/{placed_order['id']}").json()
        assert order["items"][0]["unit_price"] == 100.0
        assert order["price"] == 200.0

    def test_update_car_model_rejects_non_positive_price(self, client, catalog):
        response = client.put(f"/api/v1/car-models/{catalog.sedan_id}", json={"price": 0})

        assert response.status_code == 422

    def test_delete_car_model(self, client):
        car_model = client.post(
            "/api/v1/car-models/",
            json={"manufacturer": "Kia", "model_name": "Rio", "price": 80.0},
        ).json()

        response = client.delete(f"/api/v1/car-models/{car_model['id']}")

        assert response.status_code == 200
        assert client.get(f"/api/v1/car-models/{car_model['id']}").status_code == 404

    def test_car_model_with_inventory_is_not_deleted(self, client, catalog):
        response = client.delete(f"/api/v1/car-models/{catalog.coupe_id}")

        assert response.status_code == 400
        assert client.get(f"/api/v1/car-models/{catalog.coupe_id}").status_code == 200

    def test_car_model_in_orders_is_not_deleted(self, client, catalog, placed_order):
        client.delete(f"/api/v1/inventory/{catalog.sedan_id}")

        response = client.delete(f"/api/v1/car-models/{catalog.sedan_id}")

        assert response.status_code == 400
        assert client.get(f"/api/v1/car-models/{catalog.sedan_id}").status_code == 200

    def test_search_car_models_by_text(self, client, catalog):
        by_manufacturer = client.get("/api/v1/car-models/search", params={"manufacturer": "lad"})
        by_color = client.get("/api/v1/car-models/search", params={"color": "BLACK"})

        assert by_manufacturer.status_code == 200
        assert [model["model_name"] for model in by_manufacturer.json()] == ["Vesta"]
        assert [model["model_name"] for model in by_color.json()] == ["RC"]

    def test_search_car_models_by_price(self, client, catalog):
        response = client.get("/api/v1/car-models/search", params={"price": 250.0})

        assert [model["model_name"] for model in response.json()] == ["RC"]

    def test_search_car_models_by_production_year(self, client, catalog):
        client.post(
            "/api/v1/car-models/",
            json={
                "manufacturer": "Kia",
                "model_name": "Rio",
                "country": "South Korea",
                "production_date": "2021-03-01T00:00:00",
                "price": 80.0,
            },
        )

        response = client.get("/api/v1/car-models/search", params={"production_date": "2021-11-20T00:00:00"})
        other_year = client.get("/api/v1/car-models/search", params={"production_date": "2020-03-01T00:00:00"})

        assert [model["model_name"] for model in response.json()] == ["Rio"]
        assert other_year.json() == []

    def test_search_car_models_combines_filters(self, client, catalog):
        response = client.get("/api/v1/car-models/search", params={"manufacturer": "lexus", "color": "white"})

        assert response.json() == []

    def test_search_without_filters_returns_catalog(self, client, catalog):
        response = client.get("/api/v1/car-models/search")

        assert {model["model_name"] for model in response.json()} == {"Vesta", "RC"}

    def test_search_by_unknown_car_model_id(self, client, catalog):
        response = client.get("/api/v1/car-models/search", params={"car_model_id": str(uuid.uuid4())})

        assert response.status_code == 404


class TestServiceEndpoints:
    def test_root(self, client):
        assert client.get("/").json() == {"message": "Cars Trade API"}

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
