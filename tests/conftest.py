import mongomock
import pytest
from fastapi.testclient import TestClient

import main
import security
from database import get_optional_db
from settings import Settings, get_settings


def auth(token):
    return {"Authorization": f"Bearer {token}"}


SHIPPING = {
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "US",
}


def order_payload(product_id, **overrides):
    payload = {
        "order_items": [
            {
                "product": product_id,
                "name": "Linen Shirt",
                "price": 40.0,
                "size": "M",
                "color": "White",
                "quantity": 2,
            }
        ],
        "shipping_address": dict(SHIPPING),
        "payment_method": "Card",
        "items_price": 80.0,
        "shipping_price": 5.0,
        "tax_price": 6.4,
        "total_price": 91.4,
    }
    payload.update(overrides)
    return payload


PRODUCT = {
    "name": "Linen Shirt",
    "description": "Breathable summer shirt",
    "price": 40.0,
    "category": "Casual Wear",
    "gender": "Men",
    "sizes": ["S", "M", "L"],
    "colors": ["White", "Sand"],
    "images": ["https://cdn.velora.test/linen.jpg"],
    "stock": 12,
    "is_featured": True,
    "is_new_arrival": False,
}


@pytest.fixture
def db():
    return mongomock.MongoClient()["velora_test"]


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", environment="test")


@pytest.fixture
def client(db, settings):
    main.app.dependency_overrides[get_optional_db] = lambda: db
    main.app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(main.app, raise_server_exceptions=False)
    main.app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    def _register(email="a@x.com", password="secret1", name="Alice"):
        res = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert res.status_code == 201, res.text
        return res.json()

    return _register


@pytest.fixture
def customer(register):
    return register()


@pytest.fixture
def other_customer(register):
    return register(email="b@x.com", name="Bob")


@pytest.fixture
def admin(client, db, settings):
    security.seed_admin(db, settings)
    res = client.post("/api/auth/login", json={"email": settings.admin_email, "password": settings.admin_password})
    assert res.status_code == 200, res.text
    return res.json()


@pytest.fixture
def product(client, admin):
    res = client.post("/api/products", json=PRODUCT, headers=auth(admin["token"]))
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def order(client, customer, product):
    res = client.post("/api/orders", json=order_payload(product["id"]), headers=auth(customer["token"]))
    assert res.status_code == 201, res.text
    return res.json()
