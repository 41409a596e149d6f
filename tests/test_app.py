from dataclasses import replace

from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

import catalog
import main
import metrics
from database import get_optional_db
from settings import Settings, get_settings


def test_root_and_index(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["message"] == "Welcome to Velora Wear API"
    assert set(res.json()["endpoints"]) == {"auth", "products", "orders", "reviews", "admin"}

    res = client.get("/api")
    assert res.json()["endpoints"]["orders"]["update_status"] == "PUT /api/orders/{id}/status (Admin)"


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "UP"
    assert res.json()["database"] == "Connected"


def test_unknown_route(client):
    res = client.get("/api/nowhere")
    assert res.status_code == 404
    assert res.json() == {"message": "Not Found"}


def test_database_not_configured():
    main.app.dependency_overrides[get_optional_db] = lambda: None
    try:
        client = TestClient(main.app)
        assert client.get("/api/products").status_code == 503
        assert client.get("/health").json()["database"] == "Not Configured"
    finally:
        main.app.dependency_overrides.clear()


def test_data_layer_errors_become_500(client, settings, monkeypatch):
    def boom(*args, **kwargs):
        raise ServerSelectionTimeoutError("mongo unreachable")

    monkeypatch.setattr(catalog, "list_products", boom)
    res = client.get("/api/products")
    assert res.status_code == 500
    assert res.json() == {"message": "Server error", "detail": "mongo unreachable"}

    main.app.dependency_overrides[get_settings] = lambda: replace(settings, environment="production")
    res = client.get("/api/products")
    assert res.status_code == 500
    assert res.json() == {"message": "Server error"}


def test_requests_are_counted(client):
    labels = {"method": "GET", "route": "/health", "status_code": "200"}
    before = metrics.sample("http_requests_total", labels)
    client.get("/health")
    client.get("/health")
    assert metrics.sample("http_requests_total", labels) == before + 2
    assert metrics.sample("http_request_duration_seconds_count", labels) >= 2


def test_unknown_paths_share_one_label(client):
    labels = {"method": "GET", "route": "unmatched", "status_code": "404"}
    before = metrics.sample("http_requests_total", labels)
    client.get("/api/nowhere")
    client.get("/api/elsewhere/123")
    assert metrics.sample("http_requests_total", labels) == before + 2
    raw = {"method": "GET", "route": "/api/nowhere", "status_code": "404"}
    assert metrics.sample("http_requests_total", raw) == 0


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    monkeypatch.setenv("ENFORCE_STATUS_TRANSITIONS", "yes")
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.test, https://b.test")
    settings = Settings.from_env()
    assert settings.jwt_secret == "s3cret"
    assert settings.enforce_status_transitions is True
    assert settings.is_production
    assert settings.cors_origins == ("https://a.test", "https://b.test")
    assert settings.jwt_expires_days == 7
