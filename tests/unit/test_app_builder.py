"""HTTP-level tests for the routes AppBuilder wires up."""

from __future__ import annotations

from prometheus_client import REGISTRY
import pytest
from starlette.applications import Starlette
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.testclient import TestClient

from docindex_server import app_builder as app_builder_module
from docindex_server.app import create_app
from docindex_server.app_builder import AppBuilder
from docindex_server.config import Settings
from docindex_server.engine.engine import DocumentEngine
from docindex_server.observability.tracing import TraceContextMiddleware
from docindex_server.service_layer import services


@pytest.fixture
def client():
    settings = Settings()
    app = AppBuilder(settings, DocumentEngine(settings.engine_settings()), configure_observability=False).build()
    with TestClient(app) as test_client:
        yield test_client


def _create(client: TestClient, username: str, **fields):
    return client.post("/api/createIndex", json={"username": username, "email": f"{username}@example.com", **fields})


@pytest.mark.unit
def test_create_returns_201_with_document(client):
    response = _create(client, "ada", tags=["red"])

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Document created successfully"
    assert body["totalDocuments"] == 1
    assert body["data"]["username"] == "ada"
    assert body["data"]["status"] == "inactive"
    assert set(body["data"]) >= {"_id", "createdAt", "updatedAt"}


@pytest.mark.unit
def test_create_rejects_duplicates_and_invalid_documents(client):
    _create(client, "ada")

    duplicate = _create(client, "ada")
    invalid = client.post("/api/createIndex", json={"firstName": "Ada"})

    assert duplicate.status_code == 400
    assert duplicate.json()["error"].startswith("E11000 duplicate key error")
    assert invalid.status_code == 400
    assert "username" in invalid.json()["error"]


@pytest.mark.unit
def test_create_rejects_malformed_json(client):
    response = client.post("/api/createIndex", content=b"{not json", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"error": "Request body must be valid JSON"}


@pytest.mark.unit
def test_get_all_applies_filters(client):
    _create(client, "ada", status="active", tags=["red"], firstName="Ada")
    _create(client, "grace", tags=["blue"])

    everything = client.get("/api/getAll").json()
    red = client.get("/api/getAll", params={"tag": "red"}).json()
    active = client.get("/api/getAll", params={"status": "active", "firstName": "Ada"}).json()

    assert everything["message"] == "Document fetched successfully"
    assert everything["count"] == 2
    assert [doc["username"] for doc in red["data"]] == ["ada"]
    assert active["count"] == 1


@pytest.mark.unit
def test_search_by_text_and_location(client):
    _create(client, "ada", description="quick fox", location={"type": "Point", "coordinates": [10, 20]})
    _create(client, "grace", description="lazy dog", location={"type": "Point", "coordinates": [50, 60]})

    by_text = client.get("/api/search", params={"text": "fox"}).json()
    by_geo = client.get("/api/search", params={"lng": "10", "lat": "20", "distance": "1000"}).json()

    assert by_text["message"] == "Search results fetched successfully"
    assert [doc["username"] for doc in by_text["data"]] == ["ada"]
    assert [doc["username"] for doc in by_geo["data"]] == ["ada"]


@pytest.mark.unit
def test_search_rejects_bad_coordinates(client):
    response = client.get("/api/search", params={"lng": "east", "lat": "20"})

    assert response.status_code == 400
    assert "Invalid coordinates" in response.json()["error"]


@pytest.mark.unit
def test_get_document_by_id(client):
    created = _create(client, "ada").json()["data"]

    found = client.get(f"/api/documents/{created['_id']}")
    missing = client.get("/api/documents/0123456789abcdef01234567")

    assert found.status_code == 200
    assert found.json()["data"] == created
    assert missing.status_code == 404
    assert missing.json()["error"].startswith("Document not found")


@pytest.mark.unit
def test_explain_returns_query_plan(client):
    response = client.get("/api/explain", params={"tag": "red"})

    assert response.status_code == 200
    assert response.json()["queryPlanner"]["indexName"] == "tags_1"


@pytest.mark.unit
def test_health_and_verify(client):
    _create(client, "ada")

    health = client.get("/health").json()
    verified = client.get("/health", params={"verify": "true"}).json()

    assert health["status"] == "healthy"
    assert health["collections"]["indexes"]["documents"] == 1
    assert verified["collections"]["indexes"]["consistent"] is True


@pytest.mark.unit
def test_metrics_use_route_templates(client):
    client.get("/api/documents/0123456789abcdef01234567")

    body = client.get("/metrics").text

    assert "docindex_http_requests_total" in body
    assert 'route="/api/documents/{doc_id}"' in body


@pytest.mark.unit
def test_trace_id_is_echoed(client):
    response = client.get("/health", headers={"x-trace-id": "abc123"})

    assert response.headers["x-trace-id"] == "abc123"
    assert client.get("/health").headers["x-trace-id"]


@pytest.mark.unit
def test_writes_are_refused_while_draining(client):
    client.app.state.shutdown_event.set()

    response = _create(client, "ada")

    assert response.status_code == 503
    assert client.get("/health").json()["status"] == "draining"


@pytest.mark.unit
def test_unexpected_errors_are_masked(client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(services, "list_documents", explode)

    response = client.get("/api/getAll")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


@pytest.mark.unit
def test_unmasked_errors_show_details(monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(services, "list_documents", explode)
    settings = Settings(mask_error_details=False)
    app = AppBuilder(settings, configure_observability=False).build()

    with TestClient(app) as test_client:
        response = test_client.get("/api/getAll")

    assert response.json() == {"error": "secret internals"}


@pytest.mark.unit
def test_lifespan_leaves_an_injected_open_engine_open(make_person):
    engine = DocumentEngine().open()
    app = AppBuilder(Settings(), engine, configure_observability=False).build()

    with TestClient(app) as test_client:
        assert test_client.get("/api/getAll").json()["count"] == 0

    assert engine.is_open
    assert engine.collection_names() == ["indexes"]


@pytest.mark.unit
def test_create_app_configures_observability(monkeypatch):
    calls: list[str] = []
    monkeypatch.setattr(app_builder_module, "configure_logging", lambda **kwargs: calls.append("logging"))

    app = create_app(Settings())

    assert isinstance(app, Starlette)
    assert calls == ["logging"]
    assert {route.path for route in app.routes} >= {
        "/api/createIndex",
        "/api/getAll",
        "/api/search",
        "/api/explain",
        "/api/documents/{doc_id}",
        "/health",
        "/metrics",
    }


@pytest.mark.unit
def test_requests_pass_through_tracing_middleware(client):
    labels = {"route": "/api/getAll", "method": "GET", "status": "200"}
    before = REGISTRY.get_sample_value("docindex_http_requests_total", labels) or 0.0

    response = client.get("/api/getAll", headers={"x-trace-id": "trace-abc"})

    assert response.status_code == 200
    assert response.headers["x-trace-id"] == "trace-abc"
    assert REGISTRY.get_sample_value("docindex_http_requests_total", labels) == before + 1
    assert [middleware.cls for middleware in client.app.user_middleware] == [
        TraceContextMiddleware,
        BaseHTTPMiddleware,
    ]
