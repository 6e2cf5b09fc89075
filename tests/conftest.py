"""Shared test fixtures and configuration."""

from __future__ import annotations

import os

import pytest


# Test environment that overrides every setting read from the process environment
TEST_ENV = {
    # Server settings
    "HOST": "127.0.0.1",
    "PORT": "15000",
    "SERVICE_NAME": "docindex-test",
    # Logging
    "LOG_LEVEL": "info",
    "JSON_LOGS": "false",
    "ACCESS_LOG": "false",
    # Collection
    "COLLECTION_NAME": "indexes",
    "DEFAULT_GEO_DISTANCE": "5000",
    # Query engine
    "ALLOW_FULL_SCAN": "true",
    "DEADLINE_CHECK_INTERVAL": "256",
    "GEO_CELL_DEGREES": "1.0",
    # Telemetry export disabled in tests
    "OTLP_ENDPOINT": "",
}

# Set environment variables immediately when conftest.py is loaded
for key, value in TEST_ENV.items():
    os.environ[key] = value

from docindex_server.config import EngineSettings
from docindex_server.domain.schema import create_index_demo_schema
from docindex_server.engine.engine import DocumentEngine


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset environment variables before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("QUERY_TIMEOUT_MS", raising=False)
    yield


class SequentialIds:
    """Deterministic 24-hex ids: 000...001, 000...002, ..."""

    def __init__(self) -> None:
        self.issued = 0

    def __call__(self) -> str:
        self.issued += 1
        return f"{self.issued:024x}"


@pytest.fixture
def id_factory() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def engine():
    with DocumentEngine(EngineSettings()) as document_engine:
        yield document_engine


@pytest.fixture
def collection(engine, id_factory):
    return engine.create_collection(create_index_demo_schema(), id_factory=id_factory)


@pytest.fixture
def make_person():
    """Build a valid demo document; keyword arguments override fields."""

    def _make(username: str, **fields):
        return {"username": username, "email": f"{username}@example.com", **fields}

    return _make
