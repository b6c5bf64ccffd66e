import os

# Keep logfire local during tests; must be set before main is imported
os.environ.setdefault("LOGFIRE_SEND_TO_LOGFIRE", "false")

import pytest
from fastapi.testclient import TestClient

from main import app
from redis_manager import ImageUrlStore, get_image_store
from services.image_progress import progress_store

API_KEY_ENV = ("OPENAI_API_KEY", "REPLICATE_API_KEY", "WAVESPEED_API_KEY", "PERPLEXITY_API_KEY")


@pytest.fixture
def api_keys(monkeypatch):
    for name in API_KEY_ENV:
        monkeypatch.setenv(name, f"test-{name.lower()}")


@pytest.fixture
def no_api_keys(monkeypatch):
    for name in API_KEY_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def image_store():
    # Never initialized, so it keeps records in-process
    return ImageUrlStore()


@pytest.fixture
def client(image_store):
    app.dependency_overrides[get_image_store] = lambda: image_store
    progress_store._records.clear()
    # No context manager: skip the lifespan so tests never dial Redis
    yield TestClient(app)
    app.dependency_overrides.clear()
    progress_store._records.clear()
