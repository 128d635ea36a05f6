import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.main import app
from app.services.leads import ingestion as ingestion_module
from app.services.leads import matching as matching_module
from app.services.leads.repositories import InMemoryLeadRepository
from tests.helpers.metrics_stub import StubMetrics


class _SyncASGIClient:
    """Minimal synchronous wrapper around httpx.AsyncClient for ASGI apps."""

    def __init__(self, app):
        transport = httpx.ASGITransport(app=app)
        self._client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    def request(self, method: str, url: str, **kwargs):
        return asyncio.run(self._client.request(method, url, **kwargs))

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs):
        return self.request("PUT", url, **kwargs)

    def delete(self, url: str, **kwargs):
        return self.request("DELETE", url, **kwargs)

    def close(self) -> None:
        asyncio.run(self._client.aclose())


@pytest.fixture
def client():
    """Create test client compatible with older/newer httpx releases."""
    try:
        test_client = TestClient(app)
        yield test_client
    except TypeError:
        fallback_client = _SyncASGIClient(app)
        try:
            yield fallback_client
        finally:
            fallback_client.close()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Spool uploads into the test's temporary directory."""
    target = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", str(target))
    return target


@pytest.fixture
def stub_metrics(monkeypatch) -> StubMetrics:
    stub = StubMetrics()
    monkeypatch.setattr(ingestion_module, "metrics", stub)
    monkeypatch.setattr(matching_module, "metrics", stub)
    return stub


@pytest.fixture
def memory_repository() -> InMemoryLeadRepository:
    return InMemoryLeadRepository()


@pytest.fixture
def clear_overrides():
    yield
    app.dependency_overrides.clear()
