# Test configuration
import sys
from pathlib import Path

import httpx
import pytest

REPO_ROOT = Path(__file__).parent.parent

# Add repo root to path so tests can import modules
sys.path.insert(0, str(REPO_ROOT))

from schema_gateway.config import get_settings  # noqa: E402
from schema_gateway.registry.schemas import Schema  # noqa: E402


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def users_schema_data() -> dict:
    """Raw schema document of a small REST service."""
    return {
        "service": {
            "name": "users",
            "version": "1.0.0",
            "baseUrl": "http://localhost:3001",
            "protocol": "REST",
        },
        "operations": [
            {
                "id": "users.get",
                "operationType": "query",
                "description": "Get users",
                "input": {"schema": {"type": "object"}},
                "output": {"schema": {"type": "object"}},
                "rest": {"method": "GET", "path": "/users"},
            },
            {
                "id": "users.create",
                "operationType": "mutation",
                "rest": {"method": "POST", "path": "/users"},
            },
            {
                "id": "books.list",
                "operationType": "query",
                "graphql": {"query": "query { books { id } }"},
            },
        ],
        "websocket": {
            "/api/jobs/:id/logs": {"description": "Job log stream"},
        },
    }


@pytest.fixture
def users_schema(users_schema_data) -> Schema:
    return Schema.model_validate(users_schema_data)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def make_client():
    """Build an AsyncClient served by a recording handler."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler) -> tuple[httpx.AsyncClient, RecordingTransport]:
        transport = RecordingTransport(handler)
        client = httpx.AsyncClient(transport=transport)
        clients.append(client)
        return client, transport

    return _make
