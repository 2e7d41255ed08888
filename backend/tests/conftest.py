"""Shared test fixtures and configuration for relay tests."""
import pytest
from fastapi.testclient import TestClient

from relay.chat.hub import RelayHub, set_hub
from relay.config import reset_config
from relay.main import app


class RecordingOutbox:
    """Outbox stand-in that records posted events synchronously."""

    def __init__(self) -> None:
        self.events = []
        self.closed = False

    def post(self, event, data) -> None:
        if not self.closed:
            self.events.append((event, data))

    def close(self) -> None:
        self.closed = True

    def of(self, event):
        return [data for name, data in self.events if name == event]

    def names(self):
        return [name for name, _ in self.events]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture(autouse=True)
def hub():
    """Give every test a fresh global relay hub."""
    fresh = RelayHub()
    set_hub(fresh)
    yield fresh
    set_hub(None)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    for name in ("SOCKET_PORT", "NEXT_PUBLIC_APP_URL", "RELAY_LOG_LEVEL", "RELAY_SETTINGS_PATH"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app."""
    return TestClient(app)
