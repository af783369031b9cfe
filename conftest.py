"""Shared pytest fixtures for the POS sync engine tests."""

import json
import sys
from pathlib import Path
from typing import Any, List, Optional

import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from connectors.odoo.sandbox import SandboxOdooClient
from core.audit.alerts import AlertDispatcher, InMemoryAlertSink
from core.audit.events import IntegrationLogger
from core.config import Settings
from core.models.refs import ClientConfig
from core.storage.state_store import InMemoryStateStore
from pos_adapters.fixtures import FIXTURES_DIR
from sync_engine.service import IntegrationService


# =============================================================================
# Fake aiohttp objects
# =============================================================================

class FakeCookie:
    def __init__(self, value: str):
        self.value = value


class FakeResponse:
    """Stands in for ``aiohttp.ClientResponse`` inside ``async with``."""

    def __init__(
        self,
        status: int = 200,
        body: Any = None,
        headers: Optional[dict] = None,
        cookies: Optional[dict] = None,
    ):
        self.status = status
        if body is None:
            self._text = ""
        elif isinstance(body, str):
            self._text = body
        else:
            self._text = json.dumps(body)
        self.headers = headers or {}
        self.cookies = {k: FakeCookie(v) for k, v in (cookies or {}).items()}

    async def text(self) -> str:
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[dict] = []
        self.closed = False

    def _next(self, method: str, url: str, kwargs: dict):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def request(self, method: str, url: str, **kwargs):
        return self._next(method, url, kwargs)

    def post(self, url: str, **kwargs):
        return self._next("POST", url, kwargs)

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Engine fixtures
# =============================================================================

@pytest.fixture
def alert_sink() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def integration_logger(alert_sink) -> IntegrationLogger:
    return IntegrationLogger(InMemoryStateStore(), alerts=AlertDispatcher([alert_sink]))


@pytest.fixture
def fudo_payload() -> dict:
    with open(FIXTURES_DIR / "fudo.sample.json", "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def bistrosoft_payload() -> dict:
    with open(FIXTURES_DIR / "bistrosoft.sample.json", "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(db_path=tmp_path / "pos_sync.db", task_queue_backend="memory")


@pytest.fixture
def sandbox() -> SandboxOdooClient:
    return SandboxOdooClient()


@pytest.fixture
def engine(settings, sandbox, alert_sink) -> IntegrationService:
    """Engine on in-memory state, the in-process task queue and the sandbox ERP."""
    return IntegrationService.build(
        settings=settings,
        store=InMemoryStateStore(),
        alerts=AlertDispatcher([alert_sink]),
        sandbox_client=sandbox,
    )


def fudo_client(client_id: str = "c1", simulation_mode: bool = True, **kwargs) -> ClientConfig:
    return ClientConfig(
        client_id=client_id,
        name=f"Cafe {client_id}",
        pos_type="fudo",
        simulation_mode=simulation_mode,
        pos_settings={"api_key": "test-key", "store_id": "42"},
        **kwargs,
    )
