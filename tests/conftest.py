"""
Asana Connector Test Suite — Shared fixtures and fakes.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from asana_connector.engine.errors import RemoteAPIError
from asana_connector.engine.models import RemoteWebhook

BASE_URL = "https://hooks.example.com"
TARGET = BASE_URL + "/asana-connector/webhook"


class FakeWebhookAPI:
    """
    In-memory stand-in for AsanaClient.

    Records every call so tests can assert exactly which remote calls were made.
    """

    def __init__(
        self,
        webhooks: Optional[List[RemoteWebhook]] = None,
        create_active: bool = True,
        fetch_error: Optional[Exception] = None,
        create_errors: Optional[Dict[str, Exception]] = None,
    ):
        self.webhooks: List[RemoteWebhook] = list(webhooks or [])
        self.create_active = create_active
        self.fetch_error = fetch_error
        self.create_errors = create_errors or {}
        self.calls: List[tuple] = []
        self.closed = False
        self._next_gid = 9000

    async def get_webhooks(self, workspace_id: str) -> List[RemoteWebhook]:
        self.calls.append(("get_webhooks", workspace_id))
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.webhooks)

    async def create_webhook(self, resource_gid: str, target: str) -> RemoteWebhook:
        self.calls.append(("create_webhook", resource_gid, target))
        if resource_gid in self.create_errors:
            raise self.create_errors[resource_gid]
        self._next_gid += 1
        webhook = RemoteWebhook(
            gid=str(self._next_gid),
            resource_gid=resource_gid,
            target=target,
            active=self.create_active,
        )
        self.webhooks.append(webhook)
        return webhook

    async def aclose(self) -> None:
        self.closed = True

    @property
    def create_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "create_webhook"]


class RecordingBus:
    """Host bus double that records (event_id, payload) in dispatch order."""

    def __init__(self, fail_on: Optional[set] = None):
        self.handlers: Dict[str, List[Any]] = {}
        self.dispatched: List[tuple] = []
        self.fail_on = fail_on or set()

    def when(self, event_id: str, handler: Any) -> None:
        self.handlers.setdefault(event_id, []).append(handler)

    async def handle_event(self, event_id: str, payload: Dict[str, Any]) -> bool:
        self.dispatched.append((event_id, payload))
        if event_id in self.fail_on:
            raise RuntimeError(f"bus failure for {event_id}")
        return event_id in self.handlers

    @property
    def dispatched_ids(self) -> List[str]:
        return [event_id for event_id, _ in self.dispatched]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    """Reset the config singleton and strip ASANA_* env vars between tests."""
    import asana_connector.engine.config as cfg_mod

    cfg_mod._connector_config = None
    for name in cfg_mod.ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    from asana_connector.engine.config import ConnectorConfig

    return ConnectorConfig(
        access_token="test-token",
        base_url=BASE_URL + "/",
        workspace_id="ws_1",
    )


@pytest.fixture
def fake_api():
    return FakeWebhookAPI()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def remote_error():
    return RemoteAPIError("Asana GET /webhooks failed: HTTP 500", status_code=500)


@pytest.fixture
def project_root(tmp_path):
    """A directory holding an asana.yaml. Returns the root Path."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "asana.yaml").write_text(
        "asana:\n"
        "  access_token: file-token\n"
        "  base_url: https://hooks.example.com\n"
        "  workspace_id: '12345'\n"
        "  api:\n"
        "    timeout: 5\n"
        "    retry:\n"
        "      count: 1\n"
        "      delay: 0\n"
        "  logging:\n"
        f"    directory: '{root / 'logs'}'\n"
        "    flush_interval_ms: 10\n",
        encoding="utf-8",
    )
    return root
