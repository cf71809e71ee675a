"""
Asana Connector Models — pydantic shapes for the data crossing the connector.

    EventOptions     — what a consumer subscribes to (resource gid + action filter)
    RemoteWebhook    — snapshot of a webhook as reported by Asana
    Notification     — one change event inside an inbound delivery
    WebhookRequest   — normalized inbound HTTP delivery
    WebhookResponse  — normalized outbound HTTP response
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from asana_connector.engine.errors import WebhookPayloadError

WILDCARD = "*"

# https://developers.asana.com/docs/webhooks
ASANA_ACTIONS = frozenset({"added", "removed", "changed", "deleted", "undeleted"})
ACTION_FILTERS = ASANA_ACTIONS | {WILDCARD}


class EventOptions(BaseModel):
    """Options passed to AsanaConnector.on()."""

    model_config = ConfigDict(frozen=True)

    gid: str
    asana_event: str = WILDCARD

    @field_validator("gid")
    @classmethod
    def validate_gid(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("gid must not be empty")
        return v

    @field_validator("asana_event", mode="before")
    @classmethod
    def validate_asana_event(cls, v: Optional[str]) -> str:
        if v is None or v == "":
            return WILDCARD
        if v not in ACTION_FILTERS:
            raise ValueError(
                f"asana_event must be one of {sorted(ACTION_FILTERS)}, got '{v}'"
            )
        return v

    def matches(self, action: str) -> bool:
        """True if a notification with this action should reach the subscriber."""
        return self.asana_event == WILDCARD or self.asana_event == action


class RemoteWebhook(BaseModel):
    """A webhook registered on the Asana side. Read-only input to reconciliation."""

    gid: Optional[str] = None
    resource_gid: str
    target: str
    active: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteWebhook":
        """Build from Asana's ``{"gid", "resource": {"gid"}, "target", "active"}`` shape."""
        resource = data.get("resource") or {}
        return cls(
            gid=data.get("gid"),
            resource_gid=str(resource.get("gid", "")),
            target=data.get("target", ""),
            active=bool(data.get("active", False)),
        )


class Notification(BaseModel):
    """One Asana change event. Resource-context fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    action: str

    def fields(self) -> Dict[str, Any]:
        """All fields, including the service-defined extras."""
        return self.model_dump()


class WebhookRequest(BaseModel):
    """Normalized inbound delivery (extracted from a Starlette Request)."""

    method: str = "POST"
    path: str = ""
    headers: Dict[str, str] = {}
    body: Optional[Any] = None
    client_ip: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


class WebhookResponse(BaseModel):
    """Normalized response. An empty body means an empty HTTP body."""

    status_code: int = 200
    body: Any = None
    headers: Dict[str, str] = {}


def parse_notifications(body: Any) -> List[Notification]:
    """
    Parse the ``events`` batch of a notification delivery.

    Raises:
        WebhookPayloadError if the body is not an object, has no ``events``
        list, or an event lacks an ``action``.
    """
    if not isinstance(body, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")

    events = body.get("events")
    if not isinstance(events, list):
        raise WebhookPayloadError("Webhook body has no 'events' list")

    try:
        return [Notification.model_validate(event) for event in events]
    except ValidationError as e:
        raise WebhookPayloadError(
            "Webhook event failed validation",
            validation_errors=e.errors(include_url=False),
        ) from e
