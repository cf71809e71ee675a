"""
Asana Connector Error Hierarchy — Structured exceptions for startup and delivery.

Every error carries a message plus free-form context and serializes to JSON,
so startup failures and dropped deliveries can be written to the structured
log files next to normal entries.

Hierarchy:
    AsanaConnectorError
    ├── InvalidConfigurationError  — Malformed base URL or event options
    ├── MissingConfigurationError  — Required setting absent (workspace_id)
    ├── RemoteAPIError             — Asana API returned a failure
    │   ├── RemoteFetchError       — Listing webhooks failed (fatal)
    │   └── RemoteCreateError      — Creating one webhook failed (soft)
    ├── SubscriptionError          — Duplicate id / registration after start
    └── WebhookPayloadError        — Inbound delivery body is malformed
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class AsanaConnectorError(Exception):
    """
    Base error for all connector failures.
    All context is kept serializable for the JSON log files.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.execution_id: Optional[str] = context.get("execution_id")
        self.subscription_id: Optional[str] = context.get("subscription_id")
        self.resource_gid: Optional[str] = context.get("resource_gid")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "execution_id": self.execution_id,
            "subscription_id": self.subscription_id,
            "resource_gid": self.resource_gid,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("execution_id", "subscription_id", "resource_gid")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.resource_gid:
            parts.append(f"resource_gid={self.resource_gid}")
        if self.subscription_id:
            parts.append(f"subscription_id={self.subscription_id}")
        return " | ".join(parts)


class InvalidConfigurationError(AsanaConnectorError):
    """A configured value is malformed (base URL, webhook path, event options)."""

    def __init__(self, message: str, **context: Any):
        self.setting: Optional[str] = context.get("setting")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["setting"] = self.setting
        return d


class MissingConfigurationError(AsanaConnectorError):
    """A setting required by the registered subscriptions is absent."""

    def __init__(self, message: str, **context: Any):
        self.setting: Optional[str] = context.get("setting")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["setting"] = self.setting
        return d


class RemoteAPIError(AsanaConnectorError):
    """An Asana API call failed (non-2xx status or transport error)."""

    def __init__(self, message: str, **context: Any):
        self.method: Optional[str] = context.get("method")
        self.url: Optional[str] = context.get("url")
        self.status_code: Optional[int] = context.get("status_code")
        self.response_body: Optional[Any] = context.get("response_body")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["method"] = self.method
        d["url"] = self.url
        d["status_code"] = self.status_code
        return d


class RemoteFetchError(RemoteAPIError):
    """Listing the workspace's webhooks failed. Fatal at startup."""
    pass


class RemoteCreateError(RemoteAPIError):
    """Creating a single webhook failed or it came back inactive. Logged, not raised."""
    pass


class SubscriptionError(AsanaConnectorError):
    """Subscription registry misuse (duplicate id, registering after start)."""
    pass


class WebhookPayloadError(AsanaConnectorError):
    """
    Inbound notification body could not be parsed.
    Includes field-level details when pydantic produced them.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[List[Any]] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d
