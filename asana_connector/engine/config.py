"""
Asana Connector Configuration — Load and validate asana.yaml at startup.

Usage:
    from asana_connector.engine.config import load_connector_config, get_connector_config

The base URL is validated lazily by validate_base_url(), because it is only
required once at least one subscription has been registered.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from asana_connector.engine.errors import InvalidConfigurationError

DEFAULT_WEBHOOK_PATH = "/asana-connector/webhook"
DEFAULT_API_URL = "https://app.asana.com/api/1.0"
CONFIG_FILENAME = "asana.yaml"

# https://host[.domain...][:port] with an optional trailing slash and nothing else
_BASE_URL_RE = re.compile(r"^(https://[\w-]+(\.[\w-]+)*(:\d{1,5})?)/?$", re.ASCII)

# Environment variable → config field
ENV_OVERRIDES = {
    "ASANA_ACCESS_TOKEN": "access_token",
    "ASANA_BASE_URL": "base_url",
    "ASANA_WEBHOOK_PATH": "webhook_path",
    "ASANA_WORKSPACE_ID": "workspace_id",
}


def validate_base_url(url: Any) -> str:
    """
    Return the canonical externally reachable base URL.

    Accepts ``https://host[:port]`` with an optional trailing slash. Anything
    else (other schemes, paths, queries, credentials, non-strings) raises
    InvalidConfigurationError before any webhook target is built from it.
    """
    if not isinstance(url, str):
        raise InvalidConfigurationError(f"Invalid url: {url}", setting="base_url")
    match = _BASE_URL_RE.match(url)
    if not match:
        raise InvalidConfigurationError(f"Invalid url: {url}", setting="base_url")
    return match.group(1)


# ---------------------------------------------------------------------------
# Pydantic models for asana.yaml
# ---------------------------------------------------------------------------

class RetryConfig(BaseModel):
    count: int = 3
    delay: float = 1.0
    backoff: str = "exponential"

    @field_validator("backoff")
    @classmethod
    def validate_backoff(cls, v: str) -> str:
        if v not in ("exponential", "linear", "fixed"):
            raise ValueError(f"backoff must be exponential/linear/fixed, got '{v}'")
        return v


class AsanaAPIConfig(BaseModel):
    url: str = DEFAULT_API_URL
    timeout: float = 30.0
    page_size: int = 100
    retry: RetryConfig = RetryConfig()


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".asana_connector/logs"
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class ConnectorConfig(BaseModel):
    """Root model for asana.yaml."""
    access_token: str
    base_url: Optional[str] = None
    webhook_path: Optional[str] = None
    workspace_id: Optional[str] = None

    api: AsanaAPIConfig = AsanaAPIConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("access_token")
    @classmethod
    def validate_access_token(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("access_token must not be empty")
        return v

    @field_validator("webhook_path")
    @classmethod
    def validate_webhook_path(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith("/"):
            raise ValueError(f"webhook_path must start with '/', got '{v}'")
        return v

    @property
    def effective_webhook_path(self) -> str:
        """Configured webhook path, or the default one."""
        return self.webhook_path or DEFAULT_WEBHOOK_PATH

    def webhook_url(self) -> str:
        """Full webhook target URL that Asana will POST to."""
        return validate_base_url(self.base_url) + self.effective_webhook_path


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_connector_config: Optional[ConnectorConfig] = None


def _find_config_file() -> Path:
    """Find asana.yaml by walking up from the CWD."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent / CONFIG_FILENAME
    return current / CONFIG_FILENAME


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[field_name] = value
    return data


def load_connector_config(config_path: Optional[str] = None) -> ConnectorConfig:
    """
    Load and validate asana.yaml.

    Args:
        config_path: Explicit path to asana.yaml. If None, auto-discovers.

    Returns:
        Validated ConnectorConfig instance.

    Environment variables (ASANA_ACCESS_TOKEN, ASANA_BASE_URL,
    ASANA_WEBHOOK_PATH, ASANA_WORKSPACE_ID) take precedence over the file.
    A missing file is allowed as long as the environment supplies the token.
    """
    global _connector_config

    path = Path(config_path) if config_path else _find_config_file()

    raw: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    # asana.yaml may wrap everything under an "asana:" key
    section = raw.get("asana", raw) if isinstance(raw, dict) else raw
    if not isinstance(section, dict):
        raise InvalidConfigurationError(
            f"{path.name} must contain a mapping", setting="asana",
        )
    config_data = _apply_env_overrides(dict(section))

    _connector_config = ConnectorConfig(**config_data)
    return _connector_config


def get_connector_config() -> ConnectorConfig:
    """Get the currently loaded connector config, loading if necessary."""
    global _connector_config
    if _connector_config is None:
        _connector_config = load_connector_config()
    return _connector_config
