"""
Asana Connector API Client — Outbound calls to the Asana REST API.

Pipeline (per call):
    1. Build URL from the configured API base + path
    2. Attach bearer token
    3. Execute via httpx.AsyncClient (one pooled client per AsanaClient)
    4. Retry with backoff on 429, 5xx and transport errors
    5. Unwrap Asana's ``{"data": ...}`` envelope
    6. Raise RemoteAPIError on anything else

Only the webhook endpoints the connector needs are wrapped; request() gives
raw access for everything else (AsanaConnector.sdk() returns this client).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from asana_connector.engine.config import AsanaAPIConfig, RetryConfig
from asana_connector.engine.errors import RemoteAPIError
from asana_connector.engine.models import RemoteWebhook

logger = logging.getLogger("asana_connector.engine.client")


class WebhookAPI(Protocol):
    """The slice of the Asana API the reconciler depends on."""

    async def get_webhooks(self, workspace_id: str) -> List[RemoteWebhook]: ...

    async def create_webhook(self, resource_gid: str, target: str) -> RemoteWebhook: ...


class AsanaClient:
    """
    Async Asana API client.

    Usage:
        async with AsanaClient(access_token="...") as client:
            hooks = await client.get_webhooks("12345")
    """

    def __init__(
        self,
        access_token: str,
        api_config: Optional[AsanaAPIConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_config = api_config or AsanaAPIConfig()
        self._base_url = self._api_config.url.rstrip("/")
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(self._api_config.timeout, connect=10.0),
            transport=transport,
        )

    @property
    def retry_config(self) -> RetryConfig:
        return self._api_config.retry

    # -----------------------------------------------------------------------
    # Webhooks
    # -----------------------------------------------------------------------

    async def get_webhooks(self, workspace_id: str) -> List[RemoteWebhook]:
        """List every webhook in a workspace, following pagination."""
        webhooks: List[RemoteWebhook] = []
        params: Dict[str, Any] = {
            "workspace": workspace_id,
            "limit": self._api_config.page_size,
        }
        while True:
            body = await self.request("GET", "/webhooks", params=params)
            for item in body.get("data") or []:
                webhooks.append(RemoteWebhook.from_api(item))

            next_page = body.get("next_page") or {}
            offset = next_page.get("offset")
            if not offset:
                break
            params = {**params, "offset": offset}

        logger.debug(f"Fetched {len(webhooks)} webhooks for workspace {workspace_id}")
        return webhooks

    async def create_webhook(self, resource_gid: str, target: str) -> RemoteWebhook:
        """
        Create a webhook for ``resource_gid`` posting to ``target``.

        Asana performs the X-Hook-Secret handshake against ``target`` before
        answering, so the inbound endpoint must already be serving.
        """
        body = await self.request(
            "POST",
            "/webhooks",
            json={"data": {"resource": resource_gid, "target": target}},
        )
        return RemoteWebhook.from_api(body.get("data") or {})

    async def delete_webhook(self, webhook_gid: str) -> None:
        await self.request("DELETE", f"/webhooks/{webhook_gid}")

    # -----------------------------------------------------------------------
    # HTTP
    # -----------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Execute an API call with retry.

        Returns:
            The decoded JSON body (``{}`` when the body is empty).

        Raises:
            RemoteAPIError on a non-retryable status or once retries run out.
        """
        method = method.upper()
        url = f"{self._base_url}{path}"
        retry = self._api_config.retry
        start_time = time.monotonic()

        last_error: Optional[str] = None
        last_status: Optional[int] = None
        last_body: Any = None

        for attempt in range(retry.count + 1):
            try:
                status_code, body = await self._http_call(method, url, params, json)
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt < retry.count:
                    delay = self._calc_delay(attempt, retry.delay, retry.backoff)
                    logger.warning(
                        f"Asana {method} {path} error: {last_error}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{retry.count})"
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            last_status, last_body = status_code, body
            if 200 <= status_code < 300:
                duration_ms = (time.monotonic() - start_time) * 1000
                logger.debug(f"Asana {method} {path} → {status_code} ({duration_ms:.1f}ms)")
                return body if isinstance(body, dict) else {}

            last_error = f"HTTP {status_code}"
            if self._is_retryable(status_code) and attempt < retry.count:
                delay = self._calc_delay(attempt, retry.delay, retry.backoff)
                logger.info(
                    f"Asana {method} {path} got {status_code}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{retry.count})"
                )
                await asyncio.sleep(delay)
                continue
            break

        raise RemoteAPIError(
            f"Asana {method} {path} failed: {last_error}",
            method=method,
            url=url,
            status_code=last_status,
            response_body=last_body,
        )

    async def _http_call(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        json: Optional[Dict[str, Any]],
    ) -> Tuple[int, Any]:
        response = await self._client.request(method, url, params=params, json=json)
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return response.status_code, body

    @staticmethod
    def _is_retryable(status_code: int) -> bool:
        return status_code == 429 or status_code >= 500

    @staticmethod
    def _calc_delay(attempt: int, base_delay: float, backoff_type: str) -> float:
        """Calculate retry delay with backoff."""
        if backoff_type == "exponential":
            return base_delay * (2 ** attempt)
        elif backoff_type == "linear":
            return base_delay * (attempt + 1)
        return base_delay

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AsanaClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
