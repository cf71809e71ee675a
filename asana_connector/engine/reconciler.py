"""
Asana Connector Webhook Reconciler — make sure every subscribed resource has a webhook.

Runs once at startup:
    1. No subscriptions           → nothing to do, no API calls
    2. workspace_id missing       → MissingConfigurationError (fatal)
    3. Build target URL           → validate_base_url() + webhook path (fatal if invalid)
    4. List workspace webhooks    → RemoteFetchError on failure (fatal)
    5. Per subscription, in order → reuse an active (gid, target) match or create one

Step 5 is best-effort: a create that fails or comes back inactive is logged
and the next subscription is still reconciled. Nothing is rolled back.
Creates are awaited one at a time so two requests for the same resource
never overlap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from asana_connector.engine.client import WebhookAPI
from asana_connector.engine.config import ConnectorConfig
from asana_connector.engine.errors import (
    MissingConfigurationError,
    RemoteCreateError,
    RemoteFetchError,
)
from asana_connector.engine.logging import AsyncLogQueue, log_webhook_registration
from asana_connector.engine.models import RemoteWebhook
from asana_connector.engine.registry import Subscription

logger = logging.getLogger("asana_connector.engine.reconciler")

EXISTING = "existing"
CREATED = "created"
INACTIVE = "inactive"
FAILED = "failed"


@dataclass
class ReconcileResult:
    """Outcome of reconciling one subscription."""
    subscription_id: str
    resource_gid: str
    target: str
    status: str                        # existing | created | inactive | failed
    webhook_gid: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (EXISTING, CREATED)


class WebhookReconciler:
    """Compares desired subscriptions to Asana's webhooks and creates the missing ones."""

    def __init__(
        self,
        client: WebhookAPI,
        config: ConnectorConfig,
        log_queue: Optional[AsyncLogQueue] = None,
        connector_id: Optional[str] = None,
    ):
        self._client = client
        self._config = config
        self._log_queue = log_queue
        self._connector_id = connector_id

    async def reconcile(self, subscriptions: Iterable[Subscription]) -> List[ReconcileResult]:
        """
        Reconcile ``subscriptions`` (registration order) against Asana.

        Raises:
            MissingConfigurationError: subscriptions exist but workspace_id is unset.
            InvalidConfigurationError: base_url is malformed.
            RemoteFetchError: the webhook list could not be fetched.
        """
        subscriptions = list(subscriptions)
        if not subscriptions:
            return []

        workspace_id = self._config.workspace_id
        if not workspace_id:
            raise MissingConfigurationError(
                "Asana Connector - error creating event. "
                "You must provide a workspace_id in your connector configuration",
                setting="workspace_id",
            )

        target = self._config.webhook_url()

        try:
            webhooks = await self._client.get_webhooks(workspace_id)
        except Exception as e:
            raise RemoteFetchError(
                f"Failed to list webhooks for workspace {workspace_id}: {e}",
                workspace_id=workspace_id,
                status_code=getattr(e, "status_code", None),
            ) from e

        # Webhooks created during this pass count as existing for later subscriptions
        known: List[RemoteWebhook] = list(webhooks)
        results: List[ReconcileResult] = []

        for subscription in subscriptions:
            result = await self._reconcile_one(subscription, target, known)
            results.append(result)

        created = sum(1 for r in results if r.status == CREATED)
        failed = sum(1 for r in results if not r.ok)
        logger.info(
            f"Webhook reconciliation finished: {len(results)} subscriptions, "
            f"{created} created, {failed} failed"
        )
        return results

    async def _reconcile_one(
        self,
        subscription: Subscription,
        target: str,
        known: List[RemoteWebhook],
    ) -> ReconcileResult:
        gid = subscription.resource_gid

        existing = self._find_active(known, gid, target)
        if existing is not None:
            logger.info(
                f"Asana Connector - using existing webhook "
                f"(gid: {existing.resource_gid}, target: {existing.target})"
            )
            return self._record(subscription, target, EXISTING, webhook_gid=existing.gid)

        try:
            webhook = await self._client.create_webhook(gid, target)
        except Exception as e:
            error = RemoteCreateError(
                f"Webhook creation failed for resource {gid}: {e}",
                subscription_id=subscription.id,
                resource_gid=gid,
                status_code=getattr(e, "status_code", None),
            )
            logger.error(f"Asana Connector - {error.message}")
            return self._record(subscription, target, FAILED, error=error.message)

        if webhook.active:
            known.append(webhook)
            logger.info(
                f"Asana Connector - webhook registered successfully "
                f"(gid: {webhook.gid}, target: {webhook.target})"
            )
            return self._record(subscription, target, CREATED, webhook_gid=webhook.gid)

        logger.error(
            f"Asana Connector - webhook registration failure "
            f"(gid: {webhook.gid}, target: {webhook.target})"
        )
        return self._record(
            subscription, target, INACTIVE,
            webhook_gid=webhook.gid,
            error="Webhook created but not active (handshake not completed)",
        )

    @staticmethod
    def _find_active(
        webhooks: List[RemoteWebhook],
        resource_gid: str,
        target: str,
    ) -> Optional[RemoteWebhook]:
        for webhook in webhooks:
            if webhook.resource_gid == resource_gid and webhook.target == target and webhook.active:
                return webhook
        return None

    def _record(
        self,
        subscription: Subscription,
        target: str,
        status: str,
        webhook_gid: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ReconcileResult:
        if self._log_queue:
            self._log_queue.push(log_webhook_registration(
                status=status,
                resource_gid=subscription.resource_gid,
                target=target,
                connector_id=self._connector_id,
                subscription_id=subscription.id,
                webhook_gid=webhook_gid,
                error=error,
            ))
        return ReconcileResult(
            subscription_id=subscription.id,
            resource_gid=subscription.resource_gid,
            target=target,
            status=status,
            webhook_gid=webhook_gid,
            error=error,
        )
