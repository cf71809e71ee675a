"""
Asana Connector Handshake — answer Asana's X-Hook-Secret verification.

When a webhook is created, Asana POSTs once to the target with an
X-Hook-Secret header and only activates the webhook if the response echoes
it back. Every later delivery carries no secret and is acknowledged with an
empty 200 so Asana does not redeliver the batch.
"""

from __future__ import annotations

import logging
from typing import Optional

from asana_connector.engine.models import WebhookRequest, WebhookResponse

logger = logging.getLogger("asana_connector.engine.handshake")

HOOK_SECRET_HEADER = "X-Hook-Secret"


class HandshakeResponder:

    def secret(self, request: WebhookRequest) -> Optional[str]:
        return request.header(HOOK_SECRET_HEADER)

    def is_handshake(self, request: WebhookRequest) -> bool:
        return self.secret(request) is not None

    def respond(self, request: WebhookRequest) -> WebhookResponse:
        """Echo the secret on a handshake; otherwise a plain empty acknowledgment."""
        secret = self.secret(request)
        if secret is not None:
            logger.info(f"Asana Connector - answering webhook handshake on {request.path}")
            return WebhookResponse(status_code=200, headers={HOOK_SECRET_HEADER: secret})
        return WebhookResponse(status_code=200)
