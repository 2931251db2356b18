"""Outbound email webhook client.

Emails are not sent by this service; each email event is POSTed to an
automation webhook configured per event type.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import json
import logging

import httpx

from core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class WebhookResult:
    """Outcome of one webhook POST."""

    ok: bool
    status_code: Optional[int]
    body: Dict[str, Any]
    error: Optional[str] = None


def parse_response_body(response: httpx.Response) -> Dict[str, Any]:
    """JSON body when the upstream returned JSON, else ``{"message": text}``."""
    try:
        parsed = response.json()
    except (json.JSONDecodeError, ValueError):
        return {"message": response.text}
    return parsed if isinstance(parsed, dict) else {"message": parsed}


class EmailWebhookClient:
    """Async client that delivers email event payloads to a webhook URL."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            timeout: Request timeout in seconds, defaults to WEBHOOK_TIMEOUT_SECONDS
            transport: Optional httpx transport (used by tests)
        """
        self.timeout = timeout or settings.webhook_timeout_seconds
        self.transport = transport

    async def post(
        self,
        url: str,
        payload: Dict[str, Any],
        secret: Optional[str] = None,
    ) -> WebhookResult:
        """
        POST ``payload`` as JSON, with ``Bearer <secret>`` when a secret is set.

        Network errors are returned as a failed result, not raised.
        """
        headers = {"Content-Type": "application/json"}
        if secret:
            headers["Authorization"] = f"Bearer {secret}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Webhook request to {url} failed: {e}")
            return WebhookResult(ok=False, status_code=None, body={}, error=str(e))

        body = parse_response_body(response)
        if response.is_success:
            return WebhookResult(ok=True, status_code=response.status_code, body=body)

        error = f"Webhook returned {response.status_code}: {response.text}"
        logger.warning(f"Webhook {url} responded {response.status_code}")
        return WebhookResult(ok=False, status_code=response.status_code, body=body, error=error)
