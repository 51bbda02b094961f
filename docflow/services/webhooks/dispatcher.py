"""Signed, best-effort webhook delivery.

Each delivery is a JSON body ``{event, timestamp, data}`` signed with
HMAC-SHA256 over the exact bytes sent, using the endpoint's shared secret.
Failures are logged and never raised or retried.
"""

import asyncio
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.config import settings
from docflow.database.models import WebhookEndpoint
from docflow.repositories.business_repository import WebhookEndpointRepository
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


def serialize_payload(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, default=str, separators=(",", ":")).encode("utf-8")


def sign_payload(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of ``body`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def build_payload(event: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "event": event,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def _subscribed(endpoint: WebhookEndpoint, event: str) -> bool:
    events = endpoint.events or []
    return not events or event in events or "*" in events


class WebhookDispatcher:
    """Delivers lifecycle events to a business's registered endpoints."""

    def __init__(
        self,
        session: AsyncSession,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoints = WebhookEndpointRepository(session)
        self.timeout = timeout or settings.webhook.timeout
        self.transport = transport

    async def deliver(self, endpoint: WebhookEndpoint, payload: dict[str, Any]) -> int:
        """POST one signed payload.

        Returns:
            HTTP status code, or 0 if the request could not be made
        """
        body = serialize_payload(payload)
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign_payload(endpoint.secret, body),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(endpoint.url, content=body, headers=headers)
            if response.is_success:
                LOGGER.info(
                    f"Webhook delivered: {payload.get('event')}",
                    extra={"endpoint_id": str(endpoint.id), "status_code": response.status_code},
                )
            else:
                LOGGER.warning(
                    f"Webhook endpoint rejected delivery: {response.status_code}",
                    extra={"endpoint_id": str(endpoint.id), "event": payload.get("event")},
                )
            return response.status_code
        except Exception as e:
            LOGGER.error(
                f"Webhook delivery failed: {e}",
                extra={"endpoint_id": str(endpoint.id), "event": payload.get("event")},
            )
            return 0

    async def dispatch(self, business_id: Optional[uuid.UUID], event: str, data: dict[str, Any]) -> int:
        """Send ``event`` to every active subscribed endpoint of the business.

        Returns:
            Number of endpoints that answered 2xx
        """
        if not business_id:
            return 0

        try:
            endpoints = await self.endpoints.get_active_for_business(business_id)
        except Exception as e:
            LOGGER.error(
                f"Could not load webhook endpoints: {e}",
                extra={"business_id": str(business_id), "event": event},
            )
            return 0

        payload = build_payload(event, data)
        targets = [endpoint for endpoint in endpoints if _subscribed(endpoint, event)]
        # Posted concurrently, so the wait is bounded by one timeout.
        statuses = await asyncio.gather(*(self.deliver(endpoint, payload) for endpoint in targets))
        return sum(1 for status in statuses if 200 <= status < 300)
