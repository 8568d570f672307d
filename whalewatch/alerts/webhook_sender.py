"""Generic webhook sender for custom integrations."""

import asyncio
import hmac
import hashlib
import json
from typing import Any, Dict, Optional

import aiohttp

from ..utils.config import get_config
from ..utils.logger import LoggerMixin
from ..utils.metrics import alerts_sent, alert_delivery_duration
from ..utils.timeutil import to_iso, utc_now


class WebhookSender(LoggerMixin):
    """Send events via generic webhook with HMAC signature."""

    def __init__(self):
        self.config = get_config()
        self.session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Initialize HTTP session."""
        if not self.session:
            timeout = aiohttp.ClientTimeout(total=10)
            self.session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def send_event(self, event: str, data: Dict[str, Any]) -> bool:
        """
        Post an event to the configured webhook.

        Args:
            event: Event name (``whale_frenzy`` or ``mint_detected``)
            data: Event body

        Returns:
            True if the receiver accepted it
        """
        if not self.config.webhook_enabled:
            return False

        if not self.config.webhook_url:
            self.logger.warning("Webhook URL not configured")
            return False

        await self.initialize()

        payload = self._format_payload(event, data)
        body = json.dumps(payload, sort_keys=True)
        headers = {"Content-Type": "application/json"}
        if self.config.webhook_secret:
            headers["X-Webhook-Signature"] = self._generate_signature(body)

        try:
            with alert_delivery_duration.labels(channel="webhook").time():
                async with self.session.post(
                    self.config.webhook_url,
                    data=body,
                    headers=headers,
                ) as response:
                    if response.status in [200, 201, 202, 204]:
                        alerts_sent.labels(channel="webhook", status="success").inc()
                        self.logger.info(f"Webhook {event} event sent")
                        return True

                    error_text = await response.text()
                    self.logger.error(f"Webhook failed: {response.status} - {error_text}")
                    alerts_sent.labels(channel="webhook", status="error").inc()
                    return False

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Failed to send webhook event: {e}")
            alerts_sent.labels(channel="webhook", status="error").inc()
            return False

    def _format_payload(self, event: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "event": event,
            "timestamp": to_iso(utc_now()),
            "data": data,
        }

    def _generate_signature(self, body: str) -> str:
        """Hex HMAC-SHA256 of the exact request body."""
        return hmac.new(
            self.config.webhook_secret.encode(),
            body.encode(),
            hashlib.sha256,
        ).hexdigest()

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
