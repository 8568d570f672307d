"""Fan-out of job events to every enabled alert channel."""

import asyncio
from typing import Any, Dict, List, Optional

from ..core.token_enricher import TokenMint
from ..utils.config import get_config
from ..utils.logger import LoggerMixin
from .telegram_bot import TelegramAlerter
from .webhook_sender import WebhookSender


class AlertDispatcher(LoggerMixin):
    """Sends each event through Telegram and the webhook in parallel."""

    def __init__(self, telegram: TelegramAlerter = None, webhook: WebhookSender = None):
        self.config = get_config()
        self.telegram = telegram or TelegramAlerter()
        self.webhook = webhook or WebhookSender()

    async def initialize(self) -> None:
        self.telegram.initialize()
        await self.webhook.initialize()

    async def close(self) -> None:
        await self.webhook.close()

    async def frenzy_detected(self, event: Dict[str, Any]) -> int:
        """Alert on a frenzy event. Returns the number of channels that delivered."""
        tasks = []
        if self.config.telegram_enabled:
            tasks.append(self.telegram.send_frenzy_alert(event))
        if self.config.webhook_enabled:
            tasks.append(self.webhook.send_event("whale_frenzy", event))

        return await self._gather(tasks, f"frenzy on {event.get('token_mint')}")

    async def mint_detected(self, chat_id: Optional[str], wallets: List[str], mints: List[TokenMint]) -> int:
        """Alert one Telegram target (and the webhook) about new mints; no chat means webhook only."""
        tasks = []
        if self.config.telegram_enabled and chat_id:
            tasks.append(self.telegram.send_mint_alert(chat_id, wallets, mints))
        if self.config.webhook_enabled:
            tasks.append(self.webhook.send_event("mint_detected", {
                "target": chat_id,
                "wallets": wallets,
                "mints": [m.to_dict() for m in mints],
            }))

        return await self._gather(tasks, f"{len(mints)} mint(s) for {chat_id or 'webhook'}")

    async def _gather(self, tasks: list, subject: str) -> int:
        if not tasks:
            self.logger.warning("No alert channels enabled")
            return 0

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self.logger.error(f"Alert channel failed for {subject}: {result}")

        success_count = sum(1 for r in results if r is True)
        self.logger.info(f"Alerts sent for {subject}: {success_count}/{len(tasks)} successful")
        return success_count
