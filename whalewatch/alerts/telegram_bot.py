"""Telegram bot for frenzy and mint alerts."""

from typing import Any, Dict, List, Optional
import html

from telegram import Bot
from telegram.error import TelegramError

from ..core.token_enricher import TokenMint
from ..utils.config import get_config
from ..utils.logger import LoggerMixin
from ..utils.metrics import alerts_sent, alert_delivery_duration


# Telegram rejects messages above 4096 characters
MAX_MINTS_PER_MESSAGE = 10


class TelegramAlerter(LoggerMixin):
    """Send alerts via Telegram bot."""

    def __init__(self):
        self.config = get_config()
        self.bot: Optional[Bot] = None
        self._initialized = False

    def initialize(self) -> None:
        """Initialize Telegram bot."""
        if self._initialized:
            return

        if not self.config.telegram_enabled:
            self.logger.info("Telegram alerts disabled")
            return

        if not self.config.telegram_bot_token:
            self.logger.warning("Telegram bot token not configured")
            return

        try:
            self.bot = Bot(token=self.config.telegram_bot_token)
            self._initialized = True
            self.logger.info("Telegram bot initialized")
        except Exception as e:
            self.logger.error(f"Failed to initialize Telegram bot: {e}")

    async def send_frenzy_alert(self, event: Dict[str, Any], chat_id: Optional[str] = None) -> bool:
        """
        Send a whale frenzy alert.

        Args:
            event: Stored frenzy event
            chat_id: Target chat (defaults to the configured chat)

        Returns:
            True if sent successfully
        """
        return await self._send(
            chat_id or self.config.telegram_chat_id,
            self._format_frenzy_message(event),
            subject=event.get("token_mint", ""),
        )

    async def send_mint_alert(
        self,
        chat_id: str,
        wallets: List[str],
        mints: List[TokenMint],
    ) -> bool:
        """
        Send a new-mint alert for one or more monitored wallets.

        Args:
            chat_id: Target chat
            wallets: Monitored wallets that produced the mints
            mints: Enriched mints

        Returns:
            True if sent successfully
        """
        return await self._send(
            chat_id,
            self._format_mint_message(wallets, mints),
            subject=f"{len(mints)} mint(s)",
        )

    async def _send(self, chat_id: Optional[str], message: str, subject: str) -> bool:
        if not self.config.telegram_enabled:
            return False

        if not self._initialized:
            self.initialize()

        if not self.bot or not chat_id:
            return False

        try:
            with alert_delivery_duration.labels(channel="telegram").time():
                await self.bot.send_message(
                    chat_id=chat_id,
                    text=message,
                    parse_mode="HTML",
                    disable_web_page_preview=True,
                )

            alerts_sent.labels(channel="telegram", status="success").inc()
            self.logger.info(f"Telegram alert sent to {chat_id} for {subject}")
            return True

        except TelegramError as e:
            self.logger.error(f"Telegram error: {e}")
            alerts_sent.labels(channel="telegram", status="error").inc()
            return False

    def _format_frenzy_message(self, event: Dict[str, Any]) -> str:
        """Format a frenzy event as HTML."""
        token = html.escape(event.get("token_mint", ""))
        wallets = event.get("participating_wallets") or []

        lines = [
            "🔥 <b>WHALE FRENZY DETECTED</b> 🔥",
            "",
            f"<b>Token:</b> <code>{token}</code>",
            f"<b>Whales:</b> {event.get('whale_count', len(wallets))}",
            f"<b>First buy:</b> {html.escape(str(event.get('first_buy_at') or '-'))}",
            "",
            "<b>🐋 Participating wallets</b>",
        ]
        for wallet in wallets:
            lines.append(f"• <code>{html.escape(_short(wallet))}</code>")

        if event.get("auto_buy_executed"):
            signature = html.escape(event.get("auto_buy_signature") or "")
            lines.extend([
                "",
                f"✅ <b>Auto-buy:</b> {event.get('auto_buy_amount_sol')} SOL",
                f"<a href='https://solscan.io/tx/{signature}'>Transaction</a>",
            ])
        elif event.get("auto_buy_error"):
            lines.extend(["", f"⚠️ <b>Auto-buy failed:</b> {html.escape(event['auto_buy_error'])}"])

        lines.extend([
            "",
            f"<a href='https://solscan.io/token/{token}'>Solscan</a> | "
            f"<a href='https://dexscreener.com/solana/{token}'>DexScreener</a>",
        ])
        return "\n".join(lines)

    def _format_mint_message(self, wallets: List[str], mints: List[TokenMint]) -> str:
        """Format new mints as HTML."""
        lines = [
            f"🚨 <b>NEW TOKEN MINT DETECTED</b> - {len(mints)} token(s)",
            "",
            f"<b>Monitored wallets:</b> {len(set(wallets))}",
        ]

        for mint in mints[:MAX_MINTS_PER_MESSAGE]:
            address = html.escape(mint.mint)
            symbol = html.escape(mint.symbol or "Unknown")
            name = html.escape(mint.name or "No name")
            lines.extend(["", f"<b>${symbol}</b> - {name}", f"<code>{address}</code>"])

            details = []
            if mint.market_cap_usd is not None:
                details.append(f"MC ${mint.market_cap_usd:,.0f}")
            if mint.liquidity_usd is not None:
                details.append(f"Liq ${mint.liquidity_usd:,.0f}")
            if mint.bonding_curve_percent is not None:
                details.append(f"Curve {mint.bonding_curve_percent:.1f}%")
            if mint.is_graduated:
                details.append("🎓 Graduated")
            if mint.launchpad:
                details.append(html.escape(mint.launchpad))
            if details:
                lines.append(" | ".join(details))

            lines.append(
                f"<a href='https://solscan.io/token/{address}'>Solscan</a> | "
                f"<a href='https://dexscreener.com/solana/{address}'>DexScreener</a>"
            )

        if len(mints) > MAX_MINTS_PER_MESSAGE:
            lines.extend(["", f"…and {len(mints) - MAX_MINTS_PER_MESSAGE} more"])

        return "\n".join(lines)


def _short(address: str) -> str:
    return f"{address[:4]}…{address[-4:]}" if len(address) > 12 else address
