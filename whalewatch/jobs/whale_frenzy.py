"""Whale frenzy detection: several tracked whales buying the same token at once."""

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import BadRequestError, NotFoundError
from ..core.swap import JupiterSwapExecutor
from ..storage.database import Database
from ..utils.config import get_config
from ..utils.logger import LoggerMixin
from ..utils.metrics import auto_buys, frenzies_detected
from ..utils.timeutil import parse_timestamp, to_iso, utc_now


NO_TRADING_WALLET = "No trading wallet configured"


@dataclass
class WhaleBuy:
    """A buy by a (possibly tracked) whale wallet."""

    wallet_address: str
    token_mint: str
    amount_sol: Optional[float] = None
    timestamp: datetime = field(default_factory=utc_now)
    signature: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WhaleBuy":
        """Build from an API payload, requiring wallet and token."""
        wallet = data.get("wallet_address")
        token = data.get("token_mint")
        if not wallet or not token:
            raise BadRequestError("wallet_address and token_mint required")

        amount = data.get("amount_sol")
        try:
            amount = float(amount) if amount is not None else None
        except (TypeError, ValueError):
            raise BadRequestError(f"Invalid amount_sol: {amount!r}")

        try:
            timestamp = parse_timestamp(data.get("timestamp"))
        except (TypeError, ValueError, OverflowError, OSError):
            raise BadRequestError(f"Invalid timestamp: {data.get('timestamp')!r}")

        return cls(
            wallet_address=wallet,
            token_mint=token,
            amount_sol=amount,
            timestamp=timestamp or utc_now(),
            signature=data.get("signature"),
        )


@dataclass
class FrenzyConfig:
    """Per-user frenzy thresholds and auto-buy settings."""

    user_id: str
    min_whales_for_frenzy: int = 3
    time_window_seconds: int = 300
    auto_buy_enabled: bool = False
    buy_amount_sol: float = 0.1
    max_slippage_bps: int = 500
    cooldown_seconds: int = 600
    is_active: bool = True

    @classmethod
    def defaults_for(cls, user_id: str) -> "FrenzyConfig":
        """Config seeded from application settings."""
        config = get_config()
        return cls(
            user_id=user_id,
            min_whales_for_frenzy=config.frenzy_min_whales,
            time_window_seconds=config.frenzy_time_window_seconds,
            buy_amount_sol=config.frenzy_buy_amount_sol,
            max_slippage_bps=config.frenzy_max_slippage_bps,
            cooldown_seconds=config.frenzy_cooldown_seconds,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "FrenzyConfig":
        return cls(
            user_id=row["user_id"],
            min_whales_for_frenzy=int(row["min_whales_for_frenzy"]),
            time_window_seconds=int(row["time_window_seconds"]),
            auto_buy_enabled=bool(row["auto_buy_enabled"]),
            buy_amount_sol=float(row["buy_amount_sol"]),
            max_slippage_bps=int(row["max_slippage_bps"]),
            cooldown_seconds=int(row["cooldown_seconds"]),
            is_active=bool(row["is_active"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class FrenzyConfigUpdate(BaseModel):
    """Fields accepted when saving a config; JSON values are coerced to column types."""

    model_config = ConfigDict(extra="forbid")

    min_whales_for_frenzy: Optional[int] = Field(default=None, ge=2)
    time_window_seconds: Optional[int] = Field(default=None, gt=0)
    auto_buy_enabled: Optional[bool] = None
    buy_amount_sol: Optional[float] = Field(default=None, ge=0)
    max_slippage_bps: Optional[int] = Field(default=None, ge=0, le=10_000)
    cooldown_seconds: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    @classmethod
    def parse(cls, values: Dict[str, Any]) -> "FrenzyConfigUpdate":
        """Validate ``values``, raising ``BadRequestError`` on the first bad field."""
        try:
            return cls(**values)
        except ValidationError as e:
            error = e.errors()[0]
            name = ".".join(str(part) for part in error["loc"])
            raise BadRequestError(f"Invalid config field {name}: {error['msg']}")


@dataclass
class FrenzyEvent:
    """A detected frenzy, with the outcome of the optional auto-buy."""

    user_id: str
    token_mint: str
    whale_count: int
    participating_wallets: List[str]
    first_buy_at: Optional[datetime]
    last_buy_at: datetime
    detected_at: datetime
    auto_buy_executed: bool = False
    auto_buy_signature: Optional[str] = None
    auto_buy_amount_sol: Optional[float] = None
    auto_buy_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("first_buy_at", "last_buy_at", "detected_at"):
            if data[key] is not None:
                data[key] = to_iso(data[key])
        return data


class WhaleFrenzyDetector(LoggerMixin):
    """
    Detects frenzies for every user whose whale list contains the buyer.

    Each user has their own whale list, window and cooldown, so a single
    buy can trigger independent frenzies for several users.
    """

    def __init__(
        self,
        db: Database,
        swap_executor: Optional[JupiterSwapExecutor] = None,
        dispatcher=None,
    ):
        self.db = db
        self.swap_executor = swap_executor
        self.dispatcher = dispatcher
        # One lock per (user, token) that has reached its threshold
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def _frenzy_lock(self, user_id: str, token_mint: str) -> asyncio.Lock:
        return self._locks.setdefault((user_id, token_mint), asyncio.Lock())

    async def process_buy(self, buy: WhaleBuy) -> List[Dict[str, Any]]:
        """
        Record a whale buy and evaluate it against every active config.

        Args:
            buy: The incoming buy

        Returns:
            One result dict per user whose frenzy fired
        """
        self.logger.info(f"Processing whale buy: {buy.wallet_address} bought {buy.token_mint}")

        await self.db.record_wallet_transaction(
            wallet_address=buy.wallet_address,
            token_mint=buy.token_mint,
            transaction_type="buy",
            amount_sol=buy.amount_sol,
            timestamp=buy.timestamp,
            signature=buy.signature,
        )

        results = []
        for row in await self.db.get_active_frenzy_configs():
            config = FrenzyConfig.from_row(row)

            if not await self.db.is_active_whale(config.user_id, buy.wallet_address):
                continue

            event = await self._evaluate(config, buy)
            if event is None:
                continue

            results.append({
                "user_id": config.user_id,
                "frenzy_detected": True,
                "whale_count": event.whale_count,
                "auto_buy_executed": event.auto_buy_executed,
            })

        return results

    async def _evaluate(self, config: FrenzyConfig, buy: WhaleBuy) -> Optional[FrenzyEvent]:
        now = utc_now()
        window_start = now - timedelta(seconds=config.time_window_seconds)

        whales = await self.db.get_active_whale_addresses(config.user_id)
        recent_buys = await self.db.get_recent_buys(whales, window_start, token_mint=buy.token_mint)

        unique_whales = {b["wallet_address"] for b in recent_buys}
        unique_whales.add(buy.wallet_address)

        self.logger.debug(
            f"Token {buy.token_mint}: {len(unique_whales)} whales buying "
            f"within {config.time_window_seconds}s for user {config.user_id}"
        )

        if len(unique_whales) < config.min_whales_for_frenzy:
            return None

        # Cooldown check through event insert runs one buy at a time per (user, token)
        async with self._frenzy_lock(config.user_id, buy.token_mint):
            return await self._fire(config, buy, recent_buys, unique_whales)

    async def _fire(
        self,
        config: FrenzyConfig,
        buy: WhaleBuy,
        recent_buys: List[Dict[str, Any]],
        unique_whales: set,
    ) -> Optional[FrenzyEvent]:
        now = utc_now()
        cooldown_start = now - timedelta(seconds=config.cooldown_seconds)
        if await self.db.has_recent_frenzy(config.user_id, buy.token_mint, cooldown_start):
            self.logger.info(f"Frenzy on cooldown for {buy.token_mint} (user {config.user_id})")
            return None

        timestamps = [parse_timestamp(b["timestamp"]) for b in recent_buys]
        timestamps.append(buy.timestamp)

        event = FrenzyEvent(
            user_id=config.user_id,
            token_mint=buy.token_mint,
            whale_count=len(unique_whales),
            participating_wallets=sorted(unique_whales),
            first_buy_at=min(timestamps),
            last_buy_at=now,
            detected_at=now,
        )

        self.logger.warning(
            f"FRENZY DETECTED for user {config.user_id}: "
            f"{event.whale_count} whales on {buy.token_mint}"
        )
        frenzies_detected.inc()

        if config.auto_buy_enabled and config.buy_amount_sol > 0:
            await self._auto_buy(config, event)

        await self.db.insert_frenzy_event(event.to_dict())

        if self.dispatcher:
            await self.dispatcher.frenzy_detected(event.to_dict())

        return event

    async def _auto_buy(self, config: FrenzyConfig, event: FrenzyEvent) -> None:
        """Buy into the frenzy token; failures are recorded on the event."""
        secrets = await self.db.get_user_secrets(config.user_id)
        if not secrets or not secrets.get("trading_private_key"):
            event.auto_buy_error = NO_TRADING_WALLET
            auto_buys.labels(status="no_wallet").inc()
            return

        if self.swap_executor is None:
            event.auto_buy_error = "Swap executor not available"
            auto_buys.labels(status="error").inc()
            return

        self.logger.info(f"Executing auto-buy: {config.buy_amount_sol} SOL on {event.token_mint}")

        try:
            signature = await self.swap_executor.buy(
                token_mint=event.token_mint,
                amount_sol=config.buy_amount_sol,
                slippage_bps=config.max_slippage_bps,
                private_key=secrets["trading_private_key"],
                rpc_url=secrets.get("rpc_url") or "",
            )
        except Exception as e:
            event.auto_buy_error = str(e)
            auto_buys.labels(status="error").inc()
            self.logger.error(f"Auto-buy failed for {event.token_mint}: {e}")
            return

        event.auto_buy_executed = True
        event.auto_buy_signature = signature
        event.auto_buy_amount_sol = config.buy_amount_sol
        auto_buys.labels(status="success").inc()
        self.logger.info(f"Auto-buy successful: {signature}")

    async def check_frenzy(self, user_id: Optional[str]) -> Dict[str, Any]:
        """Polling view: every token currently meeting the user's threshold."""
        if not user_id:
            raise BadRequestError("user_id required")

        row = await self.db.get_frenzy_config(user_id)
        if not row:
            raise NotFoundError("No config found")
        config = FrenzyConfig.from_row(row)

        whales = await self.db.get_active_whale_addresses(user_id)
        if not whales:
            return {"frenzies": [], "message": "No whale wallets configured"}

        window_start = utc_now() - timedelta(seconds=config.time_window_seconds)
        token_buys: Dict[str, set] = {}
        for buy in await self.db.get_recent_buys(whales, window_start):
            token_buys.setdefault(buy["token_mint"], set()).add(buy["wallet_address"])

        frenzies = [
            {
                "token_mint": token,
                "whale_count": len(wallets),
                "participating_wallets": sorted(wallets),
            }
            for token, wallets in token_buys.items()
            if len(wallets) >= config.min_whales_for_frenzy
        ]

        return {"frenzies": frenzies, "config": config.to_dict()}

    async def save_config(self, user_id: Optional[str], **values: Any) -> Dict[str, Any]:
        """Create or update a user's config; unspecified fields keep their value."""
        if not user_id:
            raise BadRequestError("user_id required")

        existing = await self.db.get_frenzy_config(user_id)
        config = FrenzyConfig.from_row(existing) if existing else FrenzyConfig.defaults_for(user_id)

        update = FrenzyConfigUpdate.parse(values)
        for key, value in update.model_dump(exclude_none=True).items():
            setattr(config, key, value)

        row = await self.db.save_frenzy_config(config.to_dict())
        return FrenzyConfig.from_row(row).to_dict()

    async def save_trading_wallet(
        self,
        user_id: Optional[str],
        private_key: Optional[str],
        rpc_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store the key auto-buys sign with. The key is never returned."""
        if not user_id or not private_key:
            raise BadRequestError("user_id and trading_private_key required")

        await self.db.save_user_secrets(user_id, private_key.strip(), rpc_url or "")
        self.logger.info(f"Trading wallet saved for user {user_id}")
        return {"user_id": user_id, "rpc_url": rpc_url or ""}

    async def add_whale(
        self,
        user_id: Optional[str],
        wallet_address: Optional[str],
        nickname: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not user_id or not wallet_address:
            raise BadRequestError("user_id and wallet_address required")
        return await self.db.add_whale_wallet(user_id, wallet_address, nickname)

    async def remove_whale(self, user_id: Optional[str], wallet_address: Optional[str]) -> bool:
        if not user_id or not wallet_address:
            raise BadRequestError("user_id and wallet_address required")
        if not await self.db.deactivate_whale_wallet(user_id, wallet_address):
            raise NotFoundError(f"Whale {wallet_address} not found")
        return True

    async def list_events(self, user_id: Optional[str], limit: int = 50) -> List[Dict[str, Any]]:
        if not user_id:
            raise BadRequestError("user_id required")
        if limit < 1:
            raise BadRequestError("limit must be a positive integer")
        return await self.db.list_frenzy_events(user_id, limit)
