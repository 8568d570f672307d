"""Price, pump.fun and SolanaTracker market data clients."""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import UpstreamAPIError
from .http_client import BaseAPIClient


SOL_MINT = "So11111111111111111111111111111111111111112"

JUPITER_PRICE_URL = "https://api.jup.ag/price/v2"
COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
PUMPFUN_API_BASE = "https://frontend-api.pump.fun"
SOLANA_TRACKER_API_BASE = "https://data.solanatracker.io"

SOL_PRICE_TTL_SECONDS = 10.0


class PriceClient(BaseAPIClient):
    """
    SOL/USD price with a short in-process cache.

    Jupiter is asked first, CoinGecko second. When both fail the last
    cached price is returned even if stale, and None when nothing was
    ever fetched.
    """

    provider = "price"

    def __init__(self, session=None):
        super().__init__(session)
        self._cached_price: Optional[float] = None
        self._cached_at: float = 0.0

    async def get_sol_price(self) -> Optional[float]:
        """Get the current SOL price in USD."""
        now = time.monotonic()
        if self._cached_price and now - self._cached_at < SOL_PRICE_TTL_SECONDS:
            return self._cached_price

        for fetch in (self._fetch_jupiter, self._fetch_coingecko):
            try:
                price = await fetch()
            except UpstreamAPIError as e:
                self.logger.warning(f"SOL price source failed: {e}")
                continue

            if price and price > 0:
                self._cached_price = price
                self._cached_at = now
                return price

        return self._cached_price

    async def _fetch_jupiter(self) -> Optional[float]:
        data = await self._request_json(
            "GET", JUPITER_PRICE_URL, endpoint="jupiter_price", params={"ids": SOL_MINT}
        )
        entry = ((data or {}).get("data") or {}).get(SOL_MINT) or {}
        return _to_float(entry.get("price"))

    async def _fetch_coingecko(self) -> Optional[float]:
        data = await self._request_json(
            "GET",
            COINGECKO_PRICE_URL,
            endpoint="coingecko_price",
            params={"ids": "solana", "vs_currencies": "usd"},
        )
        return _to_float(((data or {}).get("solana") or {}).get("usd"))


class PumpFunClient(BaseAPIClient):
    """pump.fun frontend API client."""

    provider = "pumpfun"

    async def get_coin(self, mint: str) -> Optional[Dict[str, Any]]:
        """Get bonding-curve coin data, or None when pump.fun does not know the mint."""
        return await self._request_json(
            "GET",
            f"{PUMPFUN_API_BASE}/coins/{mint}",
            endpoint="coin",
            allow_not_found=True,
        )


@dataclass
class TokenSnapshot:
    """Current holder, volume and social state of a token."""

    holders: int = 0
    volume_usd: float = 0.0
    has_socials: bool = False


class SolanaTrackerClient(BaseAPIClient):
    """SolanaTracker data API client."""

    provider = "solanatracker"

    async def get_token_snapshot(self, mint: str) -> Optional[TokenSnapshot]:
        """
        Fetch holders, 24h pool volume and whether any social link is set.

        Returns None when the token is unknown or the API fails, so callers
        can skip the token instead of treating it as dead.
        """
        try:
            data = await self._request_json(
                "GET",
                f"{SOLANA_TRACKER_API_BASE}/tokens/{mint}",
                endpoint="token",
                headers={
                    "x-api-key": self.config.solana_tracker_api_key,
                    "Accept": "application/json",
                },
                allow_not_found=True,
            )
        except UpstreamAPIError as e:
            self.logger.error(f"Error fetching metrics for {mint}: {e}")
            return None

        if not data:
            return None

        return parse_token_snapshot(data)


def parse_token_snapshot(data: Dict[str, Any]) -> TokenSnapshot:
    """Build a TokenSnapshot from a SolanaTracker /tokens response."""
    pools = data.get("pools") or []
    pool = pools[0] if pools else {}
    token = data.get("token") or {}

    return TokenSnapshot(
        holders=int(data.get("holders") or 0),
        volume_usd=_to_float((pool.get("volume") or {}).get("h24")) or 0.0,
        has_socials=bool(token.get("twitter") or token.get("telegram") or token.get("website")),
    )


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
