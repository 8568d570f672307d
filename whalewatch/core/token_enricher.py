"""Token enrichment from pump.fun and DexScreener for mint notifications."""

import asyncio
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from ..utils.logger import LoggerMixin
from .dexscreener import DexScreenerClient, pair_float
from .errors import UpstreamAPIError
from .market_data import PumpFunClient


LAMPORTS_PER_SOL = 1_000_000_000

# pump.fun graduates a curve once roughly 85 SOL sit in it
GRADUATION_CURVE_SOL = 85.0

LAUNCHPADS = ("bags.fm", "bonk.fun", "pump.fun")


@dataclass
class TokenMint:
    """A token created by (or sent to) a monitored wallet."""

    mint: str
    timestamp: float = 0.0
    name: Optional[str] = None
    symbol: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None

    # Enrichment
    holder_count: Optional[int] = None
    buy_count: Optional[int] = None
    sell_count: Optional[int] = None
    current_price_usd: Optional[float] = None
    current_price_sol: Optional[float] = None
    bonding_curve_percent: Optional[float] = None
    market_cap_usd: Optional[float] = None
    liquidity_usd: Optional[float] = None
    volume_24h: Optional[float] = None
    is_graduated: Optional[bool] = None
    launchpad: Optional[str] = None
    creator_wallet: Optional[str] = None

    def merge(self, enhanced: Dict[str, Any]) -> "TokenMint":
        """Return a copy with enrichment applied; identity fields keep their value when enrichment has none."""
        known = {f.name for f in fields(self)}
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in enhanced.items():
            if key in known and key != "mint" and value is not None:
                values[key] = value
        return TokenMint(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase shape used by API responses and notifications."""
        return {
            "mint": self.mint,
            "timestamp": self.timestamp,
            "name": self.name,
            "symbol": self.symbol,
            "description": self.description,
            "image": self.image,
            "holderCount": self.holder_count,
            "buyCount": self.buy_count,
            "sellCount": self.sell_count,
            "currentPriceUsd": self.current_price_usd,
            "currentPriceSol": self.current_price_sol,
            "bondingCurvePercent": self.bonding_curve_percent,
            "marketCapUsd": self.market_cap_usd,
            "liquidityUsd": self.liquidity_usd,
            "volume24h": self.volume_24h,
            "isGraduated": self.is_graduated,
            "launchpad": self.launchpad,
            "creatorWallet": self.creator_wallet,
        }


def bonding_curve_percent(coin: Dict[str, Any], graduated: bool) -> float:
    """Curve fill in percent from pump.fun reserves (lamports)."""
    if graduated:
        return 100.0
    virtual_sol = float(coin.get("virtual_sol_reserves") or 0) / LAMPORTS_PER_SOL
    real_sol = float(coin.get("real_sol_reserves") or 0) / LAMPORTS_PER_SOL
    return min(100.0, (virtual_sol + real_sol) / GRADUATION_CURVE_SOL * 100)


def detect_launchpad(pair: Dict[str, Any]) -> Optional[str]:
    """Guess the launchpad from the pair URL, first website or labels."""
    pair_url = pair.get("url") or ""
    websites = (pair.get("info") or {}).get("websites") or []
    website_url = (websites[0] or {}).get("url", "") if websites else ""
    labels = pair.get("labels") or []

    for launchpad in LAUNCHPADS:
        if launchpad in pair_url or launchpad in website_url:
            return launchpad
    if "pump.fun" in labels:
        return "pump.fun"
    return None


class TokenEnricher(LoggerMixin):
    """Merges pump.fun curve data with DexScreener market data."""

    def __init__(self, pumpfun: PumpFunClient, dexscreener: DexScreenerClient):
        self.pumpfun = pumpfun
        self.dexscreener = dexscreener

    async def enrich(self, mint: str, creator_wallet: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch enhanced data for a mint from both sources in parallel.

        A token counts as graduated when DexScreener shows a funded Raydium
        pair, pump.fun marks the curve complete, or the curve is full.

        Returns:
            Dictionary of TokenMint field values
        """
        self.logger.debug(f"Fetching enhanced data for {mint}")

        pump_data, dex_data = await asyncio.gather(
            self._fetch_pumpfun(mint),
            self._fetch_dexscreener(mint),
        )

        curve = pump_data.get("bonding_curve_percent")
        is_graduated = bool(
            dex_data.get("is_graduated")
            or pump_data.get("pumpfun_graduated") is True
            or (curve is not None and curve >= 100)
        )

        self.logger.debug(
            f"Graduation check for {mint}: dex={dex_data.get('is_graduated')}, "
            f"pump={pump_data.get('pumpfun_graduated')}, curve={curve}"
        )

        merged = {**pump_data, **{k: v for k, v in dex_data.items() if v is not None}}
        merged.pop("pumpfun_graduated", None)
        merged.update({
            "name": dex_data.get("name") or pump_data.get("name"),
            "symbol": dex_data.get("symbol") or pump_data.get("symbol"),
            "description": pump_data.get("description"),
            "image": pump_data.get("image"),
            "bonding_curve_percent": 100.0 if is_graduated else curve,
            "is_graduated": is_graduated,
            "launchpad": dex_data.get("launchpad"),
            "creator_wallet": creator_wallet,
        })
        return merged

    async def enrich_mints(self, mints: List[TokenMint]) -> List[TokenMint]:
        """Enrich several mints concurrently, keeping original metadata as fallback."""
        enhanced = await asyncio.gather(*(self.enrich(m.mint, m.creator_wallet) for m in mints))
        return [mint.merge(data) for mint, data in zip(mints, enhanced)]

    async def _fetch_pumpfun(self, mint: str) -> Dict[str, Any]:
        try:
            coin = await self.pumpfun.get_coin(mint)
        except UpstreamAPIError as e:
            self.logger.error(f"Error fetching pump.fun data for {mint}: {e}")
            return {}

        if not coin:
            return {}

        graduated = coin.get("complete") is True or coin.get("raydium_pool") is not None
        return {
            "name": coin.get("name"),
            "symbol": coin.get("symbol"),
            "description": coin.get("description"),
            "image": coin.get("image_uri"),
            "bonding_curve_percent": bonding_curve_percent(coin, graduated),
            "market_cap_usd": coin.get("usd_market_cap"),
            "pumpfun_graduated": graduated,
        }

    async def _fetch_dexscreener(self, mint: str) -> Dict[str, Any]:
        try:
            pairs = await self.dexscreener.get_token_pairs(mint)
        except UpstreamAPIError as e:
            self.logger.error(f"Error fetching DexScreener data for {mint}: {e}")
            return {}

        if not pairs:
            return {}

        pair = pairs[0]
        raydium_pair = next(
            (
                p for p in pairs
                if p.get("dexId") == "raydium" and pair_float((p.get("liquidity") or {}).get("usd")) > 0
            ),
            None,
        )
        txns = (pair.get("txns") or {}).get("h24") or {}
        base_token = pair.get("baseToken") or {}

        return {
            "name": base_token.get("name"),
            "symbol": base_token.get("symbol"),
            "current_price_usd": pair_float(pair.get("priceUsd")) or None,
            "current_price_sol": pair_float(pair.get("priceNative")) or None,
            "liquidity_usd": (pair.get("liquidity") or {}).get("usd"),
            "volume_24h": (pair.get("volume") or {}).get("h24"),
            "market_cap_usd": pair.get("fdv"),
            "buy_count": txns.get("buys"),
            "sell_count": txns.get("sells"),
            "is_graduated": raydium_pair is not None,
            "launchpad": detect_launchpad(pair),
        }
