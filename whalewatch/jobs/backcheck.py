"""Backcheck rejected tokens against DexScreener to find false positives."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.dexscreener import DexScreenerClient, pair_float
from ..core.errors import BadRequestError
from ..storage.database import Database
from ..utils.config import get_config
from ..utils.logger import LoggerMixin
from ..utils.metrics import job_duration, last_job_run
from ..utils.timeutil import parse_timestamp, to_iso, utc_now


# pump.fun graduates at roughly this market cap
GRADUATION_MCAP_USD = 69000


def estimate_bonding_curve_pct(market_cap_usd: float) -> int:
    """Estimate curve fill from market cap, clamped to 0..100."""
    if market_cap_usd <= 0:
        return 0
    if market_cap_usd >= GRADUATION_MCAP_USD:
        return 100
    return round(market_cap_usd / GRADUATION_MCAP_USD * 100)


def calc_false_positive_score(
    is_graduated: bool,
    ath_bonding_curve_pct: float,
    current_holders: int,
    peak_market_cap_usd: float,
    current_price_usd: float,
) -> int:
    """Score (0-100) of how wrong the rejection looks in hindsight."""
    score = 0
    if is_graduated:
        score += 40

    if ath_bonding_curve_pct > 80:
        score += 20
    elif ath_bonding_curve_pct > 50:
        score += 10

    if current_holders > 100:
        score += 15
    elif current_holders > 50:
        score += 8

    if peak_market_cap_usd > 50000:
        score += 15
    elif peak_market_cap_usd > 10000:
        score += 8

    if current_price_usd > 0:
        score += 10

    return min(score, 100)


@dataclass
class MarketSummary:
    """Best values across every DexScreener pair of a token."""

    is_graduated: bool = False
    graduated_at: Optional[str] = None
    current_price_usd: float = 0.0
    current_market_cap_usd: float = 0.0
    peak_market_cap_usd: float = 0.0
    ath_price_usd: float = 0.0
    volume_24h_usd: float = 0.0
    current_holders: int = 0


def summarize_pairs(pairs: List[Dict[str, Any]]) -> MarketSummary:
    summary = MarketSummary()

    raydium_pair = next((p for p in pairs if p.get("dexId") == "raydium"), None)
    if raydium_pair:
        summary.is_graduated = True
        created = raydium_pair.get("pairCreatedAt")
        if created:
            summary.graduated_at = to_iso(parse_timestamp(created / 1000))

    for pair in pairs:
        price = pair_float(pair.get("priceUsd"))
        mcap = pair_float(pair.get("marketCap") or pair.get("fdv"))
        volume = pair_float((pair.get("volume") or {}).get("h24"))

        summary.current_price_usd = max(summary.current_price_usd, price)
        summary.ath_price_usd = max(summary.ath_price_usd, price)
        summary.current_market_cap_usd = max(summary.current_market_cap_usd, mcap)
        summary.peak_market_cap_usd = max(summary.peak_market_cap_usd, mcap)
        summary.volume_24h_usd = max(summary.volume_24h_usd, volume)

    return summary


class RejectedBackcheck(LoggerMixin):
    """Re-examines rejected watchlist tokens and records false-positive scores."""

    def __init__(self, db: Database, dexscreener: DexScreenerClient):
        self.db = db
        self.dexscreener = dexscreener
        self.config = get_config()

    async def run(
        self,
        batch_size: int = 25,
        max_batches: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        Backcheck up to ``batch_size * max_batches`` rejected tokens.

        Args:
            batch_size: Tokens per batch
            max_batches: Number of batches to process
            offset: Rows to skip, newest rejection first

        Returns:
            Summary with processed, errors, falsePositivesFound,
            totalAvailable and durationMs
        """
        if batch_size < 1 or max_batches < 1 or offset < 0:
            raise BadRequestError("batch_size and max_batches must be positive and offset non-negative")

        start = time.monotonic()
        self.logger.info(
            f"Backcheck starting: batch_size={batch_size}, max_batches={max_batches}, offset={offset}"
        )

        candidates = await self.db.get_backcheck_candidates(offset, batch_size * max_batches)
        if not candidates:
            return {"message": "No rejected tokens to process", "processed": 0}

        self.logger.info(f"Backcheck found {len(candidates)} tokens to process")

        processed = 0
        errors = 0
        false_positives = 0
        delay = self.config.backcheck_request_delay_ms / 1000

        with job_duration.labels(job="backcheck").time():
            for index, token in enumerate(candidates):
                if index > 0:
                    await asyncio.sleep(delay)
                try:
                    if await self._check_token(token):
                        false_positives += 1
                    processed += 1
                except Exception as e:
                    errors += 1
                    self.logger.error(f"Backcheck error for {token['token_mint']}: {e}")

        result = {
            "processed": processed,
            "errors": errors,
            "falsePositivesFound": false_positives,
            "totalAvailable": len(candidates),
            "durationMs": int((time.monotonic() - start) * 1000),
        }
        last_job_run.labels(job="backcheck").set_to_current_time()
        self.logger.info(f"Backcheck complete: {result}")
        return result

    async def _check_token(self, token: Dict[str, Any]) -> bool:
        """Score one token and store the result. Returns whether it was a false positive."""
        pairs = await self.dexscreener.get_token_pairs(token["token_mint"])
        summary = summarize_pairs(pairs)

        curve_pct = 100 if summary.is_graduated else estimate_bonding_curve_pct(summary.peak_market_cap_usd)
        score = calc_false_positive_score(
            is_graduated=summary.is_graduated,
            ath_bonding_curve_pct=curve_pct,
            current_holders=summary.current_holders,
            peak_market_cap_usd=summary.peak_market_cap_usd,
            current_price_usd=summary.current_price_usd,
        )
        was_false_positive = summary.is_graduated or score >= 40

        await self.db.upsert_backcheck({
            "token_mint": token["token_mint"],
            "token_symbol": token.get("token_symbol"),
            "token_name": token.get("token_name"),
            "image_url": token.get("image_url"),
            "rejection_reason": token.get("rejection_reason"),
            "rejection_type": token.get("rejection_type"),
            "rejected_at": token.get("rejected_at"),
            "creator_wallet": token.get("creator_wallet"),
            "ath_price_usd": summary.ath_price_usd,
            "ath_bonding_curve_pct": curve_pct,
            "current_price_usd": summary.current_price_usd,
            "current_market_cap_usd": summary.current_market_cap_usd,
            "is_graduated": summary.is_graduated,
            "graduated_at": summary.graduated_at,
            "current_holders": summary.current_holders,
            "current_volume_24h_usd": summary.volume_24h_usd,
            "peak_market_cap_usd": summary.peak_market_cap_usd,
            "was_false_positive": was_false_positive,
            "false_positive_score": score,
            "checked_at": utc_now(),
        })
        return was_false_positive
