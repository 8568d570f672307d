"""
Rejected-token reviewer.

Soft-rejected watchlist tokens get one more look while they are inside the
resurrection window: if socials appeared, holders grew or volume picked up,
the token goes back to ``watching``. Anything older is made permanent, and
permanent rows past retention are deleted. Permanent rows are never
resurrected.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..core.market_data import PriceClient, SolanaTrackerClient, TokenSnapshot
from ..storage.database import Database
from ..utils.config import get_config
from ..utils.logger import LoggerMixin
from ..utils.metrics import job_duration, last_job_run, watchlist_transitions
from ..utils.timeutil import to_iso, utc_now


PROCESSOR_NAME = "rejected-reviewer"


@dataclass
class ReviewerConfig:
    """Thresholds for the review cycle, stored in ``pumpfun_monitor_config``."""

    is_enabled: bool = True
    log_retention_hours: float = 24
    dead_retention_hours: float = 2
    soft_reject_resurrection_minutes: float = 90
    resurrection_holder_threshold: int = 10
    resurrection_volume_threshold_sol: float = 0.1

    @classmethod
    def from_row(cls, row: Optional[Dict[str, Any]]) -> "ReviewerConfig":
        """Build from a config row; missing or null columns keep their default."""
        config = cls()
        for key, value in (row or {}).items():
            if value is not None and hasattr(config, key):
                setattr(config, key, value)
        return config


@dataclass
class ReviewerStats:
    """Outcome of one review cycle."""

    tokens_reviewed: int = 0
    resurrected: int = 0
    permanently_rejected: int = 0
    deleted: int = 0
    errors: int = 0
    duration_ms: int = 0
    resurrected_tokens: List[str] = field(default_factory=list)
    permanent_reject_reasons: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokensReviewed": self.tokens_reviewed,
            "resurrected": self.resurrected,
            "permanentlyRejected": self.permanently_rejected,
            "deleted": self.deleted,
            "errors": self.errors,
            "durationMs": self.duration_ms,
            "resurrectedTokens": self.resurrected_tokens,
            "permanentRejectReasons": self.permanent_reject_reasons,
        }


def resurrection_reason(
    token: Dict[str, Any],
    snapshot: TokenSnapshot,
    volume_sol: float,
    config: ReviewerConfig,
) -> Optional[str]:
    """
    Decide whether a soft-rejected token deserves another chance.

    Returns:
        Comma-joined reasons, or None when the token stays rejected
    """
    reasons = []
    if snapshot.has_socials and not token.get("socials_count"):
        reasons.append("socials_added")
    if snapshot.holders >= config.resurrection_holder_threshold:
        reasons.append(f"holders:{snapshot.holders}")
    if volume_sol >= config.resurrection_volume_threshold_sol:
        reasons.append(f"volume:{volume_sol:.2f}SOL")
    return ", ".join(reasons) or None


class RejectedReviewer(LoggerMixin):
    """Runs the soft-reject resurrection and cleanup cycle."""

    def __init__(
        self,
        db: Database,
        tracker: SolanaTrackerClient,
        price_client: Optional[PriceClient] = None,
    ):
        self.db = db
        self.tracker = tracker
        self.price_client = price_client
        self.config = get_config()

    async def review(self) -> ReviewerStats:
        """Run one review cycle."""
        start = time.monotonic()
        stats = ReviewerStats()

        self.logger.info("Rejected reviewer: starting review cycle")

        config = ReviewerConfig.from_row(await self.db.get_monitor_config())
        if not config.is_enabled:
            self.logger.info("Monitor disabled, skipping")
            stats.duration_ms = int((time.monotonic() - start) * 1000)
            return stats

        with job_duration.labels(job="rejected_reviewer").time():
            sol_price = await self._get_sol_price()
            now = utc_now()
            window_start = now - timedelta(minutes=config.soft_reject_resurrection_minutes)

            await self._resurrection_pass(config, sol_price, window_start, stats)

            converted = await self.db.convert_expired_soft_rejects(window_start, PROCESSOR_NAME)
            if converted:
                self.logger.info(f"Converted {converted} soft rejects to permanent (past resurrection window)")
                stats.permanent_reject_reasons["past_resurrection_window"] = converted

            dead_cutoff = now - timedelta(hours=config.dead_retention_hours)
            expired = await self.db.reject_stale_dead_tokens(dead_cutoff, PROCESSOR_NAME)
            if expired:
                self.logger.info(f"Permanently rejected {expired} old dead/bombed tokens")
                stats.permanent_reject_reasons["dead_retention_exceeded"] = expired

            stats.permanently_rejected = converted + expired
            watchlist_transitions.labels(transition="permanent").inc(stats.permanently_rejected)

            retention_cutoff = now - timedelta(hours=config.log_retention_hours)
            stats.deleted = await self.db.delete_permanent_rejects(retention_cutoff)
            if stats.deleted:
                self.logger.info(f"Deleted {stats.deleted} old permanently rejected tokens")
                watchlist_transitions.labels(transition="deleted").inc(stats.deleted)

            await self.db.purge_discovery_logs(retention_cutoff)

        stats.duration_ms = int((time.monotonic() - start) * 1000)
        last_job_run.labels(job="rejected_reviewer").set_to_current_time()

        self.logger.info(
            f"Reviewer complete: {stats.tokens_reviewed} reviewed, {stats.resurrected} resurrected, "
            f"{stats.permanently_rejected} permanent, {stats.deleted} deleted ({stats.duration_ms}ms)"
        )
        return stats

    async def _resurrection_pass(
        self,
        config: ReviewerConfig,
        sol_price: float,
        window_start,
        stats: ReviewerStats,
    ) -> None:
        candidates = await self.db.get_soft_rejects_since(window_start, self.config.reviewer_batch_limit)
        self.logger.info(f"Reviewing {len(candidates)} soft rejected tokens for resurrection")

        delay = self.config.reviewer_request_delay_ms / 1000
        for token in candidates:
            stats.tokens_reviewed += 1
            try:
                snapshot = await self.tracker.get_token_snapshot(token["token_mint"])
                if snapshot is None:
                    continue

                await asyncio.sleep(delay)

                volume_sol = snapshot.volume_usd / sol_price if sol_price > 0 else 0.0
                reason = resurrection_reason(token, snapshot, volume_sol, config)
                if reason is None:
                    continue

                await self._resurrect(token, snapshot, volume_sol, reason)
                stats.resurrected += 1
                stats.resurrected_tokens.append(f"{token.get('token_symbol')} ({reason})")
                watchlist_transitions.labels(transition="resurrected").inc()
                self.logger.info(f"RESURRECTED: {token.get('token_symbol')} - {reason}")
            except Exception as e:
                stats.errors += 1
                self.logger.error(f"Error reviewing {token.get('token_symbol')}: {e}")

    async def _resurrect(
        self,
        token: Dict[str, Any],
        snapshot: TokenSnapshot,
        volume_sol: float,
        reason: str,
    ) -> None:
        now = to_iso(utc_now())
        socials_count = token.get("socials_count") or 0
        metadata = dict(token.get("metadata") or {})
        metadata.update({
            "resurrected_at": now,
            "resurrection_reason": reason,
            "previous_rejection_reason": token.get("rejection_reason"),
        })

        await self.db.update_watchlist_token(token["id"], {
            "status": "watching",
            "rejection_type": None,
            "rejection_reason": None,
            "rejection_reasons": None,
            "removed_at": None,
            "removal_reason": None,
            "last_checked_at": now,
            "holder_count": snapshot.holders,
            "volume_sol": volume_sol,
            "socials_count": socials_count + 1 if snapshot.has_socials else socials_count,
            "consecutive_stale_checks": 0,
            "last_processor": PROCESSOR_NAME,
            "metadata": metadata,
        })

    async def _get_sol_price(self) -> float:
        """Cached price, then a live quote, then the configured default."""
        price = await self.db.get_latest_sol_price()
        if price:
            return price

        if self.price_client:
            price = await self.price_client.get_sol_price()
            if price:
                await self.db.save_sol_price(price)
                return price

        return self.config.default_sol_price_usd

    async def status(self) -> Dict[str, Any]:
        """Counts of soft, permanent and unclassified rejections."""
        counts = await self.db.count_rejections()
        return {
            "success": True,
            "status": "healthy",
            "softRejects": counts["soft"],
            "permanentRejects": counts["permanent"],
            "unclassified": counts["unclassified"],
        }
