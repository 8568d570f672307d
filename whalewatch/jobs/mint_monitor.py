"""Spawner-wallet mint monitoring."""

import time
from typing import Any, Dict, List, Optional

from ..core.errors import BadRequestError, NotFoundError
from ..core.helius import HeliusClient
from ..core.token_enricher import TokenEnricher, TokenMint
from ..storage.database import Database
from ..utils.config import get_config
from ..utils.logger import LoggerMixin
from ..utils.metrics import job_duration, last_job_run, mint_detections
from ..utils.timeutil import parse_timestamp, to_iso, utc_now


TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
PUMPFUN_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
MINT_PROGRAMS = (TOKEN_PROGRAM_ID, PUMPFUN_PROGRAM_ID)

SAMPLE_MINT = TokenMint(
    mint="7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
    symbol="TESTCOIN",
    name="Test Token for Watchdog Demo",
    description="This is a sample token created to demonstrate mint notifications.",
    image="https://pump.fun/logo.png",
    holder_count=1247,
    buy_count=892,
    sell_count=156,
    current_price_usd=0.00004523,
    current_price_sol=0.000000234,
    bonding_curve_percent=67.5,
    market_cap_usd=45230,
    liquidity_usd=12500,
    volume_24h=8750,
    is_graduated=False,
    launchpad="pump.fun",
)


class MintMonitor(LoggerMixin):
    """
    Scans monitored wallets for tokens they created.

    Manual scans return what was found; cron scans store unseen
    detections and notify each wallet's Telegram targets.
    """

    def __init__(
        self,
        db: Database,
        helius: HeliusClient,
        enricher: TokenEnricher,
        dispatcher=None,
    ):
        self.db = db
        self.helius = helius
        self.enricher = enricher
        self.dispatcher = dispatcher
        self.config = get_config()

    async def scan_wallet(self, wallet_address: str, max_age_hours: float = 24) -> List[TokenMint]:
        """
        Find mints created by or sent to a wallet.

        Args:
            wallet_address: Wallet to scan
            max_age_hours: Ignore transactions older than this

        Returns:
            Mints de-duplicated by address, last occurrence winning
        """
        self.logger.info(f"Scanning wallet {wallet_address} for mints")

        transactions = await self.helius.get_address_transactions(wallet_address, limit=100)
        cutoff = time.time() - max_age_hours * 3600
        metadata_cache: Dict[str, Optional[Dict[str, Optional[str]]]] = {}

        async def metadata_for(mint: str) -> Optional[Dict[str, Optional[str]]]:
            if mint not in metadata_cache:
                metadata_cache[mint] = await self.helius.get_token_metadata(mint)
            return metadata_cache[mint]

        found: Dict[str, TokenMint] = {}
        for tx in transactions:
            tx_time = tx.get("timestamp")
            if tx_time and tx_time < cutoff:
                continue
            timestamp = float(tx_time or time.time())

            for ix in tx.get("instructions") or []:
                accounts = ix.get("accounts") or []
                if ix.get("programId") not in MINT_PROGRAMS or not accounts:
                    continue
                metadata = await metadata_for(accounts[0]) or {}
                found[accounts[0]] = TokenMint(
                    mint=accounts[0],
                    timestamp=timestamp,
                    name=metadata.get("name"),
                    symbol=metadata.get("symbol"),
                    image=metadata.get("image"),
                )

            for transfer in tx.get("tokenTransfers") or []:
                mint = transfer.get("mint")
                if transfer.get("toUserAccount") != wallet_address or not mint:
                    continue
                metadata = await metadata_for(mint)
                if metadata:
                    found[mint] = TokenMint(
                        mint=mint,
                        timestamp=timestamp,
                        name=metadata.get("name"),
                        symbol=metadata.get("symbol"),
                        image=metadata.get("image"),
                    )

        self.logger.info(f"Found {len(found)} mints for wallet {wallet_address}")
        return list(found.values())

    async def scan_now(self, wallet_address: Optional[str], max_age_hours: Optional[float] = None) -> Dict[str, Any]:
        """Immediate scan of a single wallet."""
        if not wallet_address:
            raise BadRequestError("walletAddress required")
        if max_age_hours is not None and max_age_hours <= 0:
            raise BadRequestError("maxAgeHours must be positive")

        mints = await self.scan_wallet(
            wallet_address, max_age_hours or self.config.mint_scan_max_age_hours
        )
        return {
            "success": True,
            "wallet": wallet_address,
            "mints": [m.to_dict() for m in mints],
            "scannedAt": to_iso(utc_now()),
        }

    async def add_to_cron(
        self,
        user_id: Optional[str],
        wallet_address: Optional[str],
        source_token: Optional[str] = None,
        notification_chat_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        if not wallet_address or not user_id:
            raise BadRequestError("walletAddress and userId required")

        wallet = await self.db.upsert_mint_wallet(
            user_id, wallet_address, source_token, notification_chat_ids
        )
        self.logger.info(f"Wallet {wallet_address} added to cron monitoring for {user_id}")
        return {"success": True, "message": "Wallet added to cron monitoring", "wallet": wallet}

    async def remove_from_cron(self, user_id: Optional[str], wallet_address: Optional[str]) -> Dict[str, Any]:
        if not wallet_address or not user_id:
            raise BadRequestError("walletAddress and userId required")

        if not await self.db.disable_mint_wallet(user_id, wallet_address):
            raise NotFoundError(f"Wallet {wallet_address} is not monitored")
        return {"success": True, "message": "Wallet removed from cron"}

    async def get_monitored(self, user_id: Optional[str]) -> Dict[str, Any]:
        if not user_id:
            raise BadRequestError("userId required")
        return {"success": True, "wallets": await self.db.get_monitored_wallets(user_id)}

    def notification_targets(self, wallet: Dict[str, Any]) -> List[Optional[str]]:
        """
        Wallet chat ids, or the default chat when the wallet has none.

        A ``None`` target stands for the webhook alone and is used when no
        chat applies but the webhook is enabled.
        """
        targets: List[Optional[str]] = [str(t) for t in wallet.get("notification_chat_ids") or [] if t]
        if not targets and self.config.telegram_chat_id:
            targets = [self.config.telegram_chat_id]
        if not targets and self.config.webhook_enabled:
            targets = [None]
        return targets

    async def run_cron(self) -> Dict[str, Any]:
        """Scan every cron-enabled wallet over the recent lookback and notify on new mints."""
        wallets = await self.db.get_cron_wallets()
        self.logger.info(f"Running cron scan for {len(wallets)} wallets")

        results = []
        by_target: Dict[Optional[str], Dict[str, List[Any]]] = {}

        with job_duration.labels(job="mint_monitor").time():
            for wallet in wallets:
                result, new_mints = await self._scan_cron_wallet(wallet)
                results.append(result)

                if not new_mints:
                    continue
                for target in self.notification_targets(wallet):
                    group = by_target.setdefault(target, {"wallets": [], "mints": []})
                    group["wallets"].append(wallet["wallet_address"])
                    group["mints"].extend(new_mints)

            notifications_sent = await self._notify(by_target)

        last_job_run.labels(job="mint_monitor").set_to_current_time()

        return {
            "success": True,
            "scannedWallets": len(wallets),
            "newMintsDetected": sum(r.get("newMints", 0) for r in results),
            "notificationsSent": notifications_sent,
            "results": results,
        }

    async def _scan_cron_wallet(self, wallet: Dict[str, Any]):
        """Scan one wallet, store unseen mints and log the attempt."""
        start = time.monotonic()
        address = wallet["wallet_address"]
        mints_found = 0
        new_mints: List[TokenMint] = []
        status = "success"
        error_message = None

        try:
            mints = await self.scan_wallet(address, self.config.mint_cron_max_age_hours)
            mints_found = len(mints)

            for mint in mints:
                inserted = await self.db.insert_detection(
                    wallet_id=wallet["id"],
                    token_mint=mint.mint,
                    token_name=mint.name,
                    token_symbol=mint.symbol,
                    token_image=mint.image,
                    detected_at=parse_timestamp(mint.timestamp),
                )
                if inserted:
                    new_mints.append(mint.merge({"creator_wallet": address}))

            await self.db.touch_mint_wallet(wallet["id"])
            mint_detections.inc(len(new_mints))
            result = {
                "wallet": address,
                "newMints": len(new_mints),
                "mints": [m.to_dict() for m in new_mints],
            }
        except Exception as e:
            self.logger.error(f"Error scanning wallet {address}: {e}")
            status = "error"
            error_message = str(e)
            result = {"wallet": address, "error": error_message}

        await self.db.insert_scan_log(
            wallet_id=wallet["id"],
            wallet_address=address,
            mints_found=mints_found,
            new_mints_detected=len(new_mints),
            status=status,
            error_message=error_message,
            scan_duration_ms=int((time.monotonic() - start) * 1000),
        )
        return result, new_mints

    async def _notify(self, by_target: Dict[Optional[str], Dict[str, List[Any]]]) -> int:
        """Send one enriched notification per target; returns how many were delivered."""
        if not by_target or not self.dispatcher:
            return 0

        self.logger.info(f"Sending mint notifications to {len(by_target)} targets")
        sent = 0
        for target, group in by_target.items():
            try:
                enriched = await self.enricher.enrich_mints(group["mints"])
                if await self.dispatcher.mint_detected(target, group["wallets"], enriched):
                    sent += 1
            except Exception as e:
                self.logger.error(f"Failed to send mint notification to {target}: {e}")
        return sent

    async def test_notification(self, test_mint: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a sample notification (or one for a real mint) to the default target."""
        if test_mint and test_mint.get("mint"):
            creator = test_mint.get("creatorWallet")
            self.logger.info(f"Fetching real data for custom test mint: {test_mint['mint']}")
            enhanced = await self.enricher.enrich(test_mint["mint"], creator)
            token = TokenMint(mint=test_mint["mint"], timestamp=time.time()).merge(enhanced)
        else:
            token = SAMPLE_MINT

        targets = self.notification_targets({})
        results = []
        if self.dispatcher and targets:
            target = targets[0]
            delivered = await self.dispatcher.mint_detected(
                target, [token.creator_wallet] if token.creator_wallet else [], [token]
            )
            results.append({"target": target, "success": delivered > 0})
        else:
            self.logger.warning("No notification target configured for test notification")

        return {
            "success": True,
            "message": "Test notifications sent",
            "tokenData": token.to_dict(),
            "results": results,
        }
