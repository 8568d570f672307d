"""SQLite persistence for whales, frenzies, the rejected-token watchlist and mint monitoring."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

from ..utils.logger import LoggerMixin
from ..utils.timeutil import to_iso, utc_now


SCHEMA = """
CREATE TABLE IF NOT EXISTS whale_frenzy_config (
    user_id TEXT PRIMARY KEY,
    min_whales_for_frenzy INTEGER NOT NULL DEFAULT 3,
    time_window_seconds INTEGER NOT NULL DEFAULT 300,
    auto_buy_enabled INTEGER NOT NULL DEFAULT 0,
    buy_amount_sol REAL NOT NULL DEFAULT 0.1,
    max_slippage_bps INTEGER NOT NULL DEFAULT 500,
    cooldown_seconds INTEGER NOT NULL DEFAULT 600,
    is_active INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS whale_wallets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    wallet_address TEXT NOT NULL,
    nickname TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, wallet_address)
);

CREATE TABLE IF NOT EXISTS wallet_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    wallet_address TEXT NOT NULL,
    token_mint TEXT NOT NULL,
    transaction_type TEXT NOT NULL,
    amount_sol REAL,
    signature TEXT UNIQUE,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_wallet_tx_token_time
    ON wallet_transactions (token_mint, transaction_type, timestamp);

CREATE TABLE IF NOT EXISTS whale_frenzy_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    token_mint TEXT NOT NULL,
    whale_count INTEGER NOT NULL,
    participating_wallets TEXT NOT NULL,
    first_buy_at TEXT,
    last_buy_at TEXT,
    auto_buy_executed INTEGER NOT NULL DEFAULT 0,
    auto_buy_signature TEXT,
    auto_buy_amount_sol REAL,
    auto_buy_error TEXT,
    detected_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_frenzy_user_token
    ON whale_frenzy_events (user_id, token_mint, detected_at);

CREATE TABLE IF NOT EXISTS user_secrets (
    user_id TEXT PRIMARY KEY,
    trading_private_key TEXT,
    rpc_url TEXT
);

CREATE TABLE IF NOT EXISTS pumpfun_monitor_config (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    is_enabled INTEGER,
    log_retention_hours REAL,
    dead_retention_hours REAL,
    soft_reject_resurrection_minutes REAL,
    resurrection_holder_threshold INTEGER,
    resurrection_volume_threshold_sol REAL
);

CREATE TABLE IF NOT EXISTS pumpfun_watchlist (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    token_mint TEXT NOT NULL UNIQUE,
    token_symbol TEXT,
    token_name TEXT,
    image_url TEXT,
    creator_wallet TEXT,
    status TEXT NOT NULL DEFAULT 'watching',
    rejection_type TEXT,
    rejection_reason TEXT,
    rejection_reasons TEXT,
    rejected_at TEXT,
    removed_at TEXT,
    removal_reason TEXT,
    last_checked_at TEXT,
    holder_count INTEGER DEFAULT 0,
    volume_sol REAL DEFAULT 0,
    socials_count INTEGER DEFAULT 0,
    consecutive_stale_checks INTEGER DEFAULT 0,
    last_processor TEXT,
    permanent_reject INTEGER DEFAULT 0,
    was_spiked_and_killed INTEGER DEFAULT 0,
    metadata TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pumpfun_discovery_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    token_mint TEXT,
    event TEXT,
    details TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pumpfun_rejected_backcheck (
    token_mint TEXT PRIMARY KEY,
    token_symbol TEXT,
    token_name TEXT,
    image_url TEXT,
    rejection_reason TEXT,
    rejection_type TEXT,
    rejected_at TEXT,
    creator_wallet TEXT,
    ath_price_usd REAL,
    ath_bonding_curve_pct REAL,
    current_price_usd REAL,
    current_market_cap_usd REAL,
    is_graduated INTEGER,
    graduated_at TEXT,
    current_holders INTEGER,
    current_volume_24h_usd REAL,
    peak_market_cap_usd REAL,
    was_false_positive INTEGER,
    false_positive_score INTEGER,
    checked_at TEXT,
    check_count INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS sol_price_cache (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    price_usd REAL NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS mint_monitor_wallets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    wallet_address TEXT NOT NULL,
    source_token TEXT,
    is_cron_enabled INTEGER NOT NULL DEFAULT 1,
    notification_chat_ids TEXT,
    last_scanned_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, wallet_address)
);

CREATE TABLE IF NOT EXISTS mint_monitor_detections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    wallet_id INTEGER NOT NULL REFERENCES mint_monitor_wallets (id) ON DELETE CASCADE,
    token_mint TEXT NOT NULL,
    token_name TEXT,
    token_symbol TEXT,
    token_image TEXT,
    detected_at TEXT NOT NULL,
    UNIQUE (wallet_id, token_mint)
);

CREATE TABLE IF NOT EXISTS mint_monitor_scan_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    wallet_id INTEGER,
    wallet_address TEXT,
    scanned_at TEXT NOT NULL,
    mints_found INTEGER,
    new_mints_detected INTEGER,
    status TEXT,
    error_message TEXT,
    scan_duration_ms INTEGER
);
"""

JSON_COLUMNS = {"participating_wallets", "metadata", "rejection_reasons", "notification_chat_ids"}

BOOL_COLUMNS = {
    "is_active",
    "auto_buy_enabled",
    "auto_buy_executed",
    "is_enabled",
    "is_cron_enabled",
    "permanent_reject",
    "was_spiked_and_killed",
    "is_graduated",
    "was_false_positive",
}

WATCHLIST_COLUMNS = {
    "token_mint", "token_symbol", "token_name", "image_url", "creator_wallet",
    "status", "rejection_type", "rejection_reason", "rejection_reasons",
    "rejected_at", "removed_at", "removal_reason", "last_checked_at",
    "holder_count", "volume_sol", "socials_count", "consecutive_stale_checks",
    "last_processor", "permanent_reject", "was_spiked_and_killed", "metadata",
}

BACKCHECK_COLUMNS = [
    "token_mint", "token_symbol", "token_name", "image_url", "rejection_reason",
    "rejection_type", "rejected_at", "creator_wallet", "ath_price_usd",
    "ath_bonding_curve_pct", "current_price_usd", "current_market_cap_usd",
    "is_graduated", "graduated_at", "current_holders", "current_volume_24h_usd",
    "peak_market_cap_usd", "was_false_positive", "false_positive_score", "checked_at",
]

REJECTED_STATUSES = ("dead", "bombed", "rejected")


def _encode(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS and value is not None:
        return json.dumps(value)
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, bool):
        return int(value)
    return value


def _row_to_dict(row: aiosqlite.Row) -> Dict[str, Any]:
    data = dict(row)
    for key, value in data.items():
        if value is None:
            continue
        if key in JSON_COLUMNS:
            data[key] = json.loads(value)
        elif key in BOOL_COLUMNS:
            data[key] = bool(value)
    return data


def _placeholders(values: Iterable[Any]) -> str:
    return ", ".join("?" for _ in values)


class Database(LoggerMixin):
    """
    Async SQLite store.

    One connection is opened per process; aiosqlite serialises statements
    on its worker thread, so concurrent jobs can share it.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.db: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Open the database and create missing tables."""
        if self.db:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db = await aiosqlite.connect(self.db_path)
        self.db.row_factory = aiosqlite.Row
        await self.db.execute("PRAGMA foreign_keys = ON")
        await self.db.executescript(SCHEMA)
        await self.db.commit()
        self.logger.info(f"Database initialized: {self.db_path}")

    async def close(self) -> None:
        """Close the connection."""
        if self.db:
            await self.db.close()
            self.db = None

    async def _fetchall(self, sql: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
        cursor = await self.db.execute(sql, tuple(params))
        rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    async def _fetchone(self, sql: str, params: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
        cursor = await self.db.execute(sql, tuple(params))
        row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def _write(self, sql: str, params: Iterable[Any] = ()) -> aiosqlite.Cursor:
        cursor = await self.db.execute(sql, tuple(params))
        await self.db.commit()
        return cursor

    # ------------------------------------------------------------------
    # Whale frenzy
    # ------------------------------------------------------------------

    async def get_active_frenzy_configs(self) -> List[Dict[str, Any]]:
        """All frenzy configs with is_active set."""
        return await self._fetchall("SELECT * FROM whale_frenzy_config WHERE is_active = 1")

    async def get_frenzy_config(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Frenzy config for one user, active or not."""
        return await self._fetchone(
            "SELECT * FROM whale_frenzy_config WHERE user_id = ?", (user_id,)
        )

    async def save_frenzy_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace a user's frenzy config."""
        columns = [
            "user_id", "min_whales_for_frenzy", "time_window_seconds", "auto_buy_enabled",
            "buy_amount_sol", "max_slippage_bps", "cooldown_seconds", "is_active",
        ]
        values = [_encode(c, config[c]) for c in columns] + [to_iso(utc_now())]
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns[1:] + ["updated_at"])

        await self._write(
            f"""
            INSERT INTO whale_frenzy_config ({", ".join(columns)}, updated_at)
            VALUES ({_placeholders(values)})
            ON CONFLICT (user_id) DO UPDATE SET {updates}
            """,
            values,
        )
        return await self.get_frenzy_config(config["user_id"])

    async def add_whale_wallet(
        self,
        user_id: str,
        wallet_address: str,
        nickname: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Add a whale to a user's list, reactivating it if it was removed."""
        await self._write(
            """
            INSERT INTO whale_wallets (user_id, wallet_address, nickname, is_active, created_at)
            VALUES (?, ?, ?, 1, ?)
            ON CONFLICT (user_id, wallet_address)
            DO UPDATE SET is_active = 1, nickname = COALESCE(excluded.nickname, nickname)
            """,
            (user_id, wallet_address, nickname, to_iso(utc_now())),
        )
        return await self._fetchone(
            "SELECT * FROM whale_wallets WHERE user_id = ? AND wallet_address = ?",
            (user_id, wallet_address),
        )

    async def deactivate_whale_wallet(self, user_id: str, wallet_address: str) -> bool:
        """Mark a whale inactive. Returns False when it was not on the list."""
        cursor = await self._write(
            "UPDATE whale_wallets SET is_active = 0 WHERE user_id = ? AND wallet_address = ?",
            (user_id, wallet_address),
        )
        return cursor.rowcount > 0

    async def is_active_whale(self, user_id: str, wallet_address: str) -> bool:
        row = await self._fetchone(
            """
            SELECT 1 AS found FROM whale_wallets
            WHERE user_id = ? AND wallet_address = ? AND is_active = 1
            """,
            (user_id, wallet_address),
        )
        return row is not None

    async def get_active_whale_addresses(self, user_id: str) -> List[str]:
        rows = await self._fetchall(
            "SELECT wallet_address FROM whale_wallets WHERE user_id = ? AND is_active = 1",
            (user_id,),
        )
        return [row["wallet_address"] for row in rows]

    async def record_wallet_transaction(
        self,
        wallet_address: str,
        token_mint: str,
        transaction_type: str,
        amount_sol: Optional[float],
        timestamp: datetime,
        signature: Optional[str] = None,
    ) -> bool:
        """Store a wallet trade. Returns False when the signature was already stored."""
        cursor = await self._write(
            """
            INSERT OR IGNORE INTO wallet_transactions
                (wallet_address, token_mint, transaction_type, amount_sol, signature, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (wallet_address, token_mint, transaction_type, amount_sol, signature, to_iso(timestamp)),
        )
        return cursor.rowcount > 0

    async def get_recent_buys(
        self,
        wallet_addresses: List[str],
        since: datetime,
        token_mint: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Buys by any of ``wallet_addresses`` at or after ``since``."""
        if not wallet_addresses:
            return []

        sql = f"""
            SELECT * FROM wallet_transactions
            WHERE transaction_type = 'buy'
              AND timestamp >= ?
              AND wallet_address IN ({_placeholders(wallet_addresses)})
        """
        params: List[Any] = [to_iso(since), *wallet_addresses]
        if token_mint:
            sql += " AND token_mint = ?"
            params.append(token_mint)

        return await self._fetchall(sql + " ORDER BY timestamp", params)

    async def has_recent_frenzy(self, user_id: str, token_mint: str, since: datetime) -> bool:
        row = await self._fetchone(
            """
            SELECT 1 AS found FROM whale_frenzy_events
            WHERE user_id = ? AND token_mint = ? AND detected_at >= ?
            LIMIT 1
            """,
            (user_id, token_mint, to_iso(since)),
        )
        return row is not None

    async def insert_frenzy_event(self, event: Dict[str, Any]) -> int:
        """Store a frenzy event and return its id."""
        columns = [
            "user_id", "token_mint", "whale_count", "participating_wallets", "first_buy_at",
            "last_buy_at", "auto_buy_executed", "auto_buy_signature", "auto_buy_amount_sol",
            "auto_buy_error", "detected_at",
        ]
        values = [_encode(c, event.get(c)) for c in columns]
        cursor = await self._write(
            f"INSERT INTO whale_frenzy_events ({', '.join(columns)}) VALUES ({_placeholders(values)})",
            values,
        )
        return cursor.lastrowid

    async def list_frenzy_events(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM whale_frenzy_events WHERE user_id = ? ORDER BY detected_at DESC LIMIT ?",
            (user_id, limit),
        )

    async def get_user_secrets(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM user_secrets WHERE user_id = ?", (user_id,))

    async def save_user_secrets(self, user_id: str, trading_private_key: str, rpc_url: str = "") -> None:
        await self._write(
            """
            INSERT INTO user_secrets (user_id, trading_private_key, rpc_url) VALUES (?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE
            SET trading_private_key = excluded.trading_private_key, rpc_url = excluded.rpc_url
            """,
            (user_id, trading_private_key, rpc_url),
        )

    # ------------------------------------------------------------------
    # Rejected-token watchlist
    # ------------------------------------------------------------------

    async def get_monitor_config(self) -> Optional[Dict[str, Any]]:
        return await self._fetchone("SELECT * FROM pumpfun_monitor_config ORDER BY id LIMIT 1")

    async def get_latest_sol_price(self) -> Optional[float]:
        row = await self._fetchone(
            "SELECT price_usd FROM sol_price_cache ORDER BY updated_at DESC LIMIT 1"
        )
        return row["price_usd"] if row else None

    async def save_sol_price(self, price_usd: float) -> None:
        await self._write(
            "INSERT INTO sol_price_cache (price_usd, updated_at) VALUES (?, ?)",
            (price_usd, to_iso(utc_now())),
        )

    async def upsert_watchlist_token(self, token: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a watchlist row or update the existing row for the same mint."""
        unknown = set(token) - WATCHLIST_COLUMNS
        if unknown:
            raise ValueError(f"Unknown watchlist columns: {sorted(unknown)}")

        columns = list(token)
        values = [_encode(c, token[c]) for c in columns]
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "token_mint")
        conflict = f"DO UPDATE SET {updates}" if updates else "DO NOTHING"

        await self._write(
            f"""
            INSERT INTO pumpfun_watchlist ({", ".join(columns)}, created_at)
            VALUES ({_placeholders(values)}, ?)
            ON CONFLICT (token_mint) {conflict}
            """,
            [*values, to_iso(utc_now())],
        )
        return await self.get_watchlist_token(token["token_mint"])

    async def get_watchlist_token(self, token_mint: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone(
            "SELECT * FROM pumpfun_watchlist WHERE token_mint = ?", (token_mint,)
        )

    async def get_soft_rejects_since(self, since: datetime, limit: int) -> List[Dict[str, Any]]:
        """Soft-rejected rows removed at or after ``since``, newest first."""
        return await self._fetchall(
            f"""
            SELECT * FROM pumpfun_watchlist
            WHERE status IN ({_placeholders(REJECTED_STATUSES)})
              AND rejection_type = 'soft'
              AND removed_at >= ?
            ORDER BY removed_at DESC
            LIMIT ?
            """,
            (*REJECTED_STATUSES, to_iso(since), limit),
        )

    async def update_watchlist_token(self, token_id: int, values: Dict[str, Any]) -> bool:
        unknown = set(values) - WATCHLIST_COLUMNS
        if unknown:
            raise ValueError(f"Unknown watchlist columns: {sorted(unknown)}")

        assignments = ", ".join(f"{column} = ?" for column in values)
        params = [_encode(c, v) for c, v in values.items()] + [token_id]
        cursor = await self._write(
            f"UPDATE pumpfun_watchlist SET {assignments} WHERE id = ?", params
        )
        return cursor.rowcount > 0

    async def convert_expired_soft_rejects(self, before: datetime, processor: str) -> int:
        """Soft rejects removed before ``before`` become permanent."""
        cursor = await self._write(
            f"""
            UPDATE pumpfun_watchlist
            SET rejection_type = 'permanent', last_processor = ?
            WHERE status IN ({_placeholders(REJECTED_STATUSES)})
              AND rejection_type = 'soft'
              AND removed_at < ?
            """,
            (processor, *REJECTED_STATUSES, to_iso(before)),
        )
        return cursor.rowcount

    async def reject_stale_dead_tokens(self, before: datetime, processor: str) -> int:
        """Dead or bombed rows removed before ``before`` become permanent."""
        cursor = await self._write(
            """
            UPDATE pumpfun_watchlist
            SET rejection_type = 'permanent', permanent_reject = 1, last_processor = ?
            WHERE status IN ('dead', 'bombed')
              AND removed_at < ?
              AND (rejection_type IS NULL OR rejection_type != 'permanent')
            """,
            (processor, to_iso(before)),
        )
        return cursor.rowcount

    async def delete_permanent_rejects(self, before: datetime) -> int:
        cursor = await self._write(
            """
            DELETE FROM pumpfun_watchlist
            WHERE status IN ('dead', 'bombed', 'removed', 'rejected')
              AND rejection_type = 'permanent'
              AND removed_at < ?
            """,
            (to_iso(before),),
        )
        return cursor.rowcount

    async def purge_discovery_logs(self, before: datetime) -> int:
        cursor = await self._write(
            "DELETE FROM pumpfun_discovery_logs WHERE created_at < ?", (to_iso(before),)
        )
        return cursor.rowcount

    async def count_rejections(self) -> Dict[str, int]:
        """Soft, permanent and unclassified rejection counts."""
        row = await self._fetchone(
            f"""
            SELECT
                SUM(CASE WHEN status IN ({_placeholders(REJECTED_STATUSES)})
                         AND rejection_type = 'soft' THEN 1 ELSE 0 END) AS soft,
                SUM(CASE WHEN rejection_type = 'permanent' THEN 1 ELSE 0 END) AS permanent,
                SUM(CASE WHEN status IN ({_placeholders(REJECTED_STATUSES)})
                         AND rejection_type IS NULL THEN 1 ELSE 0 END) AS unclassified
            FROM pumpfun_watchlist
            """,
            (*REJECTED_STATUSES, *REJECTED_STATUSES),
        )
        return {key: int(row[key] or 0) for key in ("soft", "permanent", "unclassified")}

    # ------------------------------------------------------------------
    # Rejected-token backcheck
    # ------------------------------------------------------------------

    async def get_backcheck_candidates(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        return await self._fetchall(
            """
            SELECT token_mint, token_symbol, token_name, image_url, rejection_reason,
                   rejection_type, rejected_at, creator_wallet
            FROM pumpfun_watchlist
            WHERE rejection_reason IS NOT NULL
              AND LOWER(rejection_reason) NOT LIKE '%mayhem%'
              AND COALESCE(was_spiked_and_killed, 0) != 1
            ORDER BY rejected_at DESC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
        )

    async def upsert_backcheck(self, row: Dict[str, Any]) -> None:
        """Insert a backcheck row; repeat checks overwrite it and bump check_count."""
        values = [_encode(c, row.get(c)) for c in BACKCHECK_COLUMNS]
        updates = ", ".join(f"{c} = excluded.{c}" for c in BACKCHECK_COLUMNS[1:])
        await self._write(
            f"""
            INSERT INTO pumpfun_rejected_backcheck ({", ".join(BACKCHECK_COLUMNS)}, check_count)
            VALUES ({_placeholders(values)}, 1)
            ON CONFLICT (token_mint) DO UPDATE
            SET {updates}, check_count = pumpfun_rejected_backcheck.check_count + 1
            """,
            values,
        )

    async def get_backcheck(self, token_mint: str) -> Optional[Dict[str, Any]]:
        return await self._fetchone(
            "SELECT * FROM pumpfun_rejected_backcheck WHERE token_mint = ?", (token_mint,)
        )

    # ------------------------------------------------------------------
    # Mint monitor
    # ------------------------------------------------------------------

    async def upsert_mint_wallet(
        self,
        user_id: str,
        wallet_address: str,
        source_token: Optional[str] = None,
        notification_chat_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Add a wallet to cron monitoring (or re-enable it)."""
        now = to_iso(utc_now())
        await self._write(
            """
            INSERT INTO mint_monitor_wallets
                (user_id, wallet_address, source_token, is_cron_enabled,
                 notification_chat_ids, created_at, updated_at)
            VALUES (?, ?, ?, 1, ?, ?, ?)
            ON CONFLICT (user_id, wallet_address) DO UPDATE SET
                source_token = COALESCE(excluded.source_token, source_token),
                notification_chat_ids = COALESCE(excluded.notification_chat_ids, notification_chat_ids),
                is_cron_enabled = 1,
                updated_at = excluded.updated_at
            """,
            (
                user_id,
                wallet_address,
                source_token,
                _encode("notification_chat_ids", notification_chat_ids),
                now,
                now,
            ),
        )
        return await self._fetchone(
            "SELECT * FROM mint_monitor_wallets WHERE user_id = ? AND wallet_address = ?",
            (user_id, wallet_address),
        )

    async def disable_mint_wallet(self, user_id: str, wallet_address: str) -> bool:
        cursor = await self._write(
            """
            UPDATE mint_monitor_wallets SET is_cron_enabled = 0, updated_at = ?
            WHERE user_id = ? AND wallet_address = ?
            """,
            (to_iso(utc_now()), user_id, wallet_address),
        )
        return cursor.rowcount > 0

    async def get_cron_wallets(self) -> List[Dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM mint_monitor_wallets WHERE is_cron_enabled = 1 ORDER BY id"
        )

    async def insert_detection(
        self,
        wallet_id: int,
        token_mint: str,
        token_name: Optional[str],
        token_symbol: Optional[str],
        token_image: Optional[str],
        detected_at: datetime,
    ) -> bool:
        """Store a detection. Returns False when (wallet, mint) was already known."""
        cursor = await self._write(
            """
            INSERT OR IGNORE INTO mint_monitor_detections
                (wallet_id, token_mint, token_name, token_symbol, token_image, detected_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (wallet_id, token_mint, token_name, token_symbol, token_image, to_iso(detected_at)),
        )
        return cursor.rowcount > 0

    async def touch_mint_wallet(self, wallet_id: int) -> None:
        await self._write(
            "UPDATE mint_monitor_wallets SET last_scanned_at = ? WHERE id = ?",
            (to_iso(utc_now()), wallet_id),
        )

    async def insert_scan_log(
        self,
        wallet_id: int,
        wallet_address: str,
        mints_found: int,
        new_mints_detected: int,
        status: str,
        error_message: Optional[str],
        scan_duration_ms: int,
    ) -> None:
        await self._write(
            """
            INSERT INTO mint_monitor_scan_logs
                (wallet_id, wallet_address, scanned_at, mints_found, new_mints_detected,
                 status, error_message, scan_duration_ms)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                wallet_id,
                wallet_address,
                to_iso(utc_now()),
                mints_found,
                new_mints_detected,
                status,
                error_message,
                scan_duration_ms,
            ),
        )

    async def get_scan_logs(self, wallet_id: int, limit: int = 20) -> List[Dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM mint_monitor_scan_logs WHERE wallet_id = ? ORDER BY id DESC LIMIT ?",
            (wallet_id, limit),
        )

    async def get_monitored_wallets(self, user_id: str) -> List[Dict[str, Any]]:
        """A user's monitored wallets, newest first, each with its detections."""
        wallets = await self._fetchall(
            "SELECT * FROM mint_monitor_wallets WHERE user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,),
        )
        for wallet in wallets:
            wallet["detections"] = await self._fetchall(
                "SELECT * FROM mint_monitor_detections WHERE wallet_id = ? ORDER BY detected_at DESC",
                (wallet["id"],),
            )
        return wallets
