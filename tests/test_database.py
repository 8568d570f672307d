"""Tests for the SQLite store."""

from datetime import timedelta

import pytest

from whalewatch.utils.timeutil import utc_now


class TestWhaleTables:
    """Test whale lists, transactions and frenzy events."""

    @pytest.mark.asyncio
    async def test_whale_reactivation(self, db):
        """Removing and re-adding a whale keeps one row and reactivates it."""
        await db.add_whale_wallet("u1", "W1", "big fish")
        assert await db.deactivate_whale_wallet("u1", "W1")
        assert not await db.is_active_whale("u1", "W1")

        whale = await db.add_whale_wallet("u1", "W1")

        assert whale["is_active"] is True
        assert whale["nickname"] == "big fish"
        assert await db.get_active_whale_addresses("u1") == ["W1"]

    @pytest.mark.asyncio
    async def test_deactivate_unknown_whale(self, db):
        """Deactivating a wallet that is not listed reports False."""
        assert not await db.deactivate_whale_wallet("u1", "missing")

    @pytest.mark.asyncio
    async def test_duplicate_signature_ignored(self, db):
        """The same signature is only stored once."""
        now = utc_now()
        assert await db.record_wallet_transaction("W1", "T1", "buy", 1.0, now, "sig1")
        assert not await db.record_wallet_transaction("W1", "T1", "buy", 1.0, now, "sig1")

        buys = await db.get_recent_buys(["W1"], now - timedelta(minutes=1))
        assert len(buys) == 1

    @pytest.mark.asyncio
    async def test_recent_buys_filters(self, db):
        """Recent buys are filtered by time, wallet, token and type."""
        now = utc_now()
        await db.record_wallet_transaction("W1", "T1", "buy", 1.0, now, "a")
        await db.record_wallet_transaction("W2", "T2", "buy", 1.0, now, "b")
        await db.record_wallet_transaction("W3", "T1", "buy", 1.0, now, "c")
        await db.record_wallet_transaction("W1", "T1", "sell", 1.0, now, "d")
        await db.record_wallet_transaction("W2", "T1", "buy", 1.0, now - timedelta(hours=1), "e")

        since = now - timedelta(minutes=5)
        buys = await db.get_recent_buys(["W1", "W2"], since, token_mint="T1")
        assert [b["signature"] for b in buys] == ["a"]

        all_buys = await db.get_recent_buys(["W1", "W2"], since)
        assert {b["token_mint"] for b in all_buys} == {"T1", "T2"}

        assert await db.get_recent_buys([], since) == []

    @pytest.mark.asyncio
    async def test_frenzy_event_round_trip(self, db):
        """Participating wallets come back as a list and flags as bools."""
        now = utc_now()
        await db.insert_frenzy_event({
            "user_id": "u1",
            "token_mint": "T1",
            "whale_count": 2,
            "participating_wallets": ["W1", "W2"],
            "first_buy_at": now,
            "last_buy_at": now,
            "auto_buy_executed": False,
            "detected_at": now,
        })

        events = await db.list_frenzy_events("u1")
        assert events[0]["participating_wallets"] == ["W1", "W2"]
        assert events[0]["auto_buy_executed"] is False
        assert await db.has_recent_frenzy("u1", "T1", now - timedelta(seconds=1))
        assert not await db.has_recent_frenzy("u1", "T1", now + timedelta(seconds=1))
        assert not await db.has_recent_frenzy("u2", "T1", now - timedelta(seconds=1))


class TestWatchlist:
    """Test rejected-token lifecycle queries."""

    @pytest.mark.asyncio
    async def test_upsert_updates_existing_row(self, db):
        """A second upsert for the same mint updates in place."""
        first = await db.upsert_watchlist_token({"token_mint": "M1", "status": "watching"})
        second = await db.upsert_watchlist_token({
            "token_mint": "M1",
            "status": "dead",
            "metadata": {"source": "test"},
        })

        assert first["id"] == second["id"]
        assert second["status"] == "dead"
        assert second["metadata"] == {"source": "test"}

    @pytest.mark.asyncio
    async def test_unknown_column_rejected(self, db):
        """Only watchlist columns may be written."""
        with pytest.raises(ValueError):
            await db.upsert_watchlist_token({"token_mint": "M1", "bogus": 1})

    @pytest.mark.asyncio
    async def test_dead_tokens_become_permanent(self, db):
        """Old dead rows become permanent; already-permanent rows are not counted."""
        old = utc_now() - timedelta(hours=3)
        await db.upsert_watchlist_token({"token_mint": "A", "status": "dead", "removed_at": old})
        await db.upsert_watchlist_token({
            "token_mint": "B", "status": "bombed", "removed_at": old, "rejection_type": "permanent",
        })
        await db.upsert_watchlist_token({"token_mint": "C", "status": "dead", "removed_at": utc_now()})

        count = await db.reject_stale_dead_tokens(utc_now() - timedelta(hours=2), "test")

        assert count == 1
        row = await db.get_watchlist_token("A")
        assert row["rejection_type"] == "permanent"
        assert row["permanent_reject"] is True
        assert (await db.get_watchlist_token("C"))["rejection_type"] is None

    @pytest.mark.asyncio
    async def test_count_rejections(self, db):
        """Counts split soft, permanent and unclassified rows."""
        await db.upsert_watchlist_token({"token_mint": "A", "status": "dead", "rejection_type": "soft"})
        await db.upsert_watchlist_token({"token_mint": "B", "status": "removed", "rejection_type": "permanent"})
        await db.upsert_watchlist_token({"token_mint": "C", "status": "rejected"})
        await db.upsert_watchlist_token({"token_mint": "D", "status": "watching"})

        assert await db.count_rejections() == {"soft": 1, "permanent": 1, "unclassified": 1}

    @pytest.mark.asyncio
    async def test_count_rejections_empty(self, db):
        """An empty table counts zero everywhere."""
        assert await db.count_rejections() == {"soft": 0, "permanent": 0, "unclassified": 0}


class TestBackcheckTable:
    """Test backcheck upserts."""

    @pytest.mark.asyncio
    async def test_check_count_increments(self, db):
        """Re-checking a token overwrites values and bumps check_count."""
        await db.upsert_backcheck({"token_mint": "M1", "false_positive_score": 10, "is_graduated": False})
        await db.upsert_backcheck({"token_mint": "M1", "false_positive_score": 50, "is_graduated": True})

        row = await db.get_backcheck("M1")
        assert row["check_count"] == 2
        assert row["false_positive_score"] == 50
        assert row["is_graduated"] is True


class TestMintMonitorTables:
    """Test monitored wallets and detections."""

    @pytest.mark.asyncio
    async def test_upsert_reenables_wallet(self, db):
        """Adding a disabled wallet again re-enables cron and keeps chat ids."""
        wallet = await db.upsert_mint_wallet("u1", "W1", "SRC", ["111"])
        await db.disable_mint_wallet("u1", "W1")
        assert await db.get_cron_wallets() == []

        again = await db.upsert_mint_wallet("u1", "W1")

        assert again["id"] == wallet["id"]
        assert again["is_cron_enabled"] is True
        assert again["notification_chat_ids"] == ["111"]
        assert again["source_token"] == "SRC"

    @pytest.mark.asyncio
    async def test_detection_is_unique_per_wallet(self, db):
        """The same mint is only detected once per wallet."""
        wallet = await db.upsert_mint_wallet("u1", "W1")
        other = await db.upsert_mint_wallet("u1", "W2")
        now = utc_now()

        assert await db.insert_detection(wallet["id"], "M1", "Name", "SYM", None, now)
        assert not await db.insert_detection(wallet["id"], "M1", "Name", "SYM", None, now)
        assert await db.insert_detection(other["id"], "M1", "Name", "SYM", None, now)

    @pytest.mark.asyncio
    async def test_monitored_wallets_include_detections(self, db):
        """Wallets are listed newest first with nested detections."""
        first = await db.upsert_mint_wallet("u1", "W1")
        await db.upsert_mint_wallet("u1", "W2")
        await db.insert_detection(first["id"], "M1", None, None, None, utc_now())

        wallets = await db.get_monitored_wallets("u1")

        assert [w["wallet_address"] for w in wallets] == ["W2", "W1"]
        assert [d["token_mint"] for d in wallets[1]["detections"]] == ["M1"]
        assert wallets[0]["detections"] == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
