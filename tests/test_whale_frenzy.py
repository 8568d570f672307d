"""Tests for whale frenzy detection."""

import asyncio
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock, MagicMock

from whalewatch.core.errors import BadRequestError, NotFoundError
from whalewatch.core.swap import JupiterSwapExecutor
from whalewatch.jobs.whale_frenzy import (
    NO_TRADING_WALLET,
    FrenzyConfig,
    WhaleBuy,
    WhaleFrenzyDetector,
)
from whalewatch.utils.timeutil import utc_now


TOKEN = "FrenzyToken1111111111111111111111111111111"


@pytest.fixture
def swap_executor():
    """Create mock swap executor."""
    executor = MagicMock(spec=JupiterSwapExecutor)
    executor.buy = AsyncMock(return_value="swap-signature")
    return executor


@pytest.fixture
def dispatcher():
    """Create mock alert dispatcher."""
    mock = MagicMock()
    mock.frenzy_detected = AsyncMock(return_value=1)
    return mock


@pytest.fixture
async def detector(db, swap_executor, dispatcher):
    """Detector with one user watching three whales (threshold 3)."""
    detector = WhaleFrenzyDetector(db, swap_executor, dispatcher)
    await detector.save_config("u1", min_whales_for_frenzy=3)
    for wallet in ("W1", "W2", "W3"):
        await detector.add_whale("u1", wallet)
    return detector


def buy(wallet, token=TOKEN, signature=None):
    return WhaleBuy(wallet_address=wallet, token_mint=token, amount_sol=5.0, signature=signature)


class TestProcessBuy:
    """Test buy processing and frenzy firing."""

    @pytest.mark.asyncio
    async def test_frenzy_fires_at_threshold(self, detector, db, dispatcher):
        """The third distinct whale triggers a frenzy."""
        assert await detector.process_buy(buy("W2", signature="s2")) == []
        assert await detector.process_buy(buy("W1", signature="s1")) == []

        results = await detector.process_buy(buy("W3", signature="s3"))

        assert results == [{
            "user_id": "u1",
            "frenzy_detected": True,
            "whale_count": 3,
            "auto_buy_executed": False,
        }]
        events = await db.list_frenzy_events("u1")
        assert len(events) == 1
        assert events[0]["participating_wallets"] == ["W1", "W2", "W3"]
        assert events[0]["first_buy_at"] <= events[0]["last_buy_at"]
        dispatcher.frenzy_detected.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_repeat_buys_count_once(self, detector):
        """A wallet buying twice is still one whale."""
        await detector.process_buy(buy("W1", signature="a"))
        await detector.process_buy(buy("W1", signature="b"))

        assert await detector.process_buy(buy("W2", signature="c")) == []

    @pytest.mark.asyncio
    async def test_non_whale_ignored(self, detector, db):
        """Buys by wallets outside the whale list never trigger anything."""
        await detector.process_buy(buy("W1", signature="a"))
        await detector.process_buy(buy("W2", signature="b"))

        assert await detector.process_buy(buy("Stranger", signature="c")) == []
        assert await db.list_frenzy_events("u1") == []

    @pytest.mark.asyncio
    async def test_cooldown_blocks_second_event(self, detector, db):
        """A second frenzy on the same token inside the cooldown is suppressed."""
        for i, wallet in enumerate(("W1", "W2", "W3")):
            await detector.process_buy(buy(wallet, signature=f"first-{i}"))

        assert await detector.process_buy(buy("W1", signature="again")) == []
        assert len(await db.list_frenzy_events("u1")) == 1

    @pytest.mark.asyncio
    async def test_buys_outside_window_ignored(self, detector, db):
        """Buys older than the window do not count toward the threshold."""
        old = utc_now() - timedelta(seconds=1000)
        await db.record_wallet_transaction("W1", TOKEN, "buy", 1.0, old, "old-1")
        await db.record_wallet_transaction("W2", TOKEN, "buy", 1.0, old, "old-2")

        assert await detector.process_buy(buy("W3", signature="new")) == []

    @pytest.mark.asyncio
    async def test_users_evaluated_independently(self, detector, db):
        """One buy can fire for a user with a lower threshold only."""
        await detector.save_config("u2", min_whales_for_frenzy=2)
        await detector.add_whale("u2", "W1")
        await detector.add_whale("u2", "W2")

        await detector.process_buy(buy("W1", signature="a"))
        results = await detector.process_buy(buy("W2", signature="b"))

        assert [r["user_id"] for r in results] == ["u2"]
        assert await db.list_frenzy_events("u1") == []

    @pytest.mark.asyncio
    async def test_inactive_config_skipped(self, detector):
        """Inactive configs are ignored."""
        await detector.save_config("u1", is_active=False)
        for i, wallet in enumerate(("W1", "W2", "W3")):
            results = await detector.process_buy(buy(wallet, signature=str(i)))
        assert results == []


class TestAutoBuy:
    """Test frenzy auto-buys."""

    async def _trigger(self, detector):
        await detector.process_buy(buy("W1", signature="a"))
        await detector.process_buy(buy("W2", signature="b"))
        return await detector.process_buy(buy("W3", signature="c"))

    @pytest.mark.asyncio
    async def test_missing_wallet_recorded(self, detector, db, swap_executor):
        """Without a trading key the event stores an error and no swap happens."""
        await detector.save_config("u1", auto_buy_enabled=True)

        results = await self._trigger(detector)

        assert results[0]["auto_buy_executed"] is False
        event = (await db.list_frenzy_events("u1"))[0]
        assert event["auto_buy_error"] == NO_TRADING_WALLET
        swap_executor.buy.assert_not_called()

    @pytest.mark.asyncio
    async def test_successful_auto_buy(self, detector, db, swap_executor):
        """A configured trading wallet buys through the swap executor."""
        await detector.save_config("u1", auto_buy_enabled=True, buy_amount_sol=0.5, max_slippage_bps=300)
        await db.save_user_secrets("u1", "secret-key", "https://rpc.example")

        results = await self._trigger(detector)

        assert results[0]["auto_buy_executed"] is True
        swap_executor.buy.assert_awaited_once_with(
            token_mint=TOKEN,
            amount_sol=0.5,
            slippage_bps=300,
            private_key="secret-key",
            rpc_url="https://rpc.example",
        )
        event = (await db.list_frenzy_events("u1"))[0]
        assert event["auto_buy_signature"] == "swap-signature"
        assert event["auto_buy_amount_sol"] == 0.5

    @pytest.mark.asyncio
    async def test_failed_auto_buy_still_stores_event(self, detector, db, swap_executor):
        """A swap failure is recorded and the event is still stored."""
        await detector.save_config("u1", auto_buy_enabled=True)
        await db.save_user_secrets("u1", "secret-key")
        swap_executor.buy.side_effect = RuntimeError("route not found")

        results = await self._trigger(detector)

        assert results[0]["auto_buy_executed"] is False
        event = (await db.list_frenzy_events("u1"))[0]
        assert event["auto_buy_error"] == "route not found"

    @pytest.mark.asyncio
    async def test_concurrent_buys_fire_once(self, detector, db, swap_executor):
        """Whale buys arriving together produce one event and one swap."""
        await detector.add_whale("u1", "W4")
        await detector.save_config("u1", auto_buy_enabled=True)
        await db.save_user_secrets("u1", "secret-key")

        async def slow_swap(**kwargs):
            await asyncio.sleep(0.05)
            return "swap-signature"

        swap_executor.buy.side_effect = slow_swap

        await detector.process_buy(buy("W1", signature="a"))
        await detector.process_buy(buy("W2", signature="b"))
        first, second = await asyncio.gather(
            detector.process_buy(buy("W3", signature="c")),
            detector.process_buy(buy("W4", signature="d")),
        )

        assert len(first) + len(second) == 1
        assert swap_executor.buy.await_count == 1
        assert len(await db.list_frenzy_events("u1")) == 1

    @pytest.mark.asyncio
    async def test_other_tokens_not_blocked(self, detector, db):
        """Frenzies on different tokens fire independently."""
        for i, wallet in enumerate(("W1", "W2")):
            await detector.process_buy(buy(wallet, token="A", signature=f"a{i}"))
            await detector.process_buy(buy(wallet, token="B", signature=f"b{i}"))

        results = await asyncio.gather(
            detector.process_buy(buy("W3", token="A", signature="a2")),
            detector.process_buy(buy("W3", token="B", signature="b2")),
        )

        assert [len(r) for r in results] == [1, 1]
        assert len(await db.list_frenzy_events("u1")) == 2

    @pytest.mark.asyncio
    async def test_saved_trading_wallet_used(self, detector, db, swap_executor):
        """A wallet stored through the detector is used for the swap."""
        await detector.save_config("u1", auto_buy_enabled=True)
        wallet = await detector.save_trading_wallet("u1", " secret-key ", "https://rpc.example")

        assert wallet == {"user_id": "u1", "rpc_url": "https://rpc.example"}

        await self._trigger(detector)

        assert swap_executor.buy.call_args.kwargs["private_key"] == "secret-key"
        assert swap_executor.buy.call_args.kwargs["rpc_url"] == "https://rpc.example"

    @pytest.mark.asyncio
    async def test_trading_wallet_requires_key(self, detector):
        """Saving a wallet without a key is a bad request."""
        with pytest.raises(BadRequestError):
            await detector.save_trading_wallet("u1", "")

    @pytest.mark.asyncio
    async def test_zero_amount_skips_auto_buy(self, detector, db, swap_executor):
        """An auto-buy amount of zero disables buying."""
        await detector.save_config("u1", auto_buy_enabled=True, buy_amount_sol=0)
        await db.save_user_secrets("u1", "secret-key")

        await self._trigger(detector)

        swap_executor.buy.assert_not_called()
        assert (await db.list_frenzy_events("u1"))[0]["auto_buy_error"] is None


class TestCheckFrenzy:
    """Test polling mode."""

    @pytest.mark.asyncio
    async def test_requires_user(self, detector):
        """Missing user_id is a bad request."""
        with pytest.raises(BadRequestError):
            await detector.check_frenzy(None)

    @pytest.mark.asyncio
    async def test_unknown_user(self, detector):
        """A user without config is not found."""
        with pytest.raises(NotFoundError):
            await detector.check_frenzy("nobody")

    @pytest.mark.asyncio
    async def test_no_whales(self, detector):
        """A config without whales returns an empty list with a message."""
        await detector.save_config("u3")

        result = await detector.check_frenzy("u3")

        assert result == {"frenzies": [], "message": "No whale wallets configured"}

    @pytest.mark.asyncio
    async def test_groups_by_token(self, detector, db):
        """Only tokens meeting the threshold are reported."""
        now = utc_now()
        for i, wallet in enumerate(("W1", "W2", "W3")):
            await db.record_wallet_transaction(wallet, "HOT", "buy", 1.0, now, f"hot-{i}")
        await db.record_wallet_transaction("W1", "COLD", "buy", 1.0, now, "cold")

        result = await detector.check_frenzy("u1")

        assert result["frenzies"] == [{
            "token_mint": "HOT",
            "whale_count": 3,
            "participating_wallets": ["W1", "W2", "W3"],
        }]
        assert result["config"]["min_whales_for_frenzy"] == 3


class TestConfigManagement:
    """Test config and whale-list operations."""

    @pytest.mark.asyncio
    async def test_defaults_from_settings(self, db):
        """A new config starts from application defaults."""
        detector = WhaleFrenzyDetector(db)

        config = await detector.save_config("fresh")

        assert config == FrenzyConfig(user_id="fresh").to_dict()

    @pytest.mark.asyncio
    async def test_partial_update_keeps_values(self, detector):
        """Updating one field leaves the others alone."""
        await detector.save_config("u1", cooldown_seconds=60)
        config = await detector.save_config("u1", time_window_seconds=120)

        assert config["cooldown_seconds"] == 60
        assert config["time_window_seconds"] == 120
        assert config["min_whales_for_frenzy"] == 3

    @pytest.mark.asyncio
    async def test_invalid_threshold(self, detector):
        """A threshold below two is rejected."""
        with pytest.raises(BadRequestError):
            await detector.save_config("u1", min_whales_for_frenzy=1)

    @pytest.mark.asyncio
    async def test_unknown_field(self, detector):
        """Unknown config fields are rejected."""
        with pytest.raises(BadRequestError):
            await detector.save_config("u1", turbo=True)

    @pytest.mark.asyncio
    async def test_json_strings_coerced(self, detector):
        """String values from JSON payloads are converted to the field types."""
        await detector.save_config("u1", auto_buy_enabled=True)

        config = await detector.save_config(
            "u1", auto_buy_enabled="false", min_whales_for_frenzy="5", buy_amount_sol="0.25"
        )

        assert config["auto_buy_enabled"] is False
        assert config["min_whales_for_frenzy"] == 5
        assert config["buy_amount_sol"] == 0.25

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field,value", [
        ("auto_buy_enabled", "maybe"),
        ("min_whales_for_frenzy", "five"),
        ("time_window_seconds", 0),
        ("cooldown_seconds", -1),
        ("buy_amount_sol", -0.5),
        ("max_slippage_bps", 20000),
    ])
    async def test_invalid_values_rejected(self, detector, field, value):
        """Values of the wrong type or out of range are bad requests."""
        with pytest.raises(BadRequestError) as exc_info:
            await detector.save_config("u1", **{field: value})

        assert field in exc_info.value.message

    @pytest.mark.asyncio
    async def test_rejected_update_leaves_config(self, detector, db):
        """A failed update does not touch the stored config."""
        with pytest.raises(BadRequestError):
            await detector.save_config("u1", auto_buy_enabled="maybe")

        assert (await db.get_frenzy_config("u1"))["auto_buy_enabled"] in (0, False)

    @pytest.mark.asyncio
    async def test_list_events_limit(self, detector):
        """A non-positive limit is a bad request."""
        with pytest.raises(BadRequestError):
            await detector.list_events("u1", 0)

    @pytest.mark.asyncio
    async def test_remove_unknown_whale(self, detector):
        """Removing a wallet that is not listed is not found."""
        with pytest.raises(NotFoundError):
            await detector.remove_whale("u1", "nope")

    def test_buy_from_dict_requires_fields(self):
        """Payloads without wallet or token are rejected."""
        with pytest.raises(BadRequestError):
            WhaleBuy.from_dict({"wallet_address": "W1"})

    def test_buy_from_dict_parses_timestamp(self):
        """ISO timestamps with a Z suffix are parsed as UTC."""
        buy = WhaleBuy.from_dict({
            "wallet_address": "W1",
            "token_mint": "T",
            "timestamp": "2024-05-01T12:00:00Z",
        })
        assert buy.timestamp.isoformat() == "2024-05-01T12:00:00+00:00"

    @pytest.mark.parametrize("field,value", [("timestamp", "yesterday"), ("amount_sol", "lots")])
    def test_buy_from_dict_invalid_values(self, field, value):
        """Unparseable timestamps and amounts are bad requests."""
        with pytest.raises(BadRequestError):
            WhaleBuy.from_dict({"wallet_address": "W1", "token_mint": "T", field: value})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
