"""Tests for the third-party API clients."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from solders.keypair import Keypair

from whalewatch.core import swap as swap_module
from whalewatch.core.dexscreener import DexScreenerClient, pair_float
from whalewatch.core.errors import BadRequestError, ConfigurationError, UpstreamAPIError
from whalewatch.core.helius import HeliusClient, parse_token_metadata
from whalewatch.core.market_data import PriceClient, SOL_MINT, parse_token_snapshot
from whalewatch.core.swap import JupiterSwapExecutor


def mock_session(status=200, payload=None, text=""):
    """aiohttp-style session whose request() is an async context manager."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value=text)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.request = MagicMock(return_value=context)
    return session


class TestBaseClient:
    """Test request handling shared by every client."""

    @pytest.mark.asyncio
    async def test_returns_pairs(self):
        """A 200 response is decoded."""
        client = DexScreenerClient(session=mock_session(payload={"pairs": [{"dexId": "raydium"}]}))

        assert await client.get_token_pairs("M1") == [{"dexId": "raydium"}]

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self):
        """An allowed 404 yields no pairs."""
        client = DexScreenerClient(session=mock_session(status=404))

        assert await client.get_token_pairs("M1") == []

    @pytest.mark.asyncio
    async def test_client_error_raises(self):
        """Other 4xx responses raise without retrying."""
        session = mock_session(status=401, text="unauthorized")
        client = DexScreenerClient(session=session)

        with pytest.raises(UpstreamAPIError) as exc_info:
            await client.get_token_pairs("M1")

        assert exc_info.value.http_status == 401
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_helius_requires_key(self):
        """Helius calls fail fast without an API key."""
        client = HeliusClient(session=mock_session(payload=[]))

        with pytest.raises(ConfigurationError):
            await client.get_address_transactions("W1")


class TestErrors:
    """Test status codes carried by error types."""

    def test_status_defaults_and_override(self):
        """Subclasses carry their status unless one is passed explicitly."""
        assert BadRequestError("bad").status_code == 400
        assert BadRequestError("bad", status_code=422).status_code == 422
        assert BadRequestError("bad", status_code=None).status_code == 400

    def test_upstream_without_http_status(self):
        """Network failures have no HTTP status."""
        error = UpstreamAPIError("helius", "timeout")

        assert error.status_code == 502
        assert error.http_status is None
        assert error.message == "helius: timeout"


class TestParsers:
    """Test response parsing helpers."""

    def test_metadata_prefers_on_chain(self):
        """On-chain Metaplex data wins over the legacy list."""
        token = {
            "onChainMetadata": {"metadata": {"data": {"name": "Chain", "symbol": "CHN", "uri": "https://u"}}},
            "legacyMetadata": {"name": "Legacy", "symbol": "LEG", "logoURI": "https://l"},
        }
        assert parse_token_metadata(token) == {"name": "Chain", "symbol": "CHN", "image": "https://u"}

    def test_metadata_legacy_fallback(self):
        """Legacy metadata fills gaps."""
        token = {"onChainMetadata": None, "legacyMetadata": {"name": "Legacy", "symbol": "LEG", "logoURI": "https://l"}}
        assert parse_token_metadata(token) == {"name": "Legacy", "symbol": "LEG", "image": "https://l"}

    def test_snapshot(self):
        """Holders, first-pool volume and socials are extracted."""
        snapshot = parse_token_snapshot({
            "holders": 42,
            "pools": [{"volume": {"h24": "123.5"}}, {"volume": {"h24": 999}}],
            "token": {"twitter": "https://x.com/coin"},
        })

        assert snapshot.holders == 42
        assert snapshot.volume_usd == 123.5
        assert snapshot.has_socials is True

    def test_snapshot_empty(self):
        """Missing fields default to zero and no socials."""
        snapshot = parse_token_snapshot({})

        assert snapshot.holders == 0
        assert snapshot.volume_usd == 0.0
        assert snapshot.has_socials is False

    @pytest.mark.parametrize("value,expected", [("1.5", 1.5), (None, 0.0), ("n/a", 0.0), (3, 3.0)])
    def test_pair_float(self, value, expected):
        assert pair_float(value) == expected


class TestPriceClient:
    """Test SOL price fallbacks."""

    @pytest.mark.asyncio
    async def test_falls_back_to_coingecko(self):
        """CoinGecko answers when Jupiter fails."""
        client = PriceClient(session=MagicMock())
        client._fetch_jupiter = AsyncMock(side_effect=UpstreamAPIError("price", "HTTP 503"))
        client._fetch_coingecko = AsyncMock(return_value=150.0)

        assert await client.get_sol_price() == 150.0

    @pytest.mark.asyncio
    async def test_cached_between_calls(self):
        """A fresh price is served from cache."""
        client = PriceClient(session=MagicMock())
        client._fetch_jupiter = AsyncMock(return_value=180.0)

        await client.get_sol_price()
        await client.get_sol_price()

        client._fetch_jupiter.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_none_when_all_sources_fail(self):
        """Without any price None is returned."""
        client = PriceClient(session=MagicMock())
        client._fetch_jupiter = AsyncMock(return_value=None)
        client._fetch_coingecko = AsyncMock(side_effect=UpstreamAPIError("price", "timeout"))

        assert await client.get_sol_price() is None

    @pytest.mark.asyncio
    async def test_jupiter_response_parsed(self):
        """Jupiter's price map is keyed by mint."""
        client = PriceClient(session=mock_session(payload={"data": {SOL_MINT: {"price": "201.5"}}}))

        assert await client.get_sol_price() == 201.5


class TestJupiterSwapExecutor:
    """Test the swap pipeline with network steps mocked."""

    @pytest.mark.asyncio
    async def test_buy_pipeline(self, monkeypatch):
        """Quote, build, sign and submit run in order with the wallet's key."""
        keypair = Keypair()
        executor = JupiterSwapExecutor(session=MagicMock())
        executor.get_quote = AsyncMock(return_value={"outAmount": "1000"})
        executor.build_swap_transaction = AsyncMock(return_value=b"raw")
        executor._submit = AsyncMock(return_value="sig-1")
        signer = MagicMock(return_value="signed-tx")
        monkeypatch.setattr(swap_module, "sign_transaction", signer)

        signature = await executor.buy("Token1", 0.25, 300, str(keypair), "https://rpc.example")

        assert signature == "sig-1"
        executor.get_quote.assert_awaited_once_with(
            input_mint=SOL_MINT,
            output_mint="Token1",
            amount_lamports=250_000_000,
            slippage_bps=300,
        )
        executor.build_swap_transaction.assert_awaited_once_with({"outAmount": "1000"}, str(keypair.pubkey()))
        executor._submit.assert_awaited_once_with("signed-tx", "https://rpc.example")

    @pytest.mark.asyncio
    async def test_non_positive_amount(self):
        """Zero or negative amounts are rejected before any request."""
        executor = JupiterSwapExecutor(session=MagicMock())

        with pytest.raises(BadRequestError):
            await executor.buy("Token1", 0, 300, str(Keypair()))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
