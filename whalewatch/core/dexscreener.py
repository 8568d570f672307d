"""DexScreener client."""

from typing import Any, Dict, List

from .http_client import BaseAPIClient


DEXSCREENER_API_BASE = "https://api.dexscreener.com/latest/dex"


class DexScreenerClient(BaseAPIClient):
    """Read-only client for DexScreener pair data (no API key needed)."""

    provider = "dexscreener"

    async def get_token_pairs(self, mint: str) -> List[Dict[str, Any]]:
        """
        Get all DEX pairs that trade a token.

        Args:
            mint: Token mint address

        Returns:
            List of pair objects (empty when the token has no pairs)
        """
        data = await self._request_json(
            "GET",
            f"{DEXSCREENER_API_BASE}/tokens/{mint}",
            endpoint="token_pairs",
            allow_not_found=True,
        )
        if not data:
            return []
        return data.get("pairs") or []


def pair_float(value: Any) -> float:
    """DexScreener returns prices as strings; anything unparsable is 0."""
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0
