"""Helius enhanced-API client (parsed transactions and token metadata)."""

from typing import Any, Dict, List, Optional

from .errors import ConfigurationError, UpstreamAPIError
from .http_client import BaseAPIClient


HELIUS_API_BASE = "https://api.helius.xyz/v0"


class HeliusClient(BaseAPIClient):
    """Client for the Helius REST API."""

    provider = "helius"

    def _api_key(self) -> str:
        if not self.config.helius_api_key:
            raise ConfigurationError("HELIUS_API_KEY not configured")
        return self.config.helius_api_key

    async def get_address_transactions(
        self,
        address: str,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Get parsed (enhanced) transactions for an address, newest first.

        Args:
            address: Wallet address
            limit: Maximum number of transactions (Helius caps at 100)

        Returns:
            List of enhanced transaction objects
        """
        data = await self._request_json(
            "GET",
            f"{HELIUS_API_BASE}/addresses/{address}/transactions",
            endpoint="address_transactions",
            params={"api-key": self._api_key(), "limit": limit},
        )
        return data if isinstance(data, list) else []

    async def get_token_metadata(self, mint: str) -> Optional[Dict[str, Optional[str]]]:
        """
        Resolve name, symbol and image for a mint.

        On-chain Metaplex metadata wins over the legacy token list.
        Returns None when the mint is unknown or the request fails.
        """
        try:
            data = await self._request_json(
                "POST",
                f"{HELIUS_API_BASE}/token-metadata",
                endpoint="token_metadata",
                params={"api-key": self._api_key()},
                json={"mintAccounts": [mint], "includeOffChain": True},
            )
        except UpstreamAPIError as e:
            self.logger.error(f"Error fetching metadata for {mint}: {e}")
            return None

        if not isinstance(data, list) or not data:
            return None

        return parse_token_metadata(data[0])


def parse_token_metadata(token: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Extract name/symbol/image from one Helius token-metadata entry."""
    on_chain = ((token.get("onChainMetadata") or {}).get("metadata") or {}).get("data") or {}
    legacy = token.get("legacyMetadata") or {}

    return {
        "name": on_chain.get("name") or legacy.get("name"),
        "symbol": on_chain.get("symbol") or legacy.get("symbol"),
        "image": on_chain.get("uri") or legacy.get("logoURI"),
    }
