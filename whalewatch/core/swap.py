"""Jupiter swap execution for frenzy auto-buys."""

import base64
from typing import Any, Dict

from solana.rpc.async_api import AsyncClient
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from .errors import BadRequestError
from .http_client import BaseAPIClient
from .market_data import SOL_MINT


JUPITER_QUOTE_URL = "https://api.jup.ag/swap/v1/quote"
JUPITER_SWAP_URL = "https://api.jup.ag/swap/v1/swap"

LAMPORTS_PER_SOL = 1_000_000_000


class JupiterSwapExecutor(BaseAPIClient):
    """
    Buys a token with SOL through Jupiter.

    1. Fetch a quote for SOL -> token
    2. Ask Jupiter to build the swap transaction for the user's wallet
    3. Sign locally with the user's keypair
    4. Submit through the user's RPC endpoint (or the configured one)
    """

    provider = "jupiter"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.jupiter_api_key:
            headers["x-api-key"] = self.config.jupiter_api_key
        return headers

    async def buy(
        self,
        token_mint: str,
        amount_sol: float,
        slippage_bps: int,
        private_key: str,
        rpc_url: str = "",
    ) -> str:
        """
        Swap ``amount_sol`` SOL into ``token_mint``.

        Args:
            token_mint: Token to buy
            amount_sol: SOL to spend
            slippage_bps: Maximum slippage in basis points
            private_key: Base58 secret key of the paying wallet
            rpc_url: RPC endpoint to submit through (falls back to config)

        Returns:
            Transaction signature
        """
        if amount_sol <= 0:
            raise BadRequestError("amount_sol must be positive")

        try:
            keypair = Keypair.from_base58_string(private_key)
        except ValueError as e:
            raise BadRequestError(f"Invalid trading key: {e}")

        quote = await self.get_quote(
            input_mint=SOL_MINT,
            output_mint=token_mint,
            amount_lamports=int(amount_sol * LAMPORTS_PER_SOL),
            slippage_bps=slippage_bps,
        )
        raw_tx = await self.build_swap_transaction(quote, str(keypair.pubkey()))
        signed = sign_transaction(raw_tx, keypair)

        signature = await self._submit(signed, rpc_url or self.config.get_rpc_url())
        self.logger.info(f"Swap submitted for {token_mint}: {signature}")
        return signature

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount_lamports: int,
        slippage_bps: int,
    ) -> Dict[str, Any]:
        """Get a Jupiter route quote."""
        return await self._request_json(
            "GET",
            JUPITER_QUOTE_URL,
            endpoint="quote",
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(amount_lamports),
                "slippageBps": slippage_bps,
            },
            headers=self._headers(),
        )

    async def build_swap_transaction(self, quote: Dict[str, Any], user_public_key: str) -> bytes:
        """Ask Jupiter for the unsigned swap transaction."""
        data = await self._request_json(
            "POST",
            JUPITER_SWAP_URL,
            endpoint="swap",
            json={
                "quoteResponse": quote,
                "userPublicKey": user_public_key,
                "wrapAndUnwrapSol": True,
                "dynamicComputeUnitLimit": True,
            },
            headers=self._headers(),
        )
        return base64.b64decode(data["swapTransaction"])

    async def _submit(self, signed: VersionedTransaction, rpc_url: str) -> str:
        client = AsyncClient(rpc_url)
        try:
            response = await client.send_raw_transaction(
                bytes(signed), opts=TxOpts(skip_preflight=True, max_retries=2)
            )
            return str(response.value)
        finally:
            await client.close()


def sign_transaction(raw_tx: bytes, keypair: Keypair) -> VersionedTransaction:
    """Deserialise a Jupiter transaction and sign it with ``keypair``."""
    tx = VersionedTransaction.from_bytes(raw_tx)
    return VersionedTransaction(tx.message, [keypair])
