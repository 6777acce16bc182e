"""
Solana Balance Source - Native SOL balance via public JSON-RPC.

Uses the `getBalance` method, which returns lamports.

Networks:
- devnet (api.devnet.solana.com) - default
- testnet (api.testnet.solana.com)
- mainnet (api.mainnet-beta.solana.com)
"""

import logging
from decimal import Decimal
from typing import Any, Optional

import aiohttp

from wallet_reconciliation.balance_sources.base import BaseBalanceSource
from wallet_reconciliation.exceptions import (
    BalanceFetchError,
    ConfigurationError,
    MalformedRecordError,
)
from wallet_reconciliation.models import ProviderType, SourceMetadata, coerce_decimal


logger = logging.getLogger(__name__)


class SolanaRpcBalanceSource(BaseBalanceSource):
    """Solana JSON-RPC balance source."""

    RPC_URLS = {
        "devnet": "https://api.devnet.solana.com",
        "testnet": "https://api.testnet.solana.com",
        "mainnet": "https://api.mainnet-beta.solana.com",
    }

    LAMPORTS_PER_SOL = Decimal("1000000000")

    def __init__(
        self,
        network: str = "devnet",
        rpc_url: Optional[str] = None,
        timeout: float = BaseBalanceSource.DEFAULT_TIMEOUT,
        max_retries: int = BaseBalanceSource.MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout, max_retries, session)
        if rpc_url is None and network not in self.RPC_URLS:
            raise ConfigurationError(
                message=f"Unknown Solana network {network!r}",
                config_key="SOLANA_NETWORK",
                context={"supported": sorted(self.RPC_URLS)},
            )
        self._network = network
        self._rpc_url = rpc_url or self.RPC_URLS[network]
        self._request_id = 0

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "solana_rpc"

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.SOLANA

    def metadata(self) -> SourceMetadata:
        """Return source metadata."""
        return SourceMetadata(
            name=self.name,
            display_name=f"Solana RPC ({self._network})",
            provider_type=self.provider_type,
            network=self._network,
            base_url=self._rpc_url,
            display_unit="SOL",
            documentation_url="https://solana.com/docs/rpc/http/getbalance",
        )

    async def fetch_raw(self, address: str) -> Any:
        """POST a getBalance request for `address`."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": "getBalance",
            "params": [address],
        }
        response = await self._make_request("POST", self._rpc_url, json_body=payload)

        if isinstance(response, dict) and response.get("error"):
            error = response["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise BalanceFetchError(
                message=f"Solana RPC error: {message}",
                source_name=self.name,
                provider_type=self.provider_type.value,
                address=address,
                response_body=str(response)[:500],
                request_url=self._rpc_url,
            )

        return response

    def parse_balance(self, raw_data: Any, address: str) -> Decimal:
        """Convert `result.value` lamports to SOL."""
        result = raw_data.get("result") if isinstance(raw_data, dict) else None
        value = result.get("value") if isinstance(result, dict) else None
        lamports = coerce_decimal(value)

        if lamports is None or lamports < 0:
            raise MalformedRecordError(
                message="getBalance response has no lamport value",
                source_name=self.name,
                provider_type=self.provider_type.value,
                raw_data=raw_data,
                field_name="result.value",
            )

        return lamports / self.LAMPORTS_PER_SOL
