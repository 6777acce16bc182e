"""
Zcash Balance Source - Transparent address balance via block explorer.

Queries the CipherScan explorer API, which answers with
{balance, totalReceived, totalSent, txCount, ...} in ZEC.

Networks:
- testnet (testnet.cipherscan.app) - default
- mainnet (cipherscan.app)
"""

import logging
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from wallet_reconciliation.balance_sources.base import BaseBalanceSource
from wallet_reconciliation.exceptions import ConfigurationError, MalformedRecordError
from wallet_reconciliation.models import ProviderType, SourceMetadata, coerce_decimal


logger = logging.getLogger(__name__)


class ZcashExplorerBalanceSource(BaseBalanceSource):
    """CipherScan block-explorer balance source."""

    EXPLORER_URLS = {
        "testnet": "https://testnet.cipherscan.app",
        "mainnet": "https://cipherscan.app",
    }

    def __init__(
        self,
        network: str = "testnet",
        explorer_url: Optional[str] = None,
        timeout: float = BaseBalanceSource.DEFAULT_TIMEOUT,
        max_retries: int = BaseBalanceSource.MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout, max_retries, session)
        if explorer_url is None and network not in self.EXPLORER_URLS:
            raise ConfigurationError(
                message=f"Unknown Zcash network {network!r}",
                config_key="ZCASH_NETWORK",
                context={"supported": sorted(self.EXPLORER_URLS)},
            )
        self._network = network
        self._base_url = (explorer_url or self.EXPLORER_URLS[network]).rstrip("/")

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "zcash_explorer"

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.ZCASH

    def metadata(self) -> SourceMetadata:
        """Return source metadata."""
        return SourceMetadata(
            name=self.name,
            display_name=f"CipherScan ({self._network})",
            provider_type=self.provider_type,
            network=self._network,
            base_url=self._base_url,
            display_unit="ZEC",
            documentation_url="https://cipherscan.app",
        )

    def address_url(self, address: str) -> str:
        """Explorer API URL for one address."""
        return f"{self._base_url}/api/address/{quote(address, safe='')}"

    async def fetch_raw(self, address: str) -> Any:
        """GET the address summary."""
        return await self._make_request("GET", self.address_url(address))

    def parse_balance(self, raw_data: Any, address: str) -> Decimal:
        """
        Read `balance`, or derive it as totalReceived - totalSent.

        A response carrying neither is treated as malformed.
        """
        if not isinstance(raw_data, dict):
            raise MalformedRecordError(
                message="Explorer response is not an object",
                source_name=self.name,
                provider_type=self.provider_type.value,
                raw_data=raw_data,
            )

        if raw_data.get("balance") is not None:
            balance = coerce_decimal(raw_data["balance"])
            if balance is None:
                raise MalformedRecordError(
                    message="Explorer balance is not numeric",
                    source_name=self.name,
                    provider_type=self.provider_type.value,
                    raw_data=raw_data,
                    field_name="balance",
                )
            return balance

        if raw_data.get("totalReceived") is not None:
            received = coerce_decimal(raw_data["totalReceived"]) or Decimal("0")
            sent = coerce_decimal(raw_data.get("totalSent")) or Decimal("0")
            logger.debug(f"[{self.name}] Derived balance for {address} from received - sent")
            return received - sent

        raise MalformedRecordError(
            message="Explorer response has neither balance nor totalReceived",
            source_name=self.name,
            provider_type=self.provider_type.value,
            raw_data=raw_data,
            field_name="balance",
        )
