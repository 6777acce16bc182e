"""
Shared fixtures for wallet reconciliation tests.
"""

import asyncio
from decimal import Decimal
from typing import Any, Optional

import pytest

from wallet_reconciliation.balance_sources.base import BaseBalanceSource
from wallet_reconciliation.balance_sources.registry import BalanceSourceRegistry
from wallet_reconciliation.exceptions import BalanceFetchError
from wallet_reconciliation.models import ProviderType, SourceMetadata, WalletRecord


SENTINEL = "0001-01-01T00:00:00"


def make_wallet(
    wallet_id: str = "w1",
    provider_type: ProviderType = ProviderType.ZCASH,
    address: str = "",
    balance: Optional[Any] = None,
    modified: str = "",
    created: str = "",
    **kwargs: Any,
) -> WalletRecord:
    """Build a WalletRecord with test defaults."""
    return WalletRecord(
        wallet_id=wallet_id,
        provider_type=provider_type,
        wallet_address=address,
        balance=Decimal(str(balance)) if balance is not None else None,
        created_date=created,
        modified_date=modified,
        **kwargs,
    )


class FakeBalanceSource(BaseBalanceSource):
    """
    In-memory balance source.

    `balances` maps address to a Decimal, or to an Exception to raise.
    """

    def __init__(
        self,
        provider_type: ProviderType,
        balances: Optional[dict[str, Any]] = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__(timeout=1.0, max_retries=1)
        self._provider_type = provider_type
        self.balances = dict(balances or {})
        self.delay = delay
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return f"fake_{self._provider_type.name.lower()}"

    @property
    def provider_type(self) -> ProviderType:
        return self._provider_type

    async def fetch_raw(self, address: str) -> Any:
        self.calls.append(address)
        if self.delay:
            await asyncio.sleep(self.delay)
        value = self.balances.get(address)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise BalanceFetchError(
                message="address unknown",
                source_name=self.name,
                address=address,
            )
        return {"balance": value}

    def parse_balance(self, raw_data: Any, address: str) -> Decimal:
        return Decimal(str(raw_data["balance"]))

    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name=self.name,
            display_name="Fake",
            provider_type=self._provider_type,
            network="test",
            base_url="memory://",
            display_unit="UNIT",
        )


@pytest.fixture
def solana_source():
    return FakeBalanceSource(ProviderType.SOLANA)


@pytest.fixture
def zcash_source():
    return FakeBalanceSource(ProviderType.ZCASH)


@pytest.fixture
def registry(solana_source, zcash_source):
    registry = BalanceSourceRegistry()
    registry.register(solana_source)
    registry.register(zcash_source)
    return registry
