"""
Balance Source Registry - Which providers get a live balance overlay.

One source per provider type. Providers without a registered source keep
their stored balance.
"""

import logging
from typing import Any, Optional

from wallet_reconciliation.balance_sources.base import BaseBalanceSource
from wallet_reconciliation.config import BalanceSourceConfig
from wallet_reconciliation.models import ProviderType, SourceHealth, SourceMetadata


logger = logging.getLogger(__name__)


class BalanceSourceRegistry:
    """
    Registry of live balance sources keyed by provider type.

    Usage:
        registry = BalanceSourceRegistry()
        registry.register(SolanaRpcBalanceSource())
        registry.register(ZcashExplorerBalanceSource())

        source = registry.get(ProviderType.SOLANA)
    """

    def __init__(self) -> None:
        self._sources: dict[ProviderType, BaseBalanceSource] = {}

    def register(self, source: BaseBalanceSource) -> None:
        """Register a source for its provider type, replacing any previous one."""
        provider_type = source.provider_type
        if provider_type in self._sources:
            logger.warning(f"Balance source for {provider_type.value} already registered, replacing")
        self._sources[provider_type] = source
        logger.info(f"Registered balance source '{source.name}' for {provider_type.value}")

    def unregister(self, provider_type: ProviderType) -> Optional[BaseBalanceSource]:
        """Unregister the source for a provider."""
        source = self._sources.pop(provider_type, None)
        if source is not None:
            logger.info(f"Unregistered balance source '{source.name}'")
        return source

    def get(self, provider_type: ProviderType) -> Optional[BaseBalanceSource]:
        """Get the source for a provider, if any."""
        return self._sources.get(provider_type)

    def providers(self) -> frozenset:
        """Provider types that have a live source."""
        return frozenset(self._sources)

    def __contains__(self, provider_type: object) -> bool:
        return provider_type in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def get_all_metadata(self) -> dict[str, SourceMetadata]:
        """Get metadata for all sources."""
        return {p.value: s.metadata() for p, s in self._sources.items()}

    def get_all_health(self) -> dict[str, SourceHealth]:
        """Get health for all sources."""
        return {p.value: s.get_health() for p, s in self._sources.items()}

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        return {
            "total_sources": len(self._sources),
            "sources": {
                p.value: {
                    "name": s.name,
                    "status": s.get_health().status.value,
                    "is_usable": s.is_usable(),
                }
                for p, s in self._sources.items()
            },
        }

    async def close(self) -> None:
        """Close all sources."""
        for source in self._sources.values():
            try:
                await source.close()
            except Exception as e:
                logger.error(f"Error closing balance source {source.name}: {e}")
        self._sources.clear()
        logger.info("Balance source registry closed")

    async def __aenter__(self) -> "BalanceSourceRegistry":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def create_default_registry(
    config: Optional[BalanceSourceConfig] = None,
    eligible: Optional[frozenset] = None,
) -> BalanceSourceRegistry:
    """
    Build a registry with the Solana RPC and Zcash explorer sources.

    Args:
        config: Network/timeout settings
        eligible: Restrict to these provider types (all when None)
    """
    from wallet_reconciliation.balance_sources.solana import SolanaRpcBalanceSource
    from wallet_reconciliation.balance_sources.zcash import ZcashExplorerBalanceSource

    config = config or BalanceSourceConfig()
    registry = BalanceSourceRegistry()

    candidates = [
        SolanaRpcBalanceSource(
            network=config.solana_network,
            rpc_url=config.solana_rpc_url,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
        ),
        ZcashExplorerBalanceSource(
            network=config.zcash_network,
            explorer_url=config.zcash_explorer_url,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
        ),
    ]
    for source in candidates:
        if eligible is None or source.provider_type in eligible:
            registry.register(source)

    return registry
