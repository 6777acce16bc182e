"""
Wallet Reconciliation - Configuration.

============================================================
PURPOSE
============================================================
Defines every tunable of the reconciliation engine.

All configurations are:
- Immutable (frozen dataclasses)
- Loadable from environment variables (.env supported)
- Safe to construct with defaults for tests

============================================================
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from wallet_reconciliation.exceptions import ConfigurationError
from wallet_reconciliation.models import ProviderType


logger = logging.getLogger(__name__)


# ============================================================
# WALLET-LIST API
# ============================================================

@dataclass(frozen=True)
class ApiConfig:
    """Connection settings for the external wallet-list API."""

    base_url: str = "https://localhost:5004"
    auth_token: Optional[str] = None
    timeout_seconds: float = 30.0


# ============================================================
# CHAIN BALANCE SOURCES
# ============================================================

@dataclass(frozen=True)
class BalanceSourceConfig:
    """
    Configuration for the live chain balance sources.

    URL overrides take precedence over the network name.
    """

    solana_network: str = "devnet"
    solana_rpc_url: Optional[str] = None
    zcash_network: str = "testnet"
    zcash_explorer_url: Optional[str] = None

    # Per-request bound; a timeout counts as a failed fetch
    timeout_seconds: float = 10.0
    max_retries: int = 1


# ============================================================
# CANONICAL WALLET SELECTION
# ============================================================

@dataclass(frozen=True)
class SelectionPolicy:
    """
    Tie-break inputs for picking one wallet per provider.

    ============================================================
    ORDER
    ============================================================
    1. Address in `preferred_addresses`
    2. Has a real (non-sentinel) date
    3. Most recent date
    4. Has an address (undated records only)
    5. Address starts with a plausible prefix (undated records only)
    6. walletId descending
    ============================================================
    """

    preferred_addresses: frozenset = frozenset({"tmAZ65X3Z7o69p31bzMvftAUCTS46Kw1VtT"})

    # Zcash transparent and unified address prefixes, test and main net
    plausible_address_prefixes: Tuple[str, ...] = ("tm", "t1", "u1", "utest1")

    # Backend "never set" timestamp; matched on the date part
    sentinel_date: str = "0001-01-01T00:00:00"

    def is_sentinel(self, date: str) -> bool:
        """True for an empty date or the zero-date sentinel."""
        if not date:
            return True
        return date[:10] == self.sentinel_date[:10]


# ============================================================
# LIVE BALANCE OVERLAY
# ============================================================

@dataclass(frozen=True)
class OverlayConfig:
    """Scheduling of the live balance overlay."""

    refresh_interval_seconds: float = 30.0
    eligible_providers: frozenset = frozenset({ProviderType.SOLANA, ProviderType.ZCASH})


# ============================================================
# AGGREGATE
# ============================================================

@dataclass(frozen=True)
class ReconcilerConfig:
    """Complete engine configuration."""

    api: ApiConfig = field(default_factory=ApiConfig)
    sources: BalanceSourceConfig = field(default_factory=BalanceSourceConfig)
    selection: SelectionPolicy = field(default_factory=SelectionPolicy)
    overlay: OverlayConfig = field(default_factory=OverlayConfig)
    session_path: Optional[Path] = None

    # Delay before reloading wallets after a transaction
    post_transaction_delay_seconds: float = 2.0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging (token redacted)."""
        return {
            "api_base_url": self.api.base_url,
            "api_auth": "set" if self.api.auth_token else "unset",
            "api_timeout_seconds": self.api.timeout_seconds,
            "solana_network": self.sources.solana_network,
            "zcash_network": self.sources.zcash_network,
            "balance_timeout_seconds": self.sources.timeout_seconds,
            "refresh_interval_seconds": self.overlay.refresh_interval_seconds,
            "eligible_providers": sorted(p.value for p in self.overlay.eligible_providers),
            "preferred_addresses": len(self.selection.preferred_addresses),
            "session_path": str(self.session_path) if self.session_path else None,
        }


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(
            message=f"{key} must be a number, got {raw!r}",
            config_key=key,
            original_error=e,
        )
    if value <= 0:
        raise ConfigurationError(
            message=f"{key} must be positive, got {raw!r}",
            config_key=key,
        )
    return value


def _env_list(key: str) -> Optional[frozenset]:
    raw = os.getenv(key)
    if raw is None:
        return None
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def load_config() -> ReconcilerConfig:
    """
    Build configuration from environment variables.

    Raises:
        ConfigurationError: If a numeric variable is not a positive number.
    """
    load_dotenv()

    api = ApiConfig(
        base_url=os.getenv("OASIS_API_URL", ApiConfig.base_url).rstrip("/"),
        auth_token=os.getenv("OASIS_API_TOKEN") or None,
        timeout_seconds=_env_float("OASIS_API_TIMEOUT", ApiConfig.timeout_seconds),
    )

    sources = BalanceSourceConfig(
        solana_network=os.getenv("SOLANA_NETWORK", BalanceSourceConfig.solana_network),
        solana_rpc_url=os.getenv("SOLANA_RPC_URL") or None,
        zcash_network=os.getenv("ZCASH_NETWORK", BalanceSourceConfig.zcash_network),
        zcash_explorer_url=os.getenv("ZCASH_EXPLORER_URL") or None,
        timeout_seconds=_env_float("BALANCE_TIMEOUT_SECONDS", BalanceSourceConfig.timeout_seconds),
    )

    preferred = _env_list("PREFERRED_WALLET_ADDRESSES")
    selection = SelectionPolicy() if preferred is None else SelectionPolicy(preferred_addresses=preferred)

    overlay = OverlayConfig(
        refresh_interval_seconds=_env_float(
            "BALANCE_REFRESH_INTERVAL", OverlayConfig.refresh_interval_seconds
        ),
    )

    session_path = os.getenv("WALLET_SESSION_PATH")

    config = ReconcilerConfig(
        api=api,
        sources=sources,
        selection=selection,
        overlay=overlay,
        session_path=Path(session_path) if session_path else None,
    )
    logger.debug(f"Loaded reconciler config: {config.to_dict()}")
    return config
