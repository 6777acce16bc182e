"""
Provider Types - Normalization and display metadata.

The wallet-list API sends provider identifiers as canonical strings, as
positional integer codes from the backend's ProviderType enum, or as
strings holding those integers. Everything is normalized here, once, at
ingestion.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

from wallet_reconciliation.models import ProviderType, RawProviderKind, RawProviderType


logger = logging.getLogger(__name__)


# Positional codes of the backend enum (version 1 ordering, 0-indexed)
LEGACY_PROVIDER_CODES: dict[int, ProviderType] = {
    0: ProviderType.NONE,
    1: ProviderType.ALL,
    2: ProviderType.DEFAULT,
    3: ProviderType.SOLANA,
    4: ProviderType.RADIX,
    5: ProviderType.ARBITRUM,
    6: ProviderType.AVALANCHE,
    7: ProviderType.BASE,
    8: ProviderType.MONAD,
    9: ProviderType.ETHEREUM,
    10: ProviderType.POLYGON,
    11: ProviderType.EOSIO,
    12: ProviderType.TELOS,
    13: ProviderType.SEEDS,
    14: ProviderType.LOOM,
    15: ProviderType.TON,
    16: ProviderType.STELLAR,
    17: ProviderType.BLOCKSTACK,
    18: ProviderType.HASHGRAPH,
    19: ProviderType.ELROND,
    20: ProviderType.TRON,
    21: ProviderType.COSMOS,
    22: ProviderType.ROOTSTOCK,
    23: ProviderType.CHAINLINK,
    24: ProviderType.CARDANO,
    25: ProviderType.POLKADOT,
    26: ProviderType.BITCOIN,
    27: ProviderType.NEAR,
    28: ProviderType.SUI,
    29: ProviderType.STARKNET,
    30: ProviderType.APTOS,
    31: ProviderType.AZTEC,
    32: ProviderType.ZCASH,
    33: ProviderType.MIDEN,
    34: ProviderType.OPTIMISM,
    35: ProviderType.BNB_CHAIN,
    36: ProviderType.FANTOM,
    37: ProviderType.MORALIS,
    38: ProviderType.IPFS,
    39: ProviderType.PINATA,
    40: ProviderType.HOLO,
    41: ProviderType.MONGODB,
    42: ProviderType.NEO4J,
    43: ProviderType.SQLITE,
    44: ProviderType.SQL_SERVER,
    45: ProviderType.ORACLE_DB,
    46: ProviderType.GOOGLE_CLOUD,
    47: ProviderType.AZURE_STORAGE,
    48: ProviderType.AZURE_COSMOS_DB,
    49: ProviderType.AWS,
    50: ProviderType.URBIT,
    51: ProviderType.THREEFOLD,
    52: ProviderType.PLAN,
    53: ProviderType.HOLO_WEB,
    54: ProviderType.SOLID,
    55: ProviderType.ACTIVITY_PUB,
    56: ProviderType.SCUTTLEBUTT,
    57: ProviderType.LOCAL_FILE,
}

FALLBACK_PROVIDER_TYPE = ProviderType.DEFAULT

_CANONICAL_VALUES: dict[str, ProviderType] = {p.value: p for p in ProviderType}
# longer digit strings are never legacy codes and are classified as unknown
_DIGITS = re.compile(r"\d{1,9}", re.ASCII)


def classify_provider_type(raw: Any) -> RawProviderType:
    """Tag a raw provider identifier with its representation."""
    if isinstance(raw, ProviderType):
        return RawProviderType(RawProviderKind.CANONICAL, raw.value)

    # bool is an int subclass; it is never a provider code
    if isinstance(raw, bool):
        return RawProviderType(RawProviderKind.UNKNOWN, raw)

    if isinstance(raw, int):
        return RawProviderType(RawProviderKind.LEGACY_CODE, raw)

    if isinstance(raw, str):
        if raw in _CANONICAL_VALUES:
            return RawProviderType(RawProviderKind.CANONICAL, raw)
        if _DIGITS.fullmatch(raw):
            return RawProviderType(RawProviderKind.LEGACY_CODE, int(raw))

    return RawProviderType(RawProviderKind.UNKNOWN, raw)


def normalize_provider_type(raw: Any) -> ProviderType:
    """
    Map any raw provider identifier to a canonical ProviderType.

    Canonical strings pass through, legacy integer codes (or digit-only
    strings) are looked up in LEGACY_PROVIDER_CODES, and anything else,
    out-of-range codes included, falls back to ProviderType.DEFAULT with
    a warning. Never raises.
    """
    tagged = classify_provider_type(raw)

    if tagged.kind is RawProviderKind.CANONICAL:
        return _CANONICAL_VALUES[tagged.value]

    if tagged.kind is RawProviderKind.LEGACY_CODE:
        mapped = LEGACY_PROVIDER_CODES.get(tagged.value)
        if mapped is not None:
            return mapped
        logger.warning(
            f"Unknown numeric providerType: {tagged.value!r}, "
            f"defaulting to {FALLBACK_PROVIDER_TYPE.value}"
        )
        return FALLBACK_PROVIDER_TYPE

    logger.warning(
        f"Could not normalize providerType: {raw!r}, "
        f"defaulting to {FALLBACK_PROVIDER_TYPE.value}"
    )
    return FALLBACK_PROVIDER_TYPE


# ─────────────────────────────────────────────────────────────
# Display metadata
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProviderMetadata:
    """Display identity of a provider."""
    provider_type: ProviderType
    name: str
    symbol: str
    description: str
    category: str  # Layer1, Layer2, Storage, Other

    @property
    def is_fallback_identity(self) -> bool:
        """True for the generic platform identity unknown providers resolve to."""
        return self.name == "OASIS" and self.provider_type is ProviderType.DEFAULT


DEFAULT_METADATA = ProviderMetadata(
    provider_type=ProviderType.DEFAULT,
    name="OASIS",
    symbol="OASIS",
    description="OASIS Platform wallet",
    category="Other",
)

PROVIDER_METADATA: dict[ProviderType, ProviderMetadata] = {
    ProviderType.DEFAULT: DEFAULT_METADATA,
    ProviderType.LOCAL_FILE: ProviderMetadata(
        ProviderType.LOCAL_FILE, "Local Wallet", "OASIS",
        "Local file-based wallet storage", "Storage",
    ),
    ProviderType.MONGODB: ProviderMetadata(
        ProviderType.MONGODB, "MongoDB Wallet", "OASIS",
        "MongoDB-stored wallet", "Storage",
    ),
    ProviderType.ZCASH: ProviderMetadata(
        ProviderType.ZCASH, "Zcash", "ZEC",
        "Privacy-first cryptocurrency with shielded transactions", "Layer1",
    ),
    ProviderType.AZTEC: ProviderMetadata(
        ProviderType.AZTEC, "Aztec", "AZTEC",
        "Privacy-first L2 with private smart contracts", "Layer2",
    ),
    ProviderType.MIDEN: ProviderMetadata(
        ProviderType.MIDEN, "Miden", "MIDEN",
        "Zero-knowledge VM for privacy-preserving applications", "Layer2",
    ),
    ProviderType.ETHEREUM: ProviderMetadata(
        ProviderType.ETHEREUM, "Ethereum", "ETH",
        "Ethereum Mainnet integration", "Layer1",
    ),
    ProviderType.SOLANA: ProviderMetadata(
        ProviderType.SOLANA, "Solana", "SOL",
        "Solana high-throughput L1", "Layer1",
    ),
    ProviderType.STARKNET: ProviderMetadata(
        ProviderType.STARKNET, "Starknet", "STRK",
        "ZK-powered Layer 2 for Starknet-native apps", "Layer2",
    ),
    ProviderType.POLYGON: ProviderMetadata(
        ProviderType.POLYGON, "Polygon", "MATIC",
        "Polygon Layer 2 scaling solution", "Layer2",
    ),
    ProviderType.ARBITRUM: ProviderMetadata(
        ProviderType.ARBITRUM, "Arbitrum", "ARB",
        "Arbitrum Layer 2 scaling solution", "Layer2",
    ),
}


def get_provider_metadata(provider_type: ProviderType) -> ProviderMetadata:
    """Return display metadata, or the generic fallback identity."""
    return PROVIDER_METADATA.get(provider_type, DEFAULT_METADATA)


# Internal storage backends that never appear as user-facing chain wallets
HIDDEN_PROVIDER_TYPES: frozenset[ProviderType] = frozenset({
    ProviderType.DEFAULT,
    ProviderType.LOCAL_FILE,
    ProviderType.MONGODB,
})


def is_hidden_provider(provider_type: ProviderType) -> bool:
    """Check whether wallets of this provider must be kept out of view."""
    if provider_type in HIDDEN_PROVIDER_TYPES:
        return True
    return get_provider_metadata(provider_type).is_fallback_identity
