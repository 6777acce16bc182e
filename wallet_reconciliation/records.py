"""
Wallet Records - Payload ingestion and visibility filtering.

The wallet-list API returns a mapping of provider key to a list of wallet
dicts. Keys and embedded providerType fields may disagree, and either may
be numeric. Records that cannot be parsed are dropped individually.
"""

import logging
from collections import defaultdict
from typing import Any, Iterable, Mapping, Optional

from wallet_reconciliation.exceptions import MalformedRecordError
from wallet_reconciliation.models import ProviderType, WalletRecord, coerce_decimal
from wallet_reconciliation.providers import is_hidden_provider, normalize_provider_type


logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def parse_wallet_record(
    data: Any,
    provider_key: Optional[Any] = None,
) -> WalletRecord:
    """
    Build a WalletRecord from one raw API wallet dict.

    The record's own providerType wins over the payload key it was listed
    under; the key is kept as `source_key` for the visibility filter.

    Raises:
        MalformedRecordError: If the value is not a wallet object or has
            neither a wallet id nor an address.
    """
    if not isinstance(data, Mapping):
        raise MalformedRecordError(
            message=f"Wallet record is {type(data).__name__}, expected an object",
            raw_data=data,
        )

    wallet_id = _text(data.get("walletId") or data.get("id"))
    wallet_address = _text(data.get("walletAddress"))
    if not wallet_id and not wallet_address:
        raise MalformedRecordError(
            message="Wallet record has neither walletId nor walletAddress",
            raw_data=data,
            field_name="walletId",
        )

    raw_provider = data.get("providerType")
    if raw_provider is None or raw_provider == "":
        raw_provider = provider_key

    return WalletRecord(
        wallet_id=wallet_id,
        provider_type=normalize_provider_type(raw_provider),
        wallet_address=wallet_address,
        balance=coerce_decimal(data.get("balance")),
        created_date=_text(data.get("createdDate")),
        modified_date=_text(data.get("modifiedDate")),
        is_default_wallet=_flag(data.get("isDefaultWallet", False)),
        avatar_id=data.get("avatarId"),
        public_key=data.get("publicKey"),
        raw_provider_type=raw_provider,
        source_key=None if provider_key is None else str(provider_key),
    )


def parse_wallet_payload(payload: Optional[Mapping[Any, Any]]) -> list[WalletRecord]:
    """
    Flatten a provider-keyed wallet payload into WalletRecords.

    Malformed records and non-list entries are skipped with a log line;
    the rest of the payload is still returned.
    """
    records: list[WalletRecord] = []
    if not payload:
        return records

    for provider_key, wallet_list in payload.items():
        if not isinstance(wallet_list, list):
            logger.debug(f"Skipping non-list wallet entry under key {provider_key!r}")
            continue
        for raw in wallet_list:
            try:
                records.append(parse_wallet_record(raw, provider_key))
            except MalformedRecordError as e:
                logger.warning(f"Dropping malformed wallet record under key {provider_key!r}: {e}")

    logger.debug(f"Parsed {len(records)} wallet records from {len(payload)} provider keys")
    return records


def _is_visible(record: Any) -> bool:
    if not isinstance(record, WalletRecord) or not record.overlay_key:
        return False

    # Re-derive from the raw fields; the stored provider_type is not trusted
    own_type = normalize_provider_type(
        record.raw_provider_type if record.raw_provider_type not in (None, "") else record.provider_type
    )
    if is_hidden_provider(own_type) or is_hidden_provider(record.provider_type):
        return False

    if record.source_key is not None and is_hidden_provider(normalize_provider_type(record.source_key)):
        return False

    return True


def filter_visible(records: Iterable[Any]) -> list[WalletRecord]:
    """
    Drop records of internal/storage-only providers and malformed entries.

    A record is hidden when its own provider type, its normalized type or
    the payload key it was listed under resolves to a hidden provider.
    Pure and idempotent; never raises.
    """
    visible: list[WalletRecord] = []
    for record in records:
        try:
            keep = _is_visible(record)
        except Exception as e:
            logger.warning(f"Excluding wallet record that failed visibility check: {e}")
            keep = False
        if keep:
            visible.append(record)
        else:
            logger.debug(
                f"Filtering out wallet: "
                f"{getattr(record, 'provider_type', None)} {getattr(record, 'wallet_id', None)}"
            )
    return visible


def group_by_provider(records: Iterable[WalletRecord]) -> dict[ProviderType, list[WalletRecord]]:
    """Group records by their normalized provider type, preserving order."""
    grouped: dict[ProviderType, list[WalletRecord]] = defaultdict(list)
    for record in records:
        grouped[record.provider_type].append(record)
    return dict(grouped)
