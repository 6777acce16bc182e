"""
Wallet Record Tests.

============================================================
PURPOSE
============================================================
Payload ingestion, visibility filtering and grouping.

============================================================
"""

from decimal import Decimal

import pytest

from wallet_reconciliation.exceptions import MalformedRecordError
from wallet_reconciliation.models import ProviderType, WalletRecord
from wallet_reconciliation.records import (
    filter_visible,
    group_by_provider,
    parse_wallet_payload,
    parse_wallet_record,
)

from conftest import make_wallet


# ============================================================
# PARSING TESTS
# ============================================================

class TestParseWalletRecord:
    """Tests for parse_wallet_record."""

    def test_full_record(self):
        record = parse_wallet_record({
            "walletId": "abc",
            "walletAddress": "tmXYZ",
            "providerType": "ZcashOASIS",
            "balance": 1.5,
            "createdDate": "2024-01-01T00:00:00",
            "modifiedDate": "2024-02-01T00:00:00",
            "isDefaultWallet": True,
        })

        assert record.wallet_id == "abc"
        assert record.provider_type is ProviderType.ZCASH
        assert record.wallet_address == "tmXYZ"
        assert record.balance == Decimal("1.5")
        assert record.effective_date == "2024-02-01T00:00:00"
        assert record.is_default_wallet is True

    def test_numeric_provider_type(self):
        record = parse_wallet_record({"walletId": "a", "providerType": 32})
        assert record.provider_type is ProviderType.ZCASH
        assert record.raw_provider_type == 32

    def test_provider_taken_from_key_when_missing(self):
        record = parse_wallet_record({"walletId": "a"}, provider_key="SolanaOASIS")
        assert record.provider_type is ProviderType.SOLANA
        assert record.source_key == "SolanaOASIS"

    def test_record_type_wins_over_key(self):
        record = parse_wallet_record({"walletId": "a", "providerType": "ZcashOASIS"}, provider_key="3")
        assert record.provider_type is ProviderType.ZCASH
        assert record.source_key == "3"

    def test_id_alias(self):
        record = parse_wallet_record({"id": "xyz", "providerType": "ZcashOASIS"})
        assert record.wallet_id == "xyz"

    def test_non_numeric_balance_is_absent(self):
        record = parse_wallet_record({"walletId": "a", "providerType": "ZcashOASIS", "balance": "n/a"})
        assert record.balance is None
        assert record.stored_balance == Decimal("0")

    @pytest.mark.parametrize("raw, expected", [
        ("false", False),
        ("False", False),
        ("", False),
        ("true", True),
        (" TRUE ", True),
        (0, False),
        (1, True),
        (None, False),
    ])
    def test_default_flag_coercion(self, raw, expected):
        record = parse_wallet_record({"walletId": "a", "isDefaultWallet": raw})
        assert record.is_default_wallet is expected

    def test_non_mapping_raises(self):
        with pytest.raises(MalformedRecordError):
            parse_wallet_record(["not", "a", "dict"])

    def test_missing_id_and_address_raises(self):
        with pytest.raises(MalformedRecordError):
            parse_wallet_record({"providerType": "ZcashOASIS", "balance": 1})


class TestParseWalletPayload:
    """Tests for parse_wallet_payload."""

    def test_flattens_provider_lists(self):
        payload = {
            "ZcashOASIS": [{"walletId": "z1"}, {"walletId": "z2"}],
            "SolanaOASIS": [{"walletId": "s1"}],
        }
        records = parse_wallet_payload(payload)

        assert [r.wallet_id for r in records] == ["z1", "z2", "s1"]

    def test_skips_malformed_records(self):
        payload = {"ZcashOASIS": [{"walletId": "z1"}, "junk", {}, None]}
        records = parse_wallet_payload(payload)

        assert [r.wallet_id for r in records] == ["z1"]

    def test_skips_non_list_entries(self):
        payload = {"ZcashOASIS": {"walletId": "z1"}, "SolanaOASIS": [{"walletId": "s1"}]}
        assert [r.wallet_id for r in parse_wallet_payload(payload)] == ["s1"]

    def test_empty_payload(self):
        assert parse_wallet_payload({}) == []
        assert parse_wallet_payload(None) == []


# ============================================================
# VISIBILITY TESTS
# ============================================================

class TestFilterVisible:
    """Tests for filter_visible."""

    def test_removes_internal_providers(self):
        records = [
            make_wallet("z", ProviderType.ZCASH),
            make_wallet("d", ProviderType.DEFAULT),
            make_wallet("l", ProviderType.LOCAL_FILE),
            make_wallet("m", ProviderType.MONGODB),
        ]
        assert [r.wallet_id for r in filter_visible(records)] == ["z"]

    def test_hidden_raw_type_removed_even_if_normalized_differs(self):
        record = make_wallet("x", ProviderType.ZCASH, raw_provider_type="LocalFileOASIS")
        assert filter_visible([record]) == []

    def test_hidden_source_key_removed(self):
        record = make_wallet("x", ProviderType.ZCASH, source_key="57")
        assert filter_visible([record]) == []

    def test_numeric_hidden_provider_removed(self):
        records = parse_wallet_payload({"41": [{"walletId": "m1", "providerType": 41}]})
        assert filter_visible(records) == []

    def test_drops_entries_without_key_or_wrong_type(self):
        keyless = WalletRecord(wallet_id="", provider_type=ProviderType.ZCASH)
        assert filter_visible([keyless, None, {"walletId": "a"}]) == []

    def test_idempotent(self):
        records = [
            make_wallet("z", ProviderType.ZCASH),
            make_wallet("d", ProviderType.DEFAULT),
            make_wallet("s", ProviderType.SOLANA),
        ]
        once = filter_visible(records)
        assert filter_visible(once) == once


class TestGroupByProvider:
    """Tests for group_by_provider."""

    def test_groups_preserving_order(self):
        records = [
            make_wallet("z1", ProviderType.ZCASH),
            make_wallet("s1", ProviderType.SOLANA),
            make_wallet("z2", ProviderType.ZCASH),
        ]
        grouped = group_by_provider(records)

        assert [r.wallet_id for r in grouped[ProviderType.ZCASH]] == ["z1", "z2"]
        assert [r.wallet_id for r in grouped[ProviderType.SOLANA]] == ["s1"]
