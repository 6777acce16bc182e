"""
Live Balance Overlay Tests.

============================================================
PURPOSE
============================================================
Cache-preserving overlay refresh and its scheduler.

TEST CATEGORIES:
- Merge rules: success, failure with and without a prior value
- Eligibility: providers, addresses, stale results
- Commit atomicity
- Scheduler: fingerprint-driven start/stop

============================================================
"""

import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from wallet_reconciliation.balance_sources.registry import BalanceSourceRegistry
from wallet_reconciliation.config import OverlayConfig
from wallet_reconciliation.exceptions import BalanceFetchError
from wallet_reconciliation.models import BalanceOverlayEntry, ProviderType
from wallet_reconciliation.overlay import (
    STORED_BALANCE_SOURCE,
    BalanceOverlay,
    OverlayScheduler,
    eligibility_fingerprint,
    eligible_wallets,
    refresh_overlay,
)

from conftest import FakeBalanceSource, make_wallet


def live_entry(key: str, value: str) -> BalanceOverlayEntry:
    return BalanceOverlayEntry(
        key=key,
        value=Decimal(value),
        as_of=datetime(2024, 1, 1),
        source="previous",
    )


# ============================================================
# ELIGIBILITY TESTS
# ============================================================

class TestEligibility:
    """Tests for eligible_wallets and eligibility_fingerprint."""

    def test_only_registered_providers_with_address(self):
        wallets = [
            make_wallet("z", ProviderType.ZCASH, address="tm1"),
            make_wallet("s", ProviderType.SOLANA, address=""),
            make_wallet("e", ProviderType.ETHEREUM, address="0xabc"),
        ]
        eligible = eligible_wallets(wallets, {ProviderType.ZCASH, ProviderType.SOLANA})

        assert [w.wallet_id for w in eligible] == ["z"]

    def test_fingerprint_sorted_and_deduplicated(self):
        providers = {ProviderType.ZCASH, ProviderType.SOLANA}
        a = make_wallet("b", ProviderType.ZCASH, address="tm1")
        b = make_wallet("a", ProviderType.SOLANA, address="So1")

        assert eligibility_fingerprint([a, b, a], providers) == "a@So1,b@tm1"
        assert eligibility_fingerprint([b, a], providers) == eligibility_fingerprint([a, b], providers)

    def test_fingerprint_ignores_balance(self):
        providers = {ProviderType.ZCASH}
        before = make_wallet("z", ProviderType.ZCASH, address="tm1", balance=1)
        after = make_wallet("z", ProviderType.ZCASH, address="tm1", balance=99)

        assert eligibility_fingerprint([before], providers) == eligibility_fingerprint([after], providers)


# ============================================================
# REFRESH TESTS
# ============================================================

class TestRefreshOverlay:
    """Tests for refresh_overlay merge rules."""

    @pytest.mark.asyncio
    async def test_success_writes_live_value(self, registry, zcash_source):
        zcash_source.balances["tm1"] = "1.25"
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1", balance=0)

        result = await refresh_overlay([wallet], {}, registry)

        entry = result["z"]
        assert entry.value == Decimal("1.25")
        assert entry.source == zcash_source.name
        assert entry.from_stored_balance is False

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_live_value(self, registry, zcash_source):
        zcash_source.balances["tm1"] = BalanceFetchError(message="HTTP 500", status_code=500)
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1", balance=7)
        current = {"z": live_entry("z", "3")}

        result = await refresh_overlay([wallet], current, registry)

        assert result["z"] is current["z"]

    @pytest.mark.asyncio
    async def test_failure_without_previous_uses_stored_balance(self, registry, zcash_source):
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1", balance=7)

        result = await refresh_overlay([wallet], {}, registry)

        entry = result["z"]
        assert entry.value == Decimal("7")
        assert entry.source == STORED_BALANCE_SOURCE
        assert entry.from_stored_balance is True

    @pytest.mark.asyncio
    async def test_failure_never_writes_zero_over_live_value(self, registry, zcash_source):
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1")
        current = {"z": live_entry("z", "2.5")}

        result = await refresh_overlay([wallet], current, registry)

        assert result["z"].value == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_independent_failures(self, registry, zcash_source, solana_source):
        zcash_source.balances["tm1"] = "1"
        solana_source.balances["So1"] = asyncio.TimeoutError()
        wallets = [
            make_wallet("z", ProviderType.ZCASH, address="tm1"),
            make_wallet("s", ProviderType.SOLANA, address="So1", balance=4),
        ]

        result = await refresh_overlay(wallets, {}, registry)

        assert result["z"].value == Decimal("1")
        assert result["s"].value == Decimal("4")
        assert result["s"].from_stored_balance is True

    @pytest.mark.asyncio
    async def test_does_not_mutate_current(self, registry, zcash_source):
        zcash_source.balances["tm1"] = "1"
        current = {"other": live_entry("other", "9")}

        result = await refresh_overlay([make_wallet("z", ProviderType.ZCASH, address="tm1")], current, registry)

        assert set(current) == {"other"}
        assert set(result) == {"other", "z"}

    @pytest.mark.asyncio
    async def test_ineligible_wallets_not_fetched(self, registry, zcash_source, solana_source):
        wallets = [
            make_wallet("e", ProviderType.ETHEREUM, address="0x1"),
            make_wallet("z", ProviderType.ZCASH, address=""),
        ]

        result = await refresh_overlay(wallets, {}, registry)

        assert result == {}
        assert zcash_source.calls == []
        assert solana_source.calls == []

    @pytest.mark.asyncio
    async def test_discards_results_for_no_longer_eligible(self, registry, zcash_source):
        zcash_source.balances["tm1"] = "5"
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1")

        result = await refresh_overlay([wallet], {}, registry, is_still_eligible=lambda w: False)

        assert "z" not in result

    @pytest.mark.asyncio
    async def test_keyed_by_address_when_id_missing(self, registry, zcash_source):
        zcash_source.balances["tm1"] = "2"
        wallet = make_wallet("", ProviderType.ZCASH, address="tm1")

        result = await refresh_overlay([wallet], {}, registry)

        assert result["tm1"].value == Decimal("2")


class TestBalanceOverlay:
    """Tests for BalanceOverlay commit behavior."""

    @pytest.mark.asyncio
    async def test_snapshot_is_stable_during_refresh(self):
        registry = BalanceSourceRegistry()
        slow = FakeBalanceSource(ProviderType.ZCASH, {"tm1": "1"}, delay=0.05)
        registry.register(slow)
        overlay = BalanceOverlay(registry)
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1")

        before = overlay.snapshot()
        task = asyncio.create_task(overlay.refresh([wallet]))
        await asyncio.sleep(0)

        assert dict(overlay.snapshot()) == {}
        await task
        assert dict(before) == {}
        assert overlay.snapshot()["z"].value == Decimal("1")

    @pytest.mark.asyncio
    async def test_snapshot_is_read_only(self, registry):
        overlay = BalanceOverlay(registry)
        with pytest.raises(TypeError):
            overlay.snapshot()["x"] = live_entry("x", "1")

    @pytest.mark.asyncio
    async def test_stale_result_dropped_after_eligibility_change(self):
        registry = BalanceSourceRegistry()
        slow = FakeBalanceSource(ProviderType.ZCASH, {"tm1": "1"}, delay=0.05)
        registry.register(slow)
        overlay = BalanceOverlay(registry)
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1")
        overlay.set_eligible([wallet])

        task = asyncio.create_task(overlay.refresh([wallet]))
        await asyncio.sleep(0)
        overlay.set_eligible([])
        await task

        assert "z" not in overlay.snapshot()

    @pytest.mark.asyncio
    async def test_clear(self, registry, zcash_source):
        zcash_source.balances["tm1"] = "1"
        overlay = BalanceOverlay(registry)
        await overlay.refresh([make_wallet("z", ProviderType.ZCASH, address="tm1")])

        overlay.clear()

        assert dict(overlay.snapshot()) == {}

    @pytest.mark.asyncio
    async def test_clear_during_refresh_discards_previous_entries(self):
        registry = BalanceSourceRegistry()
        source = FakeBalanceSource(ProviderType.ZCASH, {"tm1": "1"})
        registry.register(source)
        overlay = BalanceOverlay(registry)
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1")
        await overlay.refresh([wallet])
        assert overlay.snapshot()["z"].value == Decimal("1")

        source.delay = 0.05
        task = asyncio.create_task(overlay.refresh([wallet]))
        await asyncio.sleep(0)
        overlay.clear()
        await task

        assert dict(overlay.snapshot()) == {}


# ============================================================
# SCHEDULER TESTS
# ============================================================

class TestOverlayScheduler:
    """Tests for OverlayScheduler."""

    @pytest.mark.asyncio
    async def test_starts_and_refreshes_immediately(self, registry, zcash_source):
        zcash_source.balances["tm1"] = "3"
        overlay = BalanceOverlay(registry)
        scheduler = OverlayScheduler(overlay, OverlayConfig(refresh_interval_seconds=60))

        started = scheduler.update([make_wallet("z", ProviderType.ZCASH, address="tm1")])
        await asyncio.sleep(0.05)

        assert started is True
        assert scheduler.is_running
        assert overlay.snapshot()["z"].value == Decimal("3")
        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_same_fingerprint_does_not_restart(self, registry, zcash_source):
        zcash_source.balances["tm1"] = "3"
        scheduler = OverlayScheduler(BalanceOverlay(registry), OverlayConfig(refresh_interval_seconds=60))
        wallet = make_wallet("z", ProviderType.ZCASH, address="tm1", balance=1)

        assert scheduler.update([wallet]) is True
        assert scheduler.update([make_wallet("z", ProviderType.ZCASH, address="tm1", balance=2)]) is False
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_changed_fingerprint_restarts(self, registry, zcash_source):
        scheduler = OverlayScheduler(BalanceOverlay(registry), OverlayConfig(refresh_interval_seconds=60))

        assert scheduler.update([make_wallet("z", ProviderType.ZCASH, address="tm1")]) is True
        assert scheduler.update([make_wallet("z", ProviderType.ZCASH, address="tm2")]) is True
        assert scheduler.fingerprint == "z@tm2"
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_no_eligible_wallets_stops(self, registry, zcash_source):
        scheduler = OverlayScheduler(BalanceOverlay(registry), OverlayConfig(refresh_interval_seconds=60))
        scheduler.update([make_wallet("z", ProviderType.ZCASH, address="tm1")])

        assert scheduler.update([make_wallet("e", ProviderType.ETHEREUM, address="0x1")]) is False
        await asyncio.sleep(0)

        assert not scheduler.is_running
        assert scheduler.fingerprint == ""

    @pytest.mark.asyncio
    async def test_refreshes_periodically(self, registry, zcash_source):
        zcash_source.balances["tm1"] = "1"
        scheduler = OverlayScheduler(BalanceOverlay(registry), OverlayConfig(refresh_interval_seconds=0.01))

        scheduler.update([make_wallet("z", ProviderType.ZCASH, address="tm1")])
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert len(zcash_source.calls) >= 2
