"""
Show the reconciled wallet portfolio for one avatar.

Demonstrates:
- Loading and reconciling an avatar's wallets
- Live balance overlay for Solana and Zcash
- Backend-unavailable handling

Usage:
    python scripts/show_portfolio.py <avatar-id> [--no-live]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from wallet_reconciliation import (
    WalletApiError,
    WalletReconciler,
    get_provider_metadata,
    load_config,
)


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def print_banner(text: str) -> None:
    """Print a banner."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


async def show_portfolio(avatar_id: str, live: bool) -> int:
    config = load_config()

    async with WalletReconciler(config) as reconciler:
        try:
            await reconciler.load_wallets(avatar_id)
        except WalletApiError:
            failure = reconciler.last_failure
            print_banner("WALLETS UNAVAILABLE")
            print(f"  {failure.message if failure else 'Failed to load wallets'}")
            return 1

        if reconciler.is_empty:
            print_banner("NO WALLETS")
            print("  This avatar has no chain wallets yet.")
            return 0

        if live:
            await reconciler.refresh_balances()

        print_banner(f"WALLETS FOR {avatar_id}")
        snapshot = reconciler.overlay_snapshot()
        for wallet in reconciler.canonical_wallets:
            meta = get_provider_metadata(wallet.provider_type)
            entry = snapshot.get(wallet.overlay_key)
            source = entry.source if entry else "stored"
            print(
                f"  {meta.name:<10} {reconciler.effective_balance(wallet):>18} {meta.symbol:<6}"
                f" {wallet.wallet_address or '-'}  ({source})"
            )

        summary = reconciler.portfolio()
        print_banner("TOTAL")
        print(f"  Wallets: {summary.wallet_count} ({summary.overlay_count} live)")
        print(f"  Total:   {summary.total_balance}")

    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Show an avatar's reconciled wallets")
    parser.add_argument("avatar_id", help="Avatar id to load wallets for")
    parser.add_argument("--no-live", action="store_true", help="Skip live balance queries")
    args = parser.parse_args()

    sys.exit(asyncio.run(show_portfolio(args.avatar_id, live=not args.no_live)))


if __name__ == "__main__":
    main()
