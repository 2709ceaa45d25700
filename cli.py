#!/usr/bin/env python3
"""Simple CLI for inspecting PulseChain wallets locally"""

import argparse
import asyncio
import sys

from pulsefolio.api.deps import get_aggregator, get_dexscreener, get_rpc
from pulsefolio.errors import PortfolioError
from pulsefolio.logging_config import LOG_FORMATS, setup_logging
from pulsefolio.services.bookmarks import example_csv
from pulsefolio.services.staking import estimate_hex_stakes
from pulsefolio.services.swap_detector import SwapDetector
from pulsefolio.types import LoadingProgress, SwapEvent, WalletSnapshot


def print_snapshot(snapshot: WalletSnapshot, stale: bool = False):
    """Pretty print a wallet snapshot"""
    marker = "⏸" if stale else "🔄"

    print(f"\n{marker} Wallet Snapshot")
    print("=" * 50)
    print(f"Address: {snapshot.address}")
    print(f"Total Value: ${snapshot.total_value:,.2f} USD")
    print(f"Token Count: {snapshot.token_count}")
    if snapshot.pls_balance is not None:
        print(f"PLS Balance: {snapshot.pls_balance:,.4f}")

    if snapshot.tokens:
        print("\nTokens:")
        print("-" * 50)
        for i, token in enumerate(snapshot.tokens, 1):
            value_str = f"${token.value:,.2f}" if token.value else "No price"
            price_str = f"@ ${token.price:,.6f}" if token.price else ""
            lp_str = " [LP]" if token.is_lp else ""
            print(f"{i:2d}. {token.balance_formatted:>16,.4f} {token.symbol:<10} {value_str:>14} {price_str}{lp_str}")
            if token.name and token.name != token.symbol:
                print(f"    {token.name}")


def print_progress(progress: LoadingProgress):
    print(f"  [{progress.current_batch}/{progress.total_batches}] {progress.status.value}: {progress.message}")


async def cli_portfolio(address: str) -> int:
    """CLI command to aggregate a wallet"""
    print(f"🔍 Fetching portfolio for {address}...")
    try:
        result = await get_aggregator().aggregate(address, on_progress=print_progress)
    except PortfolioError as e:
        print(f"❌ Error: {e.message}")
        return 1

    print_snapshot(result.snapshot, result.stale)
    if result.missing_prices:
        print(f"\n⚠️  {result.missing_prices} tokens without a price")
    return 0


async def cli_stakes(address: str) -> int:
    try:
        summary = await estimate_hex_stakes(address, get_rpc(), get_dexscreener())
    except PortfolioError as e:
        print(f"❌ Error: {e.message}")
        return 1

    print(f"\nHEX stakes for {address} (estimated)")
    print("=" * 50)
    print(f"Stakes:    {summary.stake_count}")
    print(f"Staked:    {summary.total_staked_hex:,.2f} HEX (${summary.total_stake_value_usd:,.2f})")
    print(f"Interest:  {summary.total_interest_hex:,.2f} HEX (${summary.total_interest_value_usd:,.2f})")
    print(f"Combined:  {summary.total_combined_hex:,.2f} HEX (${summary.total_combined_value_usd:,.2f})")
    return 0


async def cli_watch_swaps(address: str, duration: float) -> int:
    def on_swap(event: SwapEvent):
        print(f"🔁 Swap {event.transaction_hash} in={event.token_in} out={event.token_out}")

    try:
        detector = SwapDetector(address, on_swap=on_swap, rpc=get_rpc())
    except PortfolioError as e:
        print(f"❌ Error: {e.message}")
        return 1

    print(f"👀 Watching {detector.wallet} for swaps ({duration:.0f}s)...")
    detector.start()
    try:
        await asyncio.sleep(duration)
    finally:
        detector.stop()
    print(f"Seen {len(detector.seen_transactions)} transactions")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pulsefolio CLI")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--log-format", default="console", choices=LOG_FORMATS, help="Log renderer (default: console)")
    subparsers = parser.add_subparsers(dest="command")

    portfolio_parser = subparsers.add_parser("portfolio", help="Aggregate a wallet snapshot")
    portfolio_parser.add_argument("address", help="Wallet address")

    stakes_parser = subparsers.add_parser("stakes", help="Estimate HEX stakes")
    stakes_parser.add_argument("address", help="Wallet address")

    swaps_parser = subparsers.add_parser("watch-swaps", help="Print swaps as they are detected")
    swaps_parser.add_argument("address", help="Wallet address")
    swaps_parser.add_argument("--duration", type=float, default=60.0, help="Seconds to watch (default: 60)")

    subparsers.add_parser("bookmarks-example", help="Print an example bookmarks CSV")

    return parser


async def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.log_level, args.log_format)

    if args.command == "portfolio":
        return await cli_portfolio(args.address)
    if args.command == "stakes":
        return await cli_stakes(args.address)
    if args.command == "watch-swaps":
        return await cli_watch_swaps(args.address, args.duration)
    if args.command == "bookmarks-example":
        print(example_csv())
        return 0

    print(f"❌ Unknown command: {args.command}")
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
