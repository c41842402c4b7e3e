"""Command-line interface for the sales tracker."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from unlisted.config import (
    BASE_URL,
    CACHE_BACKEND,
    CATEGORY_LIST,
    DATA_DIR,
    PRODUCTS_CACHE_NAME,
    REFRESH_INTERVAL_SECONDS,
    SALE_CATEGORY,
    SALES_CACHE_NAME,
    category_url,
)
from unlisted.errors import DataNotReady, PersistenceFailure
from unlisted.logging_config import setup_logging
from unlisted.pipeline import DatasetSwap, build_dataset, create_swap
from unlisted.read_api import ReadAPI
from unlisted.scheduler import RefreshScheduler
from unlisted.shutdown import run_until_signalled

__all__ = ["main", "parse_args", "show_stats", "watch"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Track retailer products that are on sale but missing from the sale category",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch every category now and update the cached snapshots
  python -m unlisted.cli --refresh

  # Print the unlisted sales (loads from cache, or fetches if there is none)
  python -m unlisted.cli --show unlisted

  # Show cached snapshot statistics
  python -m unlisted.cli --stats

  # Keep refreshing every 30 minutes until interrupted
  python -m unlisted.cli --watch --interval 1800
        """,
    )

    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Run one refresh cycle against the retailer",
    )
    parser.add_argument(
        "--show",
        choices=["unlisted", "sales"],
        help="Print the unlisted sales or the complete sales list as JSON",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show cached snapshot statistics and exit",
    )
    parser.add_argument(
        "--list-categories",
        action="store_true",
        help="List the configured categories and exit",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Run the periodic refresh scheduler in the foreground",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=REFRESH_INTERVAL_SECONDS,
        help=f"Seconds between refreshes with --watch (default: {REFRESH_INTERVAL_SECONDS:.0f})",
    )
    parser.add_argument(
        "--cache-backend",
        choices=["file", "sqlite"],
        default=CACHE_BACKEND,
        help=f"Snapshot store (default: {CACHE_BACKEND})",
    )
    parser.add_argument(
        "--data-dir",
        default=DATA_DIR,
        help=f"Directory for cached snapshots (default: {DATA_DIR})",
    )
    parser.add_argument(
        "--base-url",
        default=BASE_URL,
        help=f"Retailer catalog base URL (default: {BASE_URL})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def show_stats(swap: DatasetSwap) -> None:
    """Display cached snapshot statistics without publishing anything."""
    snapshots = {
        name: swap.cache.load(name) if swap.cache.exists(name) else None
        for name in (PRODUCTS_CACHE_NAME, SALES_CACHE_NAME)
    }

    print(f"\n{'='*50}")
    print(f"Cached snapshots ({type(swap.cache.store).__name__})")
    print(f"{'='*50}")
    for name, products in snapshots.items():
        print(f"  {name}: {len(products) if products is not None else 'missing'}")

    products, sale_products = snapshots[PRODUCTS_CACHE_NAME], snapshots[SALES_CACHE_NAME]
    if products is not None and sale_products is not None:
        dataset = build_dataset(products, sale_products, cycle=0, source="cache")
        print(f"\nOn sale: {len(dataset.complete_sales)}")
        print(f"Unlisted sales: {len(dataset.unlisted_sales)}")
    print()


def watch(swap: DatasetSwap, interval: float) -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    run_until_signalled(RefreshScheduler(swap, interval=interval))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.list_categories:
        print("Available categories:")
        for category in CATEGORY_LIST:
            print(f"  {category}: {category_url(category, args.base_url)}")
        print(f"  {SALE_CATEGORY} (sale): {category_url(SALE_CATEGORY, args.base_url)}")
        return 0

    swap = create_swap(cache_backend=args.cache_backend, data_dir=args.data_dir, base_url=args.base_url)

    if args.stats:
        try:
            show_stats(swap)
        except PersistenceFailure as e:
            print(f"Error reading snapshots: {e}", file=sys.stderr)
            return 1
        return 0

    if args.watch:
        watch(swap, args.interval)
        return 0

    try:
        if args.refresh:
            dataset = swap.refresh()
            print(f"Refreshed: {len(dataset.products)} products, "
                  f"{len(dataset.complete_sales)} on sale, "
                  f"{len(dataset.unlisted_sales)} unlisted")

        if args.show:
            read_api = ReadAPI(swap)
            if args.show == "unlisted":
                items = read_api.get_unlisted_sales()
            else:
                items = read_api.get_full_sales_view()
            print(json.dumps(items, indent=2, ensure_ascii=False))
    except DataNotReady as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not (args.refresh or args.show):
        print("Nothing to do. Use --refresh, --show, --stats or --watch (see --help).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
