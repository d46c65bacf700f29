#!/usr/bin/env python3
"""feedfusion price oracle.

Queries several independent price sources per asset, drops stale,
low-confidence and outlier readings and publishes the median as the
asset's aggregated price.

Configure with CLI args or env vars; see ``--help``.
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.errors import InvalidConfig
from .src.PriceOracle import PriceOracle
from .src.PriceValidator import MAX_PRICE_DEVIATION
from .src.SourceKind import SourceKind

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

FEED_ENV_SUFFIX = "_FEED_"


def parse_feeds(feeds_str: str | None) -> dict[str, dict[SourceKind, str]]:
    """Parse a feed specification string into per-asset source handles.

    Format: asset:source=handle,source=handle;asset:source=handle
    Example: btc:reference=0x5f4e...,attested=0xe62d...;eth:reference=0x5f4e...

    :param feeds_str: Feed specification string.
    :returns: Dict mapping asset names to {source: handle}.
    :raises ValueError: If the string is malformed or names an unknown source.
    """
    if not feeds_str:
        return {}

    feeds: dict[str, dict[SourceKind, str]] = {}
    for asset_spec in feeds_str.split(";"):
        asset_spec = asset_spec.strip()
        if not asset_spec:
            continue
        if ":" not in asset_spec:
            raise ValueError(f"Invalid feed spec '{asset_spec}'. Expected 'asset:source=handle'")
        asset, handles_str = asset_spec.split(":", 1)
        handles = feeds.setdefault(asset.strip().lower(), {})
        for item in handles_str.split(","):
            item = item.strip()
            if "=" not in item:
                raise ValueError(f"Invalid feed handle '{item}'. Expected 'source=handle'")
            source, handle = item.split("=", 1)
            handles[SourceKind.from_string(source)] = handle.strip()
    return feeds


def parse_env_feeds() -> dict[str, dict[SourceKind, str]]:
    """Parse per-asset source handles from environment variables.

    Looks for: REFERENCE_FEED_BTC, ATTESTED_FEED_BTC, REQUEST_FEED_ETH, etc.

    :returns: Dict mapping asset names to {source: handle}.
    """
    feeds: dict[str, dict[SourceKind, str]] = {}
    prefixes = {f"{kind.name}{FEED_ENV_SUFFIX}": kind for kind in SourceKind}

    for key, value in os.environ.items():
        for prefix, kind in prefixes.items():
            if key.startswith(prefix) and value:
                asset = key[len(prefix):].lower()
                feeds.setdefault(asset, {})[kind] = value
                break

    return feeds


def main() -> None:
    """Main entry point for the feedfusion CLI."""
    sources = ", ".join(kind.label for kind in SourceKind)

    parser = argparse.ArgumentParser(
        description="feedfusion: Multi-source aggregated price oracle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Source kinds:
  {sources}

Examples:
  # BTC from a reference feed and an attested feed
  python -m feedfusion.main --assets btc \\
      --feeds "btc:reference=0xF4030086522a5bEEa4988F8cA5B36dbC97BeE88c,attested=0xe62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43" \\
      --rpc-url https://eth.llamarpc.com

Environment variables (CLI args take precedence):
  ASSETS, FEEDS, HEARTBEAT, DEVIATION_THRESHOLD, UPDATE_PERIOD, FETCH_TIMEOUT,
  RPC_URL, ATTESTED_ENDPOINT, REFERENCE_FEED_<ASSET>, ATTESTED_FEED_<ASSET>, etc.
""",
    )

    parser.add_argument(
        "--assets",
        type=str,
        help="Comma-separated assets to aggregate (e.g., btc,eth)",
        default=os.environ.get("ASSETS") or "btc",
    )

    parser.add_argument(
        "--feeds",
        type=str,
        help="Per-asset source handles (asset:source=handle,...;asset:...)",
        default=os.environ.get("FEEDS"),
    )

    parser.add_argument(
        "--heartbeat",
        type=int,
        help="Max age in seconds of observations and aggregates (default: 3600)",
        default=int(os.environ.get("HEARTBEAT") or "3600"),
    )

    parser.add_argument(
        "--deviation-threshold",
        dest="deviation_threshold",
        type=int,
        help=f"Max deviation from previous aggregate in bp (default: {MAX_PRICE_DEVIATION})",
        default=int(os.environ.get("DEVIATION_THRESHOLD") or str(MAX_PRICE_DEVIATION)),
    )

    parser.add_argument(
        "--update-period",
        dest="update_period",
        type=int,
        help="Seconds between update rounds (minimum: 1, default: 60)",
        default=int(os.environ.get("UPDATE_PERIOD") or "60"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual source fetches in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="RPC endpoint for reference feeds",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--attested-endpoint",
        dest="attested_endpoint",
        type=str,
        help="Base URL of the attested price service",
        default=os.environ.get("ATTESTED_ENDPOINT"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.update_period < 1:
        parser.error("--update-period must be at least 1 second")

    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")

    assets = [a.strip().lower() for a in args.assets.split(",") if a.strip()]
    if not assets:
        parser.error("At least one asset must be specified")

    # Parse feed handles (environment + CLI)
    feeds = parse_env_feeds()
    try:
        for asset, handles in parse_feeds(args.feeds).items():
            feeds.setdefault(asset, {}).update(handles)
    except ValueError as e:
        parser.error(str(e))

    missing = [a for a in assets if not feeds.get(a)]
    if missing:
        parser.error(f"No source handles configured for: {', '.join(missing)}")

    # Log configuration
    logger.info("=" * 60)
    logger.info("feedfusion - Multi-Source Price Aggregation")
    logger.info("=" * 60)
    logger.info(f"Assets:            {', '.join(assets)}")
    for asset in assets:
        labels = ", ".join(kind.label for kind in sorted(feeds[asset]))
        logger.info(f"  {asset + ':':<17}{labels}")
    logger.info(f"Heartbeat:         {args.heartbeat}s")
    logger.info(f"Deviation:         {args.deviation_threshold}bp")
    logger.info(f"Update Period:     {args.update_period}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info("=" * 60)

    try:
        oracle = PriceOracle(
            rpc_url=args.rpc_url,
            attested_endpoint=args.attested_endpoint,
            fetch_timeout=args.fetch_timeout,
            update_period=args.update_period,
        )
        for asset in assets:
            oracle.configure_asset(
                asset,
                feeds[asset],
                heartbeat=args.heartbeat,
                deviation_threshold=args.deviation_threshold,
            )
    except InvalidConfig as e:
        parser.error(str(e))

    try:
        asyncio.run(oracle.run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
