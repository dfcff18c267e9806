"""
Wallet Aggregator - CLI.

============================================================
USAGE
============================================================
python -m wallet_aggregator 0xde0B295669a9FD93d5F28D9Ec85E40f4cb697BAe
python -m wallet_aggregator --validate 9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM
python -m wallet_aggregator --log-level DEBUG --stats <address>

Exit codes: 0 snapshot printed, 1 fetch error, 2 bad arguments.
============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .aggregator import WalletAggregator
from .classifier import validate_address
from .config import AggregatorConfig
from .exceptions import ConfigurationError


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="wallet-aggregator",
        description="Fetch a unified Ethereum/Solana wallet snapshot",
    )
    parser.add_argument(
        "address",
        type=str,
        help="Ethereum (0x...) or Solana (base58) wallet address",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Only check the address format (no network access)",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print dispatcher/adapter statistics to stderr after the fetch",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indentation (default: 2)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    return parser


async def async_main(args: argparse.Namespace) -> int:
    """Fetch and print one snapshot."""
    config = AggregatorConfig.from_env()

    async with WalletAggregator(config=config) as aggregator:
        result = await aggregator.fetch_wallet_data(args.address)
        print(json.dumps(result, indent=args.indent))

        if args.stats:
            print(json.dumps(aggregator.get_stats(), indent=2), file=sys.stderr)

    return 1 if "error" in result else 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.validate:
        print(json.dumps(validate_address(args.address).to_dict()))
        return 0

    try:
        return asyncio.run(async_main(args))
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
