#!/usr/bin/env python3
"""Signed Data Feed Server tools.

Derives data feed IDs and produces the signatures the feed server accepts,
so that Airnode and auctioneer payloads can be prepared and checked off the
ledger.

Keys are read from env vars unless passed explicitly. See --help for usage.
"""

import argparse
import logging
import os
import sys

from .src.DataFeedIds import (
    derive_beacon_id,
    derive_beacon_set_id,
    derive_dapi_name_hash,
    encode_dapi_name,
    encode_data,
    to_bytes32,
)
from .src.errors import FeedServerError
from .src.Ledger import DEFAULT_CHAIN_ID
from .src.SignatureVerifier import sign_dapp_oev_data, sign_data, sign_oev_bid

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_beacon_ids(beacon_ids_str: str) -> list[bytes]:
    """Parse a comma-separated list of hex Beacon IDs.

    Format: 0xid1,0xid2,...

    :param beacon_ids_str: Comma-separated Beacon IDs.
    :returns: List of 32-byte Beacon IDs, in the given order.
    """
    return [to_bytes32(item.strip()) for item in beacon_ids_str.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        description="Signed Data Feed Server: ID derivation and signing tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Beacon ID of an Airnode and template
  python -m feedserver.main beacon-id --airnode 0x... --template-id 0x...

  # Sign a value for a base Beacon update
  AIRNODE_PRIVATE_KEY=0x... python -m feedserver.main sign-data \\
      --template-id 0x... --timestamp 1700000000 --value 1824970000

  # Sign a dApp OEV bid as the auctioneer
  AUCTIONEER_PRIVATE_KEY=0x... python -m feedserver.main sign-bid \\
      --dapp-id 1 --updater 0x... --bid-amount 1000000000000000000 --cut-off 1700000010

Environment variables (CLI args take precedence):
  CHAIN_ID, AIRNODE_PRIVATE_KEY, AUCTIONEER_PRIVATE_KEY
""",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    beacon_id = subparsers.add_parser("beacon-id", help="Derive a Beacon ID")
    beacon_id.add_argument("--airnode", required=True, help="Airnode address")
    beacon_id.add_argument("--template-id", dest="template_id", required=True, help="Template ID")

    beacon_set_id = subparsers.add_parser("beacon-set-id", help="Derive a Beacon set ID")
    beacon_set_id.add_argument(
        "--beacon-ids",
        dest="beacon_ids",
        required=True,
        help="Comma-separated Beacon IDs, order significant",
    )

    dapi_name_hash = subparsers.add_parser("dapi-name-hash", help="Hash a dAPI name")
    dapi_name_hash.add_argument("--name", required=True, help="dAPI name (e.g., ETH/USD)")

    sign_data_parser = subparsers.add_parser("sign-data", help="Sign a value as an Airnode")
    sign_data_parser.add_argument("--template-id", dest="template_id", required=True, help="Template ID")
    sign_data_parser.add_argument("--timestamp", type=int, required=True, help="Timestamp of the value")
    sign_data_parser.add_argument("--value", type=int, required=True, help="Value to sign")
    sign_data_parser.add_argument(
        "--dapp",
        action="store_true",
        help="Sign for dApp OEV overlay updates instead of base updates",
    )
    sign_data_parser.add_argument(
        "--private-key",
        dest="private_key",
        help="Airnode private key",
        default=os.environ.get("AIRNODE_PRIVATE_KEY"),
    )

    sign_bid = subparsers.add_parser("sign-bid", help="Sign a dApp OEV bid as the auctioneer")
    sign_bid.add_argument("--dapp-id", dest="dapp_id", type=int, required=True, help="dApp ID")
    sign_bid.add_argument("--updater", required=True, help="Address of the bid winner")
    sign_bid.add_argument("--bid-amount", dest="bid_amount", type=int, required=True, help="Bid amount")
    sign_bid.add_argument("--cut-off", dest="cut_off", type=int, required=True, help="Cut-off timestamp")
    sign_bid.add_argument(
        "--chain-id",
        dest="chain_id",
        type=int,
        help=f"Chain ID (default: {DEFAULT_CHAIN_ID})",
        default=int(os.environ.get("CHAIN_ID") or DEFAULT_CHAIN_ID),
    )
    sign_bid.add_argument(
        "--private-key",
        dest="private_key",
        help="Auctioneer private key",
        default=os.environ.get("AUCTIONEER_PRIVATE_KEY"),
    )
    return parser


def run(args: argparse.Namespace) -> str:
    """Run a parsed subcommand.

    :param args: Parsed arguments.
    :returns: The hex output of the command.
    """
    if args.command == "beacon-id":
        return "0x" + derive_beacon_id(args.airnode, to_bytes32(args.template_id)).hex()

    if args.command == "beacon-set-id":
        beacon_ids = parse_beacon_ids(args.beacon_ids)
        if len(beacon_ids) < 2:
            raise ValueError("At least two Beacon IDs must be specified")
        return "0x" + derive_beacon_set_id(beacon_ids).hex()

    if args.command == "dapi-name-hash":
        return "0x" + derive_dapi_name_hash(encode_dapi_name(args.name)).hex()

    if not args.private_key:
        raise ValueError("No private key given")

    if args.command == "sign-data":
        sign = sign_dapp_oev_data if args.dapp else sign_data
        signature = sign(
            args.private_key,
            to_bytes32(args.template_id),
            args.timestamp,
            encode_data(args.value),
        )
        return "0x" + signature.hex()

    if args.command == "sign-bid":
        signature = sign_oev_bid(
            args.private_key,
            args.chain_id,
            args.dapp_id,
            args.updater,
            args.bid_amount,
            args.cut_off,
        )
        return "0x" + signature.hex()

    raise ValueError(f"Unknown command {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the feed server CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    logger.debug(f"Running {args.command}")
    try:
        print(run(args))
    except (ValueError, FeedServerError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
