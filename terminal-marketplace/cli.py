#!/usr/bin/env python3
"""Terminal Marketplace CLI."""

import argparse
import json
import logging
import sys
from datetime import datetime

from account_schema import DEFAULT_FEE_RATE, PROGRAM_ID, SCHEMA_VERSION, check_fee_rate, check_idl, check_price
from client_config import DEFAULT_KEYPAIR_PATH, DEFAULT_RPC_URL, ClientConfig, build_config
from client_errors import ConfigurationError, MarketplaceError, exit_code_for
from logging_config import DEFAULT_LOG_LEVEL_NAME, setup_logging
from marketplace_client import find_listings
from pda import to_pubkey
from toolkit import create_toolkit
from units import format_sol, sol_to_lamports

logger = logging.getLogger(__name__)

COMMANDS = (
    ("status", "Check cluster and wallet status (alias: cluster)"),
    ("init", "Initialize the terminal marketplace"),
    ("list", "Create a new NFT listing"),
    ("buy", "Buy an NFT"),
    ("cancel", "Cancel an NFT listing"),
    ("update", "Update listing price"),
    ("show", "Show NFT listing details"),
    ("stats", "Show marketplace statistics"),
    ("account", "Get account information"),
    ("listings", "List marketplace listings on chain"),
    ("verify-idl", "Check a published IDL against the built-in schema"),
    ("info", "Show program information"),
)


# ----- argument types (usage errors, raised before any key or network access) -----

def price_arg(value: str) -> int:
    """Price in SOL -> lamports."""
    try:
        return check_price(sol_to_lamports(value))
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(e.message)


def pubkey_arg(value: str) -> str:
    try:
        return str(to_pubkey(value))
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(e.message)


def fee_rate_arg(value: str) -> int:
    try:
        rate = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid fee rate: {value!r}")
    try:
        return check_fee_rate(rate)
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(e.message)


def add_global_options(parser: argparse.ArgumentParser, default_keypair: str) -> None:
    parser.add_argument("-r", "--rpc", default=DEFAULT_RPC_URL,
                        help="RPC URL or cluster name (localnet, devnet, testnet, mainnet-beta)")
    parser.add_argument("-k", "--keypair", default=default_keypair, help="Keypair file path")
    parser.add_argument("--commitment", default="confirmed",
                        choices=["processed", "confirmed", "finalized"], help="Commitment level")
    parser.add_argument("--log-level", default=DEFAULT_LOG_LEVEL_NAME, help="Log level for stderr diagnostics")


def report_error(e: MarketplaceError) -> int:
    print(f"❌ {e.kind.label}: {e.message}", file=sys.stderr)
    return e.kind.exit_code


def run_command(cmd_map, args) -> int:
    """Build the config, run one command, map failures to exit codes."""
    try:
        config = build_config(rpc=args.rpc, keypair=args.keypair, commitment=args.commitment)
        return cmd_map[args.command](args, config) or 0
    except MarketplaceError as e:
        logger.debug("command %s failed", args.command, exc_info=True)
        return report_error(e)
    except Exception as e:
        logger.debug("unexpected failure in %s", args.command, exc_info=True)
        print(f"❌ Error: {e}", file=sys.stderr)
        return exit_code_for(e)


def _format_time(ts: int) -> str:
    try:
        return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return f"{ts} (unix time out of range)"


# ----- commands -----

def cmd_status(args, config: ClientConfig) -> int:
    """Check cluster and wallet status."""
    tk = create_toolkit(config)
    status = tk.marketplace.cluster_status()
    print("🌐 Connected to Solana cluster")
    print(f"📊 Solana Version: {status['version']}")
    print(f"💰 Wallet Balance: {format_sol(status['balance'])} SOL")
    print(f"🔑 Wallet Address: {status['wallet']}")
    print(f"🔗 Program ID: {status['program_id']}")
    print(f"📦 Program Deployed: {'Yes' if status['program_deployed'] else 'No'}")
    return 0


def cmd_init(args, config: ClientConfig) -> int:
    """Initialize the marketplace."""
    tk = create_toolkit(config)
    print("🚀 Initializing Terminal Marketplace...")
    result = tk.marketplace.initialize(fee_rate=args.fee_rate, treasury=args.treasury)
    print("✅ Marketplace initialized!")
    print(f"📍 Marketplace: {result['marketplace']}")
    print(f"📊 Fee Rate: {result['fee_rate']} basis points ({result['fee_rate'] / 100}%)")
    print(f"💰 Treasury: {result['treasury']}")
    print(f"🔗 Transaction: {result['signature']}")
    return 0


def cmd_list(args, config: ClientConfig) -> int:
    """Create a listing."""
    tk = create_toolkit(config)
    print(f"📝 Creating listing for NFT: {args.mint}")
    result = tk.marketplace.create_listing(args.mint, args.price)
    print("✅ NFT listed successfully!")
    print(f"📍 Listing: {result['listing']}")
    print(f"💰 Price: {format_sol(result['price'])} SOL ({result['price']} lamports)")
    print(f"🔗 Transaction: {result['signature']}")
    return 0


def cmd_buy(args, config: ClientConfig) -> int:
    """Buy a listed NFT."""
    tk = create_toolkit(config)
    print(f"🛒 Buying NFT: {args.mint}")
    result = tk.marketplace.buy_nft(args.mint, seller=args.seller)
    print("✅ NFT purchased successfully!")
    print(f"👤 Seller: {result['seller']}")
    print(f"💰 Price: {format_sol(result['price'])} SOL")
    print(f"🔗 Transaction: {result['signature']}")
    return 0


def cmd_cancel(args, config: ClientConfig) -> int:
    """Cancel own listing."""
    tk = create_toolkit(config)
    print(f"❌ Cancelling listing for NFT: {args.mint}")
    result = tk.marketplace.cancel_listing(args.mint)
    print("✅ Listing cancelled successfully!")
    print(f"🔗 Transaction: {result['signature']}")
    return 0


def cmd_update(args, config: ClientConfig) -> int:
    """Update listing price."""
    tk = create_toolkit(config)
    print(f"📝 Updating price for NFT: {args.mint}")
    result = tk.marketplace.update_price(args.mint, args.price)
    print("✅ Price updated successfully!")
    print(f"💰 New Price: {format_sol(result['price'])} SOL")
    print(f"🔗 Transaction: {result['signature']}")
    return 0


def cmd_show(args, config: ClientConfig) -> int:
    """Show listing details."""
    tk = create_toolkit(config)
    print(f"🔍 Fetching listing for NFT: {args.mint}")
    result = tk.marketplace.show_listing(args.mint, seller=args.seller)
    if not result["found"]:
        print(f"ℹ️  No listing found at {result['address']} (seller {result['seller']})")
        return 0

    listing = result["listing"]
    print("📊 Listing Details:")
    print(f"🏷️  NFT: {listing.mint}")
    print(f"👤 Seller: {listing.seller}")
    print(f"💰 Price: {format_sol(listing.price)} SOL")
    print(f"📅 Created: {_format_time(listing.created_at)}")
    print(f"🟢 Active: {'Yes' if listing.is_active else 'No'}")
    if not result["mint_matches"]:
        print(f"⚠️  This seller's listing is for {listing.mint}, not {result['mint']}")
    return 0


def cmd_stats(args, config: ClientConfig) -> int:
    """Show marketplace statistics."""
    tk = create_toolkit(config)
    print("📊 Fetching marketplace statistics...")
    result = tk.marketplace.show_stats()
    if not result["found"]:
        print("❌ Marketplace not initialized yet")
        print(f"📍 Expected Address: {result['address']}")
        print('💡 Run "init" command first to initialize the marketplace')
        return 0

    market = result["marketplace"]
    print("📈 Marketplace Statistics:")
    print(f"📍 Address: {result['address']}")
    print(f"👑 Authority: {market.authority}")
    print(f"💰 Fee Rate: {market.fee_rate} basis points ({market.fee_percent}%)")
    print(f"📊 Total Volume: {format_sol(market.total_volume)} SOL")
    print(f"🔢 Total Trades: {market.total_trades}")
    print(f"🏦 Treasury: {market.treasury}")
    return 0


def cmd_account(args, config: ClientConfig) -> int:
    """Get account information."""
    tk = create_toolkit(config)
    info = tk.marketplace.account_info(args.address)
    if not info["found"]:
        print(f"❌ Account {info['address']} not found")
        return 0
    print(f"📊 Account Info for {info['address']}:")
    print(f"💰 Balance: {format_sol(info['lamports'])} SOL")
    print(f"👑 Owner: {info['owner']}")
    print(f"📏 Data Length: {info['data_len']} bytes")
    print(f"✅ Executable: {'Yes' if info['executable'] else 'No'}")
    return 0


def cmd_listings(args, config: ClientConfig) -> int:
    """List listings from chain (no keypair needed)."""
    listings = find_listings(config.rpc_url, mint=args.mint, program_id=config.program_id)
    if not listings:
        print("No listings found.")
        return 0
    print(f"{'Listing':<45} {'Mint':<45} {'Price (SOL)':>14} {'Active':>7}")
    print("-" * 114)
    for entry in listings:
        listing = entry["listing"]
        print(
            f"{entry['address']:<45} {str(listing.mint):<45} "
            f"{format_sol(listing.price):>14} {'yes' if listing.is_active else 'no':>7}"
        )
    return 0


def cmd_verify_idl(args, config: ClientConfig) -> int:
    """Compare a published IDL file with the compiled schema."""
    try:
        with open(args.path, "r") as f:
            idl = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read IDL {args.path}: {e}")

    problems = check_idl(idl)
    if problems:
        for problem in problems:
            print(f"  - {problem}")
        raise ConfigurationError(f"IDL does not match schema {SCHEMA_VERSION} ({len(problems)} problems)")
    print(f"✅ IDL matches schema {SCHEMA_VERSION}")
    return 0


def cmd_info(args, config: ClientConfig) -> int:
    """Show program information (no keypair or network access)."""
    print("📋 Terminal Marketplace Information:")
    print(f"🔗 Program ID: {PROGRAM_ID}")
    print(f"📐 Schema Version: {SCHEMA_VERSION}")
    print(f"🌐 RPC URL: {config.rpc_url}")
    print(f"🔑 Keypair: {config.keypair_path}")
    print(f"⏱️  Commitment: {config.commitment}")
    print("")
    print("⚠️  Listing addresses are derived from the seller only, so each seller")
    print("   has a single listing address regardless of the NFT mint.")
    print("")
    print("Available Commands:")
    for name, help_text in COMMANDS:
        print(f"  {name:<10} - {help_text}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="terminal-marketplace", description="Terminal-based Solana NFT Marketplace CLI"
    )
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")
    add_global_options(parser, DEFAULT_KEYPAIR_PATH)

    helps = dict(COMMANDS)
    sub = parser.add_subparsers(dest="command", required=True, metavar="command")

    sub.add_parser("status", aliases=["cluster"], help=helps["status"])

    p = sub.add_parser("init", help=helps["init"])
    p.add_argument("-f", "--fee-rate", type=fee_rate_arg, default=DEFAULT_FEE_RATE, help="Fee rate in basis points")
    p.add_argument("-t", "--treasury", type=pubkey_arg, help="Treasury public key (default: own wallet)")

    p = sub.add_parser("list", help=helps["list"])
    p.add_argument("mint", type=pubkey_arg, help="NFT mint address")
    p.add_argument("price", type=price_arg, help="Price in SOL")

    p = sub.add_parser("buy", help=helps["buy"])
    p.add_argument("mint", type=pubkey_arg, help="NFT mint address")
    p.add_argument("--seller", type=pubkey_arg, help="Seller public key (default: look up listing by mint)")

    p = sub.add_parser("cancel", help=helps["cancel"])
    p.add_argument("mint", type=pubkey_arg, help="NFT mint address")

    p = sub.add_parser("update", help=helps["update"])
    p.add_argument("mint", type=pubkey_arg, help="NFT mint address")
    p.add_argument("price", type=price_arg, help="New price in SOL")

    p = sub.add_parser("show", help=helps["show"])
    p.add_argument("mint", type=pubkey_arg, help="NFT mint address")
    p.add_argument("--seller", type=pubkey_arg, help="Seller public key (default: own wallet)")

    sub.add_parser("stats", help=helps["stats"])

    p = sub.add_parser("account", help=helps["account"])
    p.add_argument("address", type=pubkey_arg, help="Account public key")

    p = sub.add_parser("listings", help=helps["listings"])
    p.add_argument("--mint", type=pubkey_arg, help="Only show listings for this mint")

    p = sub.add_parser("verify-idl", help=helps["verify-idl"])
    p.add_argument("path", help="Path to the program's IDL JSON")

    sub.add_parser("info", help=helps["info"])
    return parser


CMD_MAP = {
    "status": cmd_status,
    "cluster": cmd_status,
    "init": cmd_init,
    "list": cmd_list,
    "buy": cmd_buy,
    "cancel": cmd_cancel,
    "update": cmd_update,
    "show": cmd_show,
    "stats": cmd_stats,
    "account": cmd_account,
    "listings": cmd_listings,
    "verify-idl": cmd_verify_idl,
    "info": cmd_info,
}


def main(argv=None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    return run_command(CMD_MAP, args)


if __name__ == "__main__":
    sys.exit(main())
