#!/usr/bin/env python3
"""Simple Terminal Marketplace CLI: inspect accounts and preview addresses without submitting."""

import argparse
import sys

from account_schema import DEFAULT_FEE_RATE, PROGRAM_ID
from cli import add_global_options, fee_rate_arg, price_arg, pubkey_arg, run_command
from client_config import SIMPLE_DEFAULT_KEYPAIR_PATH, ClientConfig
from logging_config import setup_logging
from toolkit import create_toolkit
from units import format_sol

COMMANDS = (
    ("status", "Check cluster and wallet status"),
    ("init", "Simulate marketplace initialization"),
    ("list", "Simulate creating a listing"),
    ("account", "Get account information"),
    ("stats", "Get marketplace statistics"),
    ("info", "Show this information"),
)


def cmd_status(args, config: ClientConfig) -> int:
    tk = create_toolkit(config)
    status = tk.marketplace.cluster_status()
    print("🌐 Connected to Solana cluster")
    print(f"📊 Solana Version: {status['version']}")
    print(f"💰 Wallet Balance: {format_sol(status['balance'])} SOL")
    print(f"🔑 Wallet Address: {status['wallet']}")
    print(f"🔗 Program ID: {status['program_id']}")
    return 0


def cmd_init(args, config: ClientConfig) -> int:
    tk = create_toolkit(config)
    print("🚀 Simulating marketplace initialization...")
    result = tk.marketplace.simulate_initialize(fee_rate=args.fee_rate)
    print("✅ Marketplace would be initialized at:")
    print(f"📍 PDA: {result['marketplace']}")
    print(f"🔢 Bump: {result['bump']}")
    print(f"👑 Authority: {result['authority']}")
    print(f"💰 Fee Rate: {result['fee_rate'] / 100}% ({result['fee_rate']} basis points)")
    print("")
    print("💡 Note: use terminal-marketplace init to actually initialize")
    return 0


def cmd_list(args, config: ClientConfig) -> int:
    tk = create_toolkit(config)
    print(f"📝 Simulating listing creation for {format_sol(args.price)} SOL...")
    result = tk.marketplace.simulate_create_listing(args.price)
    print("✅ Listing would be created at:")
    print(f"📍 PDA: {result['listing']}")
    print(f"🔢 Bump: {result['bump']}")
    print(f"👤 Seller: {result['seller']}")
    print(f"💰 Price: {format_sol(result['price'])} SOL ({result['price']} lamports)")
    print("")
    print("💡 Note: use terminal-marketplace list to actually create the listing")
    return 0


def cmd_account(args, config: ClientConfig) -> int:
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


def cmd_stats(args, config: ClientConfig) -> int:
    tk = create_toolkit(config)
    print("📊 Getting marketplace statistics...")
    summary = tk.marketplace.marketplace_account_summary()
    if not summary["found"]:
        print("❌ Marketplace not initialized yet")
        print(f"📍 Expected Address: {summary['address']}")
        print('💡 Run "init" command first to initialize the marketplace')
        return 0
    print("✅ Marketplace account found!")
    print(f"📍 Address: {summary['address']}")
    print(f"💰 Balance: {format_sol(summary['lamports'])} SOL")
    print(f"📏 Data Size: {summary['data_len']} bytes")
    print("💡 Use terminal-marketplace stats for decoded statistics")
    return 0


def cmd_info(args, config: ClientConfig) -> int:
    print("📋 Terminal Marketplace Information:")
    print(f"🔗 Program ID: {PROGRAM_ID}")
    print(f"🌐 RPC URL: {config.rpc_url}")
    print(f"🔑 Keypair: {config.keypair_path}")
    print("")
    print("Available Commands:")
    for name, help_text in COMMANDS:
        print(f"  {name:<9} - {help_text}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="simple-marketplace", description="Simple Terminal Marketplace CLI")
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")
    add_global_options(parser, SIMPLE_DEFAULT_KEYPAIR_PATH)

    helps = dict(COMMANDS)
    sub = parser.add_subparsers(dest="command", required=True, metavar="command")
    sub.add_parser("status", help=helps["status"])

    p = sub.add_parser("init", help=helps["init"])
    p.add_argument("-f", "--fee-rate", type=fee_rate_arg, default=DEFAULT_FEE_RATE, help="Fee rate in basis points")

    p = sub.add_parser("list", help=helps["list"])
    p.add_argument("price", type=price_arg, help="Price in SOL")

    p = sub.add_parser("account", help=helps["account"])
    p.add_argument("address", type=pubkey_arg, help="Account public key")

    sub.add_parser("stats", help=helps["stats"])
    sub.add_parser("info", help=helps["info"])
    return parser


CMD_MAP = {
    "status": cmd_status,
    "init": cmd_init,
    "list": cmd_list,
    "account": cmd_account,
    "stats": cmd_stats,
    "info": cmd_info,
}


def main(argv=None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    return run_command(CMD_MAP, args)


if __name__ == "__main__":
    sys.exit(main())
