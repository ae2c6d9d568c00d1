"""Static schema for the Terminal Marketplace program.

Instruction and account layouts are compiled in rather than read from an IDL
file at startup. check_idl() compares the compiled schema against a published
Anchor IDL so drift between client and program can be caught explicitly.

Program ID: brCRRQ6jBAScsJdwWRx5azEAuYqWxjJGKnaHr3q3gyj
"""

import hashlib
import re
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from client_errors import AccountDecodeError, ConfigurationError

PROGRAM_NAME = "terminal_marketplace"
PROGRAM_ID = Pubkey.from_string("brCRRQ6jBAScsJdwWRx5azEAuYqWxjJGKnaHr3q3gyj")
SCHEMA_VERSION = "0.1.0"

SEEDS = {
    "marketplace": b"marketplace",
    "listing": b"listing",
    "order": b"order",
}

DEFAULT_FEE_RATE = 250  # 2.5%
BASIS_POINTS = 10_000
MAX_FEE_RATE = 1_000  # 10%

# Price bounds in lamports: 0.001 SOL to 1M SOL
MIN_PRICE = 1_000_000
MAX_PRICE = 1_000_000_000_000

# Filled in by build_instruction when the caller does not pass them.
FIXED_ACCOUNTS = {
    "system_program": SYSTEM_PROGRAM_ID,
    "token_program": TOKEN_PROGRAM_ID,
    "associated_token_program": ASSOCIATED_TOKEN_PROGRAM_ID,
}

_ARG_FORMATS = {"u8": "<B", "u16": "<H", "u32": "<I", "u64": "<Q", "i64": "<q"}


def check_fee_rate(fee_rate: int) -> int:
    if not 0 <= fee_rate <= MAX_FEE_RATE:
        raise ConfigurationError(f"Fee rate must be between 0 and {MAX_FEE_RATE} basis points, got {fee_rate}")
    return fee_rate


def check_price(lamports: int) -> int:
    """Reject prices outside the program's listing bounds."""
    if not MIN_PRICE <= lamports <= MAX_PRICE:
        raise ConfigurationError(
            f"Price must be between {MIN_PRICE} and {MAX_PRICE} lamports (0.001 to 1000000 SOL), got {lamports}"
        )
    return lamports


# Anchor discriminators: sha256("global:<instruction_name>")[:8]
def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


# sha256("account:<AccountName>")[:8]
def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


@dataclass(frozen=True)
class AccountSpec:
    name: str
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True)
class InstructionSpec:
    name: str
    args: Tuple[Tuple[str, str], ...]
    accounts: Tuple[AccountSpec, ...]

    @property
    def discriminator(self) -> bytes:
        return instruction_discriminator(self.name)


def _acct(name: str, signer: bool = False, writable: bool = False) -> AccountSpec:
    return AccountSpec(name=name, is_signer=signer, is_writable=writable)


INSTRUCTIONS: Dict[str, InstructionSpec] = {
    "initialize": InstructionSpec(
        name="initialize",
        args=(("fee_rate", "u64"),),
        accounts=(
            _acct("marketplace", writable=True),
            _acct("authority", signer=True, writable=True),
            _acct("treasury"),
            _acct("system_program"),
        ),
    ),
    "create_listing": InstructionSpec(
        name="create_listing",
        args=(("price", "u64"),),
        accounts=(
            _acct("listing", writable=True),
            _acct("seller", signer=True, writable=True),
            _acct("mint"),
            _acct("seller_token_account", writable=True),
            _acct("escrow_token_account", writable=True),
            _acct("token_program"),
            _acct("associated_token_program"),
            _acct("system_program"),
        ),
    ),
    "buy_nft": InstructionSpec(
        name="buy_nft",
        args=(),
        accounts=(
            _acct("marketplace", writable=True),
            _acct("listing", writable=True),
            _acct("order", writable=True),
            _acct("buyer", signer=True, writable=True),
            _acct("seller", writable=True),
            _acct("treasury", writable=True),
            _acct("mint"),
            _acct("escrow_token_account", writable=True),
            _acct("buyer_token_account", writable=True),
            _acct("token_program"),
            _acct("associated_token_program"),
            _acct("system_program"),
        ),
    ),
    "cancel_listing": InstructionSpec(
        name="cancel_listing",
        args=(),
        accounts=(
            _acct("listing", writable=True),
            _acct("seller", signer=True, writable=True),
            _acct("mint"),
            _acct("escrow_token_account", writable=True),
            _acct("seller_token_account", writable=True),
            _acct("token_program"),
            _acct("associated_token_program"),
            _acct("system_program"),
        ),
    ),
    "update_price": InstructionSpec(
        name="update_price",
        args=(("new_price", "u64"),),
        accounts=(
            _acct("listing", writable=True),
            _acct("seller", signer=True),
            _acct("mint"),
        ),
    ),
}


def encode_args(spec: InstructionSpec, args: Mapping[str, int]) -> bytes:
    """Borsh-encode instruction args in declaration order."""
    data = b""
    for arg_name, arg_type in spec.args:
        if arg_name not in args:
            raise ConfigurationError(f"Missing argument '{arg_name}' for {spec.name}")
        try:
            data += struct.pack(_ARG_FORMATS[arg_type], int(args[arg_name]))
        except struct.error as e:
            raise ConfigurationError(f"Argument '{arg_name}' out of range for {arg_type}: {e}")
    return data


def build_instruction(
    name: str,
    args: Mapping[str, int],
    accounts: Mapping[str, Pubkey],
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    """Build a program instruction with the account order the program expects.

    Args:
        name: Instruction name (key of INSTRUCTIONS).
        args: Instruction argument values by name.
        accounts: Account addresses by name. Program accounts listed in
            FIXED_ACCOUNTS may be omitted.
        program_id: Marketplace program id.

    Returns:
        Instruction: Ready to place in a transaction message.

    Raises:
        ConfigurationError: Unknown instruction, missing account or argument.
    """
    spec = INSTRUCTIONS.get(name)
    if spec is None:
        raise ConfigurationError(f"Unknown instruction: {name}")

    metas = []
    for acct in spec.accounts:
        pubkey = accounts.get(acct.name)
        if pubkey is None:
            pubkey = FIXED_ACCOUNTS.get(acct.name)
        if pubkey is None:
            raise ConfigurationError(f"Missing account '{acct.name}' for {name}")
        metas.append(AccountMeta(pubkey=pubkey, is_signer=acct.is_signer, is_writable=acct.is_writable))

    data = spec.discriminator + encode_args(spec, args)
    return Instruction(program_id, data, metas)


# ----- Account layouts -----

MARKETPLACE_ACCOUNT = "TerminalMarketplace"
LISTING_ACCOUNT = "TerminalListing"

MARKETPLACE_DISC = account_discriminator(MARKETPLACE_ACCOUNT)
LISTING_DISC = account_discriminator(LISTING_ACCOUNT)

# authority, treasury, fee_rate, total_volume, total_trades, bump
_MARKETPLACE_STRUCT = struct.Struct("<32s32sQQQB")
# seller, mint, price, created_at, is_active, bump
_LISTING_STRUCT = struct.Struct("<32s32sQq?B")

MARKETPLACE_ACCOUNT_SIZE = 8 + _MARKETPLACE_STRUCT.size
LISTING_ACCOUNT_SIZE = 8 + _LISTING_STRUCT.size

# Offset of the mint field inside a listing account (used for memcmp filters)
LISTING_MINT_OFFSET = 8 + 32


@dataclass(frozen=True)
class MarketplaceRecord:
    authority: Pubkey
    treasury: Pubkey
    fee_rate: int
    total_volume: int
    total_trades: int
    bump: int

    @property
    def fee_percent(self) -> float:
        return self.fee_rate / 100


@dataclass(frozen=True)
class ListingRecord:
    seller: Pubkey
    mint: Pubkey
    price: int
    created_at: int
    is_active: bool
    bump: int


def _check_account(data: bytes, disc: bytes, size: int, account_name: str) -> bytes:
    raw = bytes(data)
    if len(raw) < size:
        raise AccountDecodeError(
            f"{account_name} data too short: {len(raw)} bytes, expected at least {size}"
        )
    if raw[:8] != disc:
        raise AccountDecodeError(f"Account is not a {account_name} (discriminator {raw[:8].hex()})")
    return raw


def decode_marketplace(data: bytes) -> MarketplaceRecord:
    raw = _check_account(data, MARKETPLACE_DISC, MARKETPLACE_ACCOUNT_SIZE, MARKETPLACE_ACCOUNT)
    authority, treasury, fee_rate, volume, trades, bump = _MARKETPLACE_STRUCT.unpack_from(raw, 8)
    return MarketplaceRecord(
        authority=Pubkey.from_bytes(authority),
        treasury=Pubkey.from_bytes(treasury),
        fee_rate=fee_rate,
        total_volume=volume,
        total_trades=trades,
        bump=bump,
    )


def decode_listing(data: bytes) -> ListingRecord:
    raw = _check_account(data, LISTING_DISC, LISTING_ACCOUNT_SIZE, LISTING_ACCOUNT)
    seller, mint, price, created_at, is_active, bump = _LISTING_STRUCT.unpack_from(raw, 8)
    return ListingRecord(
        seller=Pubkey.from_bytes(seller),
        mint=Pubkey.from_bytes(mint),
        price=price,
        created_at=created_at,
        is_active=is_active,
        bump=bump,
    )


# ----- IDL comparison -----

def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _idl_flag(account: Dict[str, Any], new_key: str, old_key: str) -> bool:
    return bool(account.get(new_key, account.get(old_key, False)))


def check_idl(idl: Dict[str, Any]) -> List[str]:
    """Compare a published Anchor IDL against the compiled schema.

    Handles both the legacy layout (camelCase names, isMut/isSigner) and the
    0.30+ layout (snake_case names, writable/signer, metadata block).

    Returns:
        List of human-readable mismatches; empty when the schemas agree.
    """
    problems: List[str] = []
    metadata = idl.get("metadata") or {}

    name = idl.get("name") or metadata.get("name")
    if name != PROGRAM_NAME:
        problems.append(f"program name is {name!r}, expected {PROGRAM_NAME!r}")

    version = idl.get("version") or metadata.get("version")
    if version != SCHEMA_VERSION:
        problems.append(f"schema version is {version!r}, expected {SCHEMA_VERSION!r}")

    address = idl.get("address") or metadata.get("address")
    if address and address != str(PROGRAM_ID):
        problems.append(f"program address is {address}, expected {PROGRAM_ID}")

    published = {_snake(ix.get("name", "")): ix for ix in idl.get("instructions", [])}
    for spec in INSTRUCTIONS.values():
        ix = published.get(spec.name)
        if ix is None:
            problems.append(f"instruction {spec.name} missing from IDL")
            continue

        idl_args = [(_snake(a.get("name", "")), a.get("type")) for a in ix.get("args", [])]
        if idl_args != list(spec.args):
            problems.append(f"{spec.name}: args {idl_args} != {list(spec.args)}")

        idl_accounts = ix.get("accounts", [])
        idl_names = [_snake(a.get("name", "")) for a in idl_accounts]
        our_names = [a.name for a in spec.accounts]
        if idl_names != our_names:
            problems.append(f"{spec.name}: accounts {idl_names} != {our_names}")
            continue

        for ours, theirs in zip(spec.accounts, idl_accounts):
            signer = _idl_flag(theirs, "signer", "isSigner")
            writable = _idl_flag(theirs, "writable", "isMut")
            if (signer, writable) != (ours.is_signer, ours.is_writable):
                problems.append(
                    f"{spec.name}.{ours.name}: signer/writable is {signer}/{writable}, "
                    f"expected {ours.is_signer}/{ours.is_writable}"
                )

    account_names = {a.get("name") for a in idl.get("accounts", [])}
    for account_name in (MARKETPLACE_ACCOUNT, LISTING_ACCOUNT):
        if account_name not in account_names:
            problems.append(f"account type {account_name} missing from IDL")

    return problems
