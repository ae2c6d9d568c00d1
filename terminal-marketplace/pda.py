"""Program-derived address helpers for the Terminal Marketplace program.

Every function here is pure: same seeds and program id in, same
(address, bump) out. Pubkey.find_program_address walks the bump from 255
downward until the candidate falls off the ed25519 curve, which is exactly
what the on-chain program does.
"""

import logging
from typing import Sequence, Tuple, Union

from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from account_schema import PROGRAM_ID, SEEDS
from client_errors import InvalidPublicKeyError

logger = logging.getLogger(__name__)

PubkeyLike = Union[Pubkey, str, bytes]


def to_pubkey(value: PubkeyLike) -> Pubkey:
    """Read a Pubkey, base58 string or 32 raw bytes as a Pubkey.

    Raises:
        InvalidPublicKeyError: If the value is not a valid 32-byte public key.
    """
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise InvalidPublicKeyError(f"Invalid public key: expected 32 bytes, got {len(value)}")
        return Pubkey.from_bytes(bytes(value))
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value.strip())
        except ValueError:
            raise InvalidPublicKeyError(f"Invalid public key: {value!r}")
    raise InvalidPublicKeyError(f"Invalid public key type: {type(value).__name__}")


def derive_address(
    label: str,
    components: Sequence[PubkeyLike] = (),
    program_id: PubkeyLike = PROGRAM_ID,
) -> Tuple[Pubkey, int]:
    """Derive a program address from a seed label and public-key components.

    Args:
        label: One of 'marketplace', 'listing', 'order'.
        components: Public keys appended to the label seed, in order.
        program_id: Program the address is scoped under.

    Returns:
        (address, bump)

    Raises:
        InvalidPublicKeyError: If any component or the program id is malformed.
        ValueError: If the label is not a known seed label.
    """
    if label not in SEEDS:
        raise ValueError(f"Unknown seed label: {label}. Options: {list(SEEDS)}")
    seeds = [SEEDS[label]] + [bytes(to_pubkey(c)) for c in components]
    address, bump = Pubkey.find_program_address(seeds, to_pubkey(program_id))
    logger.debug("derived %s address %s (bump %d)", label, address, bump)
    return address, bump


def find_marketplace_address(program_id: PubkeyLike = PROGRAM_ID) -> Tuple[Pubkey, int]:
    """The singleton marketplace record address (seed 'marketplace' only)."""
    return derive_address("marketplace", (), program_id)


def find_listing_address(seller: PubkeyLike, program_id: PubkeyLike = PROGRAM_ID) -> Tuple[Pubkey, int]:
    """Listing address for a seller.

    The program seeds listings by seller alone, not by (seller, mint), so a
    seller has exactly one derivable listing address whatever mint is listed.
    """
    return derive_address("listing", (seller,), program_id)


def find_order_address(
    mint: PubkeyLike, buyer: PubkeyLike, program_id: PubkeyLike = PROGRAM_ID
) -> Tuple[Pubkey, int]:
    return derive_address("order", (mint, buyer), program_id)


def find_token_account(owner: PubkeyLike, mint: PubkeyLike) -> Pubkey:
    """Associated token account of owner for mint (SPL Token program)."""
    return get_associated_token_address(to_pubkey(owner), to_pubkey(mint), TOKEN_PROGRAM_ID)


def find_escrow_token_account(mint: PubkeyLike, listing: PubkeyLike) -> Pubkey:
    # Owned by the listing PDA, which is off-curve.
    return find_token_account(listing, mint)
