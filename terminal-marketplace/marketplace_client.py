"""
Terminal Marketplace Client: Python interface for the on-chain marketplace program.

Program ID: brCRRQ6jBAScsJdwWRx5azEAuYqWxjJGKnaHr3q3gyj

Every action follows the same steps: derive the addresses the instruction
needs, fetch on-chain state only where an account is not derivable (seller of
a listing, treasury of the marketplace), submit one instruction, and hand the
results back for reporting. Inspectors stop after the fetch.

Provides: initialize, create_listing, buy_nft, cancel_listing, update_price,
show_listing, show_stats, account_info, cluster_status, find_listings
"""

import base64
import logging
from typing import Any, Dict, List, Optional, Tuple

import base58
import requests
from solders.pubkey import Pubkey

from account_schema import (
    DEFAULT_FEE_RATE,
    LISTING_DISC,
    LISTING_MINT_OFFSET,
    PROGRAM_ID,
    ListingRecord,
    MarketplaceRecord,
    build_instruction,
    check_fee_rate,
    check_price,
    decode_listing,
    decode_marketplace,
)
from client_errors import (
    AccountDecodeError,
    AccountNotFoundError,
    NetworkError,
)
from pda import (
    PubkeyLike,
    find_escrow_token_account,
    find_listing_address,
    find_marketplace_address,
    find_order_address,
    find_token_account,
    to_pubkey,
)
from wallet import SolanaWallet

logger = logging.getLogger(__name__)

RPC_TIMEOUT_SECONDS = 15


def find_listings(
    rpc_url: str,
    mint: Optional[PubkeyLike] = None,
    program_id: PubkeyLike = PROGRAM_ID,
) -> List[Dict[str, Any]]:
    """Fetch listing accounts from chain using getProgramAccounts.

    Args:
        rpc_url: JSON-RPC endpoint.
        mint: Only return listings for this NFT mint.
        program_id: Marketplace program id.

    Returns:
        List of {"address": str, "listing": ListingRecord}.

    Raises:
        NetworkError: If the endpoint is unreachable or answers with an error.
    """
    filters = [{"memcmp": {"offset": 0, "bytes": base58.b58encode(LISTING_DISC).decode()}}]
    if mint is not None:
        filters.append({"memcmp": {"offset": LISTING_MINT_OFFSET, "bytes": str(to_pubkey(mint))}})

    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "getProgramAccounts",
        "params": [
            str(to_pubkey(program_id)),
            {"encoding": "base64", "filters": filters},
        ],
    }

    try:
        resp = requests.post(rpc_url, json=payload, timeout=RPC_TIMEOUT_SECONDS)
        data = resp.json()
    except requests.RequestException as e:
        raise NetworkError(f"getProgramAccounts failed: {e}") from e
    except ValueError as e:
        raise NetworkError(f"getProgramAccounts returned invalid JSON: {e}") from e

    if "error" in data:
        raise NetworkError(f"RPC error: {data['error']}")

    listings = []
    for account in data.get("result") or []:
        raw = base64.b64decode(account["account"]["data"][0])
        try:
            record = decode_listing(raw)
        except AccountDecodeError as e:
            logger.debug("skipping %s: %s", account.get("pubkey"), e)
            continue
        listings.append({"address": account["pubkey"], "listing": record})
    return listings


class MarketplaceClient:
    """Orchestrates marketplace actions for the local signing identity."""

    def __init__(self, wallet: SolanaWallet):
        self.wallet = wallet
        self.config = wallet.config
        self.program_id = to_pubkey(wallet.config.program_id)

    @property
    def owner(self) -> Pubkey:
        return self.wallet.pubkey

    # ----- fetch helpers -----

    def _fetch(self, address: Pubkey):
        account = self.wallet.get_account_info(address)
        if account is None:
            logger.debug("account %s not found", address)
            return None
        if account.owner != self.program_id:
            logger.debug("account %s owned by %s, not the marketplace program", address, account.owner)
            return None
        return account

    def fetch_marketplace(self) -> Tuple[Pubkey, Optional[MarketplaceRecord]]:
        """Derive and fetch the marketplace record. Record is None if not initialized."""
        address, _ = find_marketplace_address(self.program_id)
        account = self._fetch(address)
        if account is None:
            return address, None
        return address, decode_marketplace(account.data)

    def fetch_listing(self, address: Pubkey) -> Optional[ListingRecord]:
        account = self._fetch(address)
        if account is None:
            return None
        return decode_listing(account.data)

    def _locate_listing(
        self, mint: Pubkey, seller: Optional[PubkeyLike]
    ) -> Tuple[Optional[Pubkey], Optional[ListingRecord]]:
        """Find the active listing for mint, by seller-derived address or by scanning.

        Returns (address, None) when the listing is missing, for another
        mint, or no longer active.
        """
        if seller is not None:
            address, _ = find_listing_address(seller, self.program_id)
            listing = self.fetch_listing(address)
            if listing is None:
                return address, None
            if listing.mint != mint:
                logger.warning("listing %s is for mint %s, not %s", address, listing.mint, mint)
                return address, None
            if not listing.is_active:
                logger.warning("listing %s is no longer active", address)
                return address, None
            return address, listing

        matches = find_listings(self.config.rpc_url, mint=mint, program_id=self.program_id)
        active = [m for m in matches if m["listing"].is_active]
        if matches and not active:
            logger.warning("%d listings found for mint %s, none active", len(matches), mint)
        if not active:
            return None, None
        if len(active) > 1:
            logger.warning("%d listings found for mint %s, using %s", len(active), mint, active[0]["address"])
        return Pubkey.from_string(active[0]["address"]), active[0]["listing"]

    def _submit(self, name: str, args: Dict[str, int], accounts: Dict[str, Pubkey]) -> str:
        ix = build_instruction(name, args, accounts, self.program_id)
        logger.info("submitting %s", name)
        return self.wallet.send_instructions([ix])

    # ----- mutating actions -----

    def initialize(self, fee_rate: int = DEFAULT_FEE_RATE, treasury: Optional[PubkeyLike] = None) -> Dict[str, Any]:
        """Create the marketplace record.

        Args:
            fee_rate: Fee in basis points.
            treasury: Fee recipient. Defaults to the local wallet.

        Returns:
            Dict with marketplace, bump, authority, treasury, fee_rate, signature.
        """
        check_fee_rate(fee_rate)
        treasury_pk = to_pubkey(treasury) if treasury is not None else self.owner
        marketplace, bump = find_marketplace_address(self.program_id)

        sig = self._submit(
            "initialize",
            {"fee_rate": fee_rate},
            {"marketplace": marketplace, "authority": self.owner, "treasury": treasury_pk},
        )
        return {
            "marketplace": str(marketplace),
            "bump": bump,
            "authority": str(self.owner),
            "treasury": str(treasury_pk),
            "fee_rate": fee_rate,
            "signature": sig,
        }

    def create_listing(self, mint: PubkeyLike, price_lamports: int) -> Dict[str, Any]:
        """List an NFT; the token moves into an escrow account owned by the listing."""
        check_price(price_lamports)
        mint_pk = to_pubkey(mint)
        listing, bump = find_listing_address(self.owner, self.program_id)

        sig = self._submit(
            "create_listing",
            {"price": price_lamports},
            {
                "listing": listing,
                "seller": self.owner,
                "mint": mint_pk,
                "seller_token_account": find_token_account(self.owner, mint_pk),
                "escrow_token_account": find_escrow_token_account(mint_pk, listing),
            },
        )
        return {
            "listing": str(listing),
            "bump": bump,
            "seller": str(self.owner),
            "mint": str(mint_pk),
            "price": price_lamports,
            "signature": sig,
        }

    def buy_nft(self, mint: PubkeyLike, seller: Optional[PubkeyLike] = None) -> Dict[str, Any]:
        """Buy a listed NFT.

        The seller and treasury are not derivable, so the listing and
        marketplace records are fetched first. Without a seller the listing
        is found by scanning program accounts for the mint.

        Raises:
            AccountNotFoundError: No active listing for the mint, or marketplace not initialized.
        """
        mint_pk = to_pubkey(mint)
        buyer = self.owner

        listing_address, listing = self._locate_listing(mint_pk, seller)
        if listing is None:
            raise AccountNotFoundError(
                f"No active listing found for mint {mint_pk}", str(listing_address or "")
            )

        marketplace, market = self.fetch_marketplace()
        if market is None:
            raise AccountNotFoundError("Marketplace not initialized", str(marketplace))

        order, _ = find_order_address(mint_pk, buyer, self.program_id)

        sig = self._submit(
            "buy_nft",
            {},
            {
                "marketplace": marketplace,
                "listing": listing_address,
                "order": order,
                "buyer": buyer,
                "seller": listing.seller,
                "treasury": market.treasury,
                "mint": mint_pk,
                "escrow_token_account": find_escrow_token_account(mint_pk, listing_address),
                "buyer_token_account": find_token_account(buyer, mint_pk),
            },
        )
        return {
            "listing": str(listing_address),
            "order": str(order),
            "seller": str(listing.seller),
            "treasury": str(market.treasury),
            "mint": str(mint_pk),
            "price": listing.price,
            "signature": sig,
        }

    def cancel_listing(self, mint: PubkeyLike) -> Dict[str, Any]:
        mint_pk = to_pubkey(mint)
        listing, _ = find_listing_address(self.owner, self.program_id)

        sig = self._submit(
            "cancel_listing",
            {},
            {
                "listing": listing,
                "seller": self.owner,
                "mint": mint_pk,
                "escrow_token_account": find_escrow_token_account(mint_pk, listing),
                "seller_token_account": find_token_account(self.owner, mint_pk),
            },
        )
        return {"listing": str(listing), "mint": str(mint_pk), "signature": sig}

    def update_price(self, mint: PubkeyLike, price_lamports: int) -> Dict[str, Any]:
        check_price(price_lamports)
        mint_pk = to_pubkey(mint)
        listing, _ = find_listing_address(self.owner, self.program_id)

        sig = self._submit(
            "update_price",
            {"new_price": price_lamports},
            {"listing": listing, "seller": self.owner, "mint": mint_pk},
        )
        return {"listing": str(listing), "mint": str(mint_pk), "price": price_lamports, "signature": sig}

    # ----- read-only inspectors -----

    def show_listing(self, mint: PubkeyLike, seller: Optional[PubkeyLike] = None) -> Dict[str, Any]:
        """Fetch the listing derived from seller (default: own wallet).

        A missing listing is reported with found=False, not raised.
        """
        mint_pk = to_pubkey(mint)
        seller_pk = to_pubkey(seller) if seller is not None else self.owner
        address, _ = find_listing_address(seller_pk, self.program_id)
        listing = self.fetch_listing(address)
        return {
            "found": listing is not None,
            "address": str(address),
            "mint": str(mint_pk),
            "seller": str(seller_pk),
            "listing": listing,
            "mint_matches": listing is not None and listing.mint == mint_pk,
        }

    def show_stats(self) -> Dict[str, Any]:
        address, market = self.fetch_marketplace()
        return {"found": market is not None, "address": str(address), "marketplace": market}

    def account_info(self, address: PubkeyLike) -> Dict[str, Any]:
        pubkey = to_pubkey(address)
        account = self.wallet.get_account_info(pubkey)
        if account is None:
            return {"found": False, "address": str(pubkey)}
        return {
            "found": True,
            "address": str(pubkey),
            "lamports": account.lamports,
            "owner": str(account.owner),
            "data_len": len(account.data),
            "executable": bool(account.executable),
        }

    def cluster_status(self) -> Dict[str, Any]:
        version = self.wallet.get_version()
        balance = self.wallet.get_balance()
        program = self.wallet.get_account_info(self.program_id)
        return {
            "rpc_url": self.config.rpc_url,
            "version": version,
            "balance": balance,
            "wallet": str(self.owner),
            "program_id": str(self.program_id),
            "program_deployed": program is not None and bool(program.executable),
        }

    def marketplace_account_summary(self) -> Dict[str, Any]:
        """Raw view of the marketplace account without decoding its data."""
        address, _ = find_marketplace_address(self.program_id)
        account = self._fetch(address)
        if account is None:
            return {"found": False, "address": str(address)}
        return {
            "found": True,
            "address": str(address),
            "lamports": account.lamports,
            "data_len": len(account.data),
        }

    # ----- simulations (no network) -----

    def simulate_initialize(self, fee_rate: int = DEFAULT_FEE_RATE) -> Dict[str, Any]:
        marketplace, bump = find_marketplace_address(self.program_id)
        return {
            "marketplace": str(marketplace),
            "bump": bump,
            "authority": str(self.owner),
            "fee_rate": fee_rate,
        }

    def simulate_create_listing(self, price_lamports: int) -> Dict[str, Any]:
        listing, bump = find_listing_address(self.owner, self.program_id)
        return {
            "listing": str(listing),
            "bump": bump,
            "seller": str(self.owner),
            "price": price_lamports,
        }
