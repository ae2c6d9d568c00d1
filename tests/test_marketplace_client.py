from __future__ import annotations

import base64
import struct

import pytest
import requests
from solders.keypair import Keypair

from account_schema import MAX_FEE_RATE, MAX_PRICE, MIN_PRICE, PROGRAM_ID, instruction_discriminator
from client_errors import AccountNotFoundError, ConfigurationError, NetworkError
from conftest import listing_data, marketplace_data, program_account, sent_instruction
from marketplace_client import find_listings
from pda import (
    find_escrow_token_account,
    find_listing_address,
    find_marketplace_address,
    find_order_address,
    find_token_account,
)
from toolkit import create_toolkit


class _FakeResponse:
    def __init__(self, payload) -> None:
        self._payload = payload

    def json(self):
        return self._payload


def _rpc_listing(address, data: bytes) -> dict:
    return {"pubkey": str(address), "account": {"data": [base64.b64encode(data).decode(), "base64"]}}


def test_initialize_defaults_treasury_to_wallet(config, rpc, keypair) -> None:
    tk = create_toolkit(config)
    result = tk.marketplace.initialize()

    marketplace, bump = find_marketplace_address()
    program_id, keys, data = sent_instruction(rpc.sent[0])
    assert program_id == PROGRAM_ID
    assert keys[:3] == [marketplace, keypair.pubkey(), keypair.pubkey()]
    assert data[:8] == instruction_discriminator("initialize")
    assert struct.unpack("<Q", data[8:16])[0] == 250
    assert result["bump"] == bump
    assert result["signature"] == str(rpc.sent[0].signatures[0])


@pytest.mark.parametrize("fee_rate", [-1, MAX_FEE_RATE + 1, 10_001])
def test_initialize_rejects_fee_rate_out_of_range(config, rpc, fee_rate) -> None:
    with pytest.raises(ConfigurationError, match="Fee rate"):
        create_toolkit(config).marketplace.initialize(fee_rate=fee_rate)
    assert rpc.calls == []


def test_buy_fills_seller_and_treasury_from_chain(config, rpc, keypair) -> None:
    seller, treasury, mint = Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()
    listing, _ = find_listing_address(seller)
    marketplace, _ = find_marketplace_address()
    rpc.accounts[str(listing)] = program_account(listing_data(seller, mint, price=3_000_000_000))
    rpc.accounts[str(marketplace)] = program_account(marketplace_data(Keypair().pubkey(), treasury))

    result = create_toolkit(config).marketplace.buy_nft(mint, seller=seller)

    buyer = keypair.pubkey()
    order, _ = find_order_address(mint, buyer)
    _, keys, data = sent_instruction(rpc.sent[0])
    assert keys[:9] == [
        marketplace, listing, order, buyer, seller, treasury, mint,
        find_escrow_token_account(mint, listing), find_token_account(buyer, mint),
    ]
    assert data == instruction_discriminator("buy_nft")
    assert result["price"] == 3_000_000_000
    assert result["seller"] == str(seller)


def test_buy_without_marketplace_is_not_found(config, rpc) -> None:
    seller, mint = Keypair().pubkey(), Keypair().pubkey()
    listing, _ = find_listing_address(seller)
    rpc.accounts[str(listing)] = program_account(listing_data(seller, mint))

    with pytest.raises(AccountNotFoundError, match="not initialized") as excinfo:
        create_toolkit(config).marketplace.buy_nft(mint, seller=seller)
    assert excinfo.value.address == str(find_marketplace_address()[0])
    assert "send_transaction" not in rpc.calls


def test_buy_with_listing_for_other_mint_is_not_found(config, rpc) -> None:
    seller = Keypair().pubkey()
    listing, _ = find_listing_address(seller)
    rpc.accounts[str(listing)] = program_account(listing_data(seller, Keypair().pubkey()))

    with pytest.raises(AccountNotFoundError, match="No active listing"):
        create_toolkit(config).marketplace.buy_nft(Keypair().pubkey(), seller=seller)


def test_buy_with_inactive_listing_is_not_found(config, rpc) -> None:
    seller, mint = Keypair().pubkey(), Keypair().pubkey()
    listing, _ = find_listing_address(seller)
    rpc.accounts[str(listing)] = program_account(listing_data(seller, mint, is_active=False))
    rpc.accounts[str(find_marketplace_address()[0])] = program_account(
        marketplace_data(Keypair().pubkey(), Keypair().pubkey())
    )

    with pytest.raises(AccountNotFoundError, match="No active listing") as excinfo:
        create_toolkit(config).marketplace.buy_nft(mint, seller=seller)
    assert excinfo.value.address == str(listing)
    assert rpc.sent == []


@pytest.mark.parametrize("price", [MIN_PRICE - 1, MAX_PRICE + 1])
def test_listing_prices_outside_program_bounds_are_rejected(config, rpc, price) -> None:
    tk = create_toolkit(config)
    with pytest.raises(ConfigurationError, match="Price must be between"):
        tk.marketplace.create_listing(Keypair().pubkey(), price)
    with pytest.raises(ConfigurationError, match="Price must be between"):
        tk.marketplace.update_price(Keypair().pubkey(), price)
    assert rpc.calls == []


def test_buy_without_seller_scans_program_accounts(config, rpc, monkeypatch) -> None:
    seller, mint, treasury = Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()
    listing, _ = find_listing_address(seller)
    marketplace, _ = find_marketplace_address()
    rpc.accounts[str(marketplace)] = program_account(marketplace_data(Keypair().pubkey(), treasury))
    captured = {}

    def _fake_post(url, json, timeout):
        captured["url"] = url
        captured["body"] = json
        return _FakeResponse({"result": [_rpc_listing(listing, listing_data(seller, mint))]})

    monkeypatch.setattr("marketplace_client.requests.post", _fake_post)
    result = create_toolkit(config).marketplace.buy_nft(mint)

    assert captured["url"] == config.rpc_url
    filters = captured["body"]["params"][1]["filters"]
    assert filters[1] == {"memcmp": {"offset": 40, "bytes": str(mint)}}
    assert result["listing"] == str(listing)
    assert result["treasury"] == str(treasury)


def test_show_listing_not_found_is_informational(config, rpc, keypair) -> None:
    result = create_toolkit(config).marketplace.show_listing(Keypair().pubkey())
    assert result["found"] is False
    assert result["address"] == str(find_listing_address(keypair.pubkey())[0])
    assert rpc.calls == ["get_account_info"]


def test_show_listing_ignores_accounts_owned_by_other_programs(config, rpc, keypair) -> None:
    mint = Keypair().pubkey()
    listing, _ = find_listing_address(keypair.pubkey())
    rpc.accounts[str(listing)] = program_account(listing_data(keypair.pubkey(), mint), owner=Keypair().pubkey())
    assert create_toolkit(config).marketplace.show_listing(mint)["found"] is False


def test_show_stats_decodes_marketplace(config, rpc) -> None:
    authority, treasury = Keypair().pubkey(), Keypair().pubkey()
    marketplace, _ = find_marketplace_address()
    rpc.accounts[str(marketplace)] = program_account(marketplace_data(authority, treasury, 300, 10, 2))

    result = create_toolkit(config).marketplace.show_stats()
    assert result["found"] is True
    assert result["marketplace"].authority == authority
    assert result["marketplace"].total_trades == 2


def test_account_info_reports_fields(config, rpc) -> None:
    address = Keypair().pubkey()
    rpc.accounts[str(address)] = program_account(b"\x00" * 12, lamports=42, executable=True)
    info = create_toolkit(config).marketplace.account_info(address)
    assert info == {
        "found": True,
        "address": str(address),
        "lamports": 42,
        "owner": str(PROGRAM_ID),
        "data_len": 12,
        "executable": True,
    }


def test_cluster_status(config, rpc, keypair) -> None:
    rpc.accounts[str(PROGRAM_ID)] = program_account(b"", executable=True)
    status = create_toolkit(config).marketplace.cluster_status()
    assert status["version"] == "1.18.26"
    assert status["balance"] == 5_000_000_000
    assert status["wallet"] == str(keypair.pubkey())
    assert status["program_deployed"] is True


def test_simulations_make_no_rpc_calls(config, rpc, keypair) -> None:
    tk = create_toolkit(config)
    init = tk.marketplace.simulate_initialize(fee_rate=300)
    listing = tk.marketplace.simulate_create_listing(1_500_000_000)
    assert init["marketplace"] == str(find_marketplace_address()[0])
    assert listing["listing"] == str(find_listing_address(keypair.pubkey())[0])
    assert rpc.calls == []


def test_find_listings_skips_undecodable_accounts(monkeypatch) -> None:
    seller, mint = Keypair().pubkey(), Keypair().pubkey()
    good, bad = Keypair().pubkey(), Keypair().pubkey()

    def _fake_post(url, json, timeout):
        return _FakeResponse({"result": [_rpc_listing(good, listing_data(seller, mint)), _rpc_listing(bad, b"\x01" * 20)]})

    monkeypatch.setattr("marketplace_client.requests.post", _fake_post)
    listings = find_listings("http://localhost:8899")
    assert [entry["address"] for entry in listings] == [str(good)]
    assert listings[0]["listing"].mint == mint


def test_find_listings_network_failures(monkeypatch) -> None:
    def _refused(url, json, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr("marketplace_client.requests.post", _refused)
    with pytest.raises(NetworkError, match="refused"):
        find_listings("http://localhost:8899")

    monkeypatch.setattr(
        "marketplace_client.requests.post",
        lambda url, json, timeout: _FakeResponse({"error": {"code": -32601, "message": "Method not found"}}),
    )
    with pytest.raises(NetworkError, match="Method not found"):
        find_listings("http://localhost:8899")
