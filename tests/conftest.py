from __future__ import annotations

import json
import logging
import struct
from types import SimpleNamespace

import pytest
from solana.exceptions import SolanaRpcException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction_status import TransactionConfirmationStatus

from account_schema import INSTRUCTIONS, LISTING_DISC, MARKETPLACE_DISC, PROGRAM_ID, SCHEMA_VERSION
from client_config import ClientConfig


def marketplace_data(
    authority: Pubkey,
    treasury: Pubkey,
    fee_rate: int = 250,
    total_volume: int = 0,
    total_trades: int = 0,
    bump: int = 254,
) -> bytes:
    return MARKETPLACE_DISC + struct.pack(
        "<32s32sQQQB", bytes(authority), bytes(treasury), fee_rate, total_volume, total_trades, bump
    )


def listing_data(
    seller: Pubkey,
    mint: Pubkey,
    price: int = 1_000_000_000,
    created_at: int = 1_700_000_000,
    is_active: bool = True,
    bump: int = 253,
) -> bytes:
    return LISTING_DISC + struct.pack(
        "<32s32sQq?B", bytes(seller), bytes(mint), price, created_at, is_active, bump
    )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def legacy_idl() -> dict:
    """IDL in the camelCase isMut/isSigner layout, matching the built-in schema."""
    return {
        "version": SCHEMA_VERSION,
        "name": "terminal_marketplace",
        "instructions": [
            {
                "name": _camel(spec.name),
                "accounts": [
                    {"name": _camel(a.name), "isMut": a.is_writable, "isSigner": a.is_signer}
                    for a in spec.accounts
                ],
                "args": [{"name": _camel(n), "type": t} for n, t in spec.args],
            }
            for spec in INSTRUCTIONS.values()
        ],
        "accounts": [{"name": "TerminalMarketplace"}, {"name": "TerminalListing"}],
    }


def program_account(data: bytes, lamports: int = 2_000_000, owner: Pubkey = PROGRAM_ID, executable: bool = False):
    return SimpleNamespace(lamports=lamports, owner=owner, data=data, executable=executable)


class FakeRpcClient:
    """Stands in for solana.rpc.api.Client and records every call made."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.created = 0
        self.endpoint = None
        self.accounts: dict[str, object] = {}
        self.balance = 5_000_000_000
        self.sent: list = []
        self.send_error: Exception | None = None
        self.read_error: Exception | None = None
        self.status_err = None
        self.status_missing = False

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.read_error is not None and name != "send_transaction":
            raise self.read_error

    def get_balance(self, pubkey):
        self._record("get_balance")
        return SimpleNamespace(value=self.balance)

    def get_version(self):
        self._record("get_version")
        return SimpleNamespace(value=SimpleNamespace(solana_core="1.18.26"))

    def get_account_info(self, pubkey):
        self._record("get_account_info")
        return SimpleNamespace(value=self.accounts.get(str(pubkey)))

    def get_latest_blockhash(self):
        self._record("get_latest_blockhash")
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    def send_transaction(self, tx, opts=None):
        self._record("send_transaction")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(tx)
        return SimpleNamespace(value=tx.signatures[0])

    def get_signature_statuses(self, sigs):
        self._record("get_signature_statuses")
        if self.status_missing:
            return SimpleNamespace(value=[None])
        return SimpleNamespace(
            value=[SimpleNamespace(err=self.status_err, confirmation_status=TransactionConfirmationStatus.Confirmed)]
        )


def transport_error(func, body, cause: Exception) -> SolanaRpcException:
    """Build the exception solana-py raises when the HTTP request itself fails."""
    error = SolanaRpcException(cause, func, None, body)
    error.__cause__ = cause
    return error


def sent_instruction(tx):
    """Return (program_id, ordered account pubkeys, data) of the first instruction."""
    message = tx.message
    ix = message.instructions[0]
    keys = [message.account_keys[i] for i in ix.accounts]
    return message.account_keys[ix.program_id_index], keys, bytes(ix.data)


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_marketplace_handler", False):
            root.removeHandler(handler)


@pytest.fixture
def rpc(monkeypatch) -> FakeRpcClient:
    fake = FakeRpcClient()

    def _factory(endpoint, commitment=None):
        fake.created += 1
        fake.endpoint = endpoint
        return fake

    monkeypatch.setattr("wallet.Client", _factory)
    return fake


@pytest.fixture
def keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def keypair_file(tmp_path, keypair) -> str:
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(keypair))))
    return str(path)


@pytest.fixture
def config(keypair_file) -> ClientConfig:
    return ClientConfig(rpc_url="http://localhost:8899", keypair_path=keypair_file, confirm_timeout_seconds=0)
