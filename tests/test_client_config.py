from __future__ import annotations

import pytest

from client_config import DEFAULT_RPC_URL, build_config, resolve_rpc_url
from client_errors import ConfigurationError, ErrorKind, NetworkError, exit_code_for


def test_resolve_rpc_url_accepts_monikers_and_urls() -> None:
    assert resolve_rpc_url("devnet") == "https://api.devnet.solana.com"
    assert resolve_rpc_url("http://127.0.0.1:8899") == "http://127.0.0.1:8899"
    assert resolve_rpc_url("") == DEFAULT_RPC_URL


def test_build_config_rejects_unknown_commitment() -> None:
    with pytest.raises(ConfigurationError, match="commitment"):
        build_config(commitment="eventual")


def test_build_config_defaults() -> None:
    config = build_config(rpc="localnet", keypair="~/id.json")
    assert config.rpc_url == DEFAULT_RPC_URL
    assert config.commitment == "confirmed"
    assert config.confirm_timeout_seconds == 30


def test_exit_codes_follow_error_kind() -> None:
    assert exit_code_for(ConfigurationError("bad")) == 2
    assert exit_code_for(NetworkError("down")) == 3
    assert exit_code_for(RuntimeError("boom")) == 1
    assert ErrorKind.PROGRAM_REJECTION.label == "Program Rejection Error"
