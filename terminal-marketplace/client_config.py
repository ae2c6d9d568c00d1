from dataclasses import dataclass
from pathlib import Path

from account_schema import PROGRAM_ID
from client_errors import ConfigurationError

DEFAULT_RPC_URL = "http://localhost:8899"
DEFAULT_KEYPAIR_PATH = "./deploy-authority.json"
SIMPLE_DEFAULT_KEYPAIR_PATH = "./new-deploy-authority.json"
DEFAULT_COMMITMENT = "confirmed"
DEFAULT_CONFIRM_TIMEOUT_SECONDS = 30

CLUSTER_URLS = {
    "localnet": DEFAULT_RPC_URL,
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")


def resolve_rpc_url(value: str) -> str:
    """Map a cluster moniker to its endpoint; anything else is taken as a URL."""
    value = (value or "").strip()
    if not value:
        return DEFAULT_RPC_URL
    return CLUSTER_URLS.get(value, value)


@dataclass(frozen=True)
class ClientConfig:
    """Settings for one client invocation, passed explicitly to every call."""

    rpc_url: str = DEFAULT_RPC_URL
    keypair_path: str = DEFAULT_KEYPAIR_PATH
    commitment: str = DEFAULT_COMMITMENT
    program_id: str = str(PROGRAM_ID)
    confirm_timeout_seconds: int = DEFAULT_CONFIRM_TIMEOUT_SECONDS

    @property
    def expanded_keypair_path(self) -> Path:
        return Path(self.keypair_path).expanduser()


def build_config(
    rpc: str = DEFAULT_RPC_URL,
    keypair: str = DEFAULT_KEYPAIR_PATH,
    commitment: str = DEFAULT_COMMITMENT,
) -> ClientConfig:
    """Build the per-invocation config from command-line values."""
    if commitment not in COMMITMENT_LEVELS:
        raise ConfigurationError(
            f"Unknown commitment level: {commitment!r}. Options: {list(COMMITMENT_LEVELS)}"
        )
    return ClientConfig(
        rpc_url=resolve_rpc_url(rpc),
        keypair_path=keypair or DEFAULT_KEYPAIR_PATH,
        commitment=commitment,
    )
