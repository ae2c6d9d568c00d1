"""Terminal Marketplace toolkit: unified entry point."""

from typing import Optional

from solana.rpc.api import Client

from client_config import ClientConfig
from marketplace_client import MarketplaceClient
from wallet import SolanaWallet


class MarketplaceToolkit:
    """Facade combining the signing wallet and the marketplace client."""

    def __init__(self, config: ClientConfig, client: Optional[Client] = None):
        """
        Initialize the wallet and marketplace client from one config.

        Args:
            config: Per-invocation client configuration.
            client: Pre-built RPC client. Built from config when None.
        """
        self.config = config
        self.wallet = SolanaWallet(config, client=client)
        self.marketplace = MarketplaceClient(self.wallet)

    @property
    def pubkey(self) -> str:
        """Return wallet public key as string."""
        return str(self.wallet.pubkey)


def create_toolkit(config: ClientConfig, client: Optional[Client] = None) -> MarketplaceToolkit:
    """
    Factory function to create a fully initialized MarketplaceToolkit.

    Args:
        config: Per-invocation client configuration.
        client: Pre-built RPC client. Built from config when None.

    Returns:
        MarketplaceToolkit: Initialized toolkit with wallet and marketplace.
    """
    return MarketplaceToolkit(config, client=client)
