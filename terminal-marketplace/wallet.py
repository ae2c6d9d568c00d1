import json
import logging
import time
from typing import Any, List, Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from client_config import ClientConfig
from client_errors import KeypairError, NetworkError, ProgramRejectionError
from pda import PubkeyLike, to_pubkey

logger = logging.getLogger(__name__)

# Statuses that satisfy each commitment level.
_SATISFIES = {
    "processed": (
        TransactionConfirmationStatus.Processed,
        TransactionConfirmationStatus.Confirmed,
        TransactionConfirmationStatus.Finalized,
    ),
    "confirmed": (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized),
    "finalized": (TransactionConfirmationStatus.Finalized,),
}

POLL_INTERVAL_SECONDS = 1


def _describe(exc: Exception) -> str:
    # error_msg only names the transport exception class; the cause carries the reason.
    message = getattr(exc, "error_msg", None) or str(exc) or type(exc).__name__
    if exc.__cause__ is not None:
        return f"{message}: {exc.__cause__}"
    return message


def load_keypair(path) -> Keypair:
    """
    Load a keypair from a JSON array of secret-key bytes.

    Args:
        path: Path to the key file (already expanded).

    Returns:
        Keypair: The signing identity.

    Raises:
        KeypairError: If the file is missing, unreadable, or not a valid key.
    """
    try:
        with open(path, "r") as f:
            secret_key = json.load(f)
    except FileNotFoundError:
        raise KeypairError(f"Keypair file not found: {path}")
    except OSError as e:
        raise KeypairError(f"Cannot read keypair file {path}: {e}")
    except json.JSONDecodeError as e:
        raise KeypairError(f"Invalid keypair file format: {e}")

    if not isinstance(secret_key, list):
        raise KeypairError("Invalid keypair file format: expected a JSON array of bytes")
    try:
        return Keypair.from_bytes(bytes(secret_key))
    except (ValueError, TypeError) as e:
        raise KeypairError(f"Invalid keypair file format: {e}")


class SolanaWallet:
    """The local signing identity plus the RPC client used to reach the cluster."""

    def __init__(self, config: ClientConfig, client: Optional[Client] = None):
        """
        Load the keypair, then set up the RPC client.

        The keypair is read before any client exists, so a bad key file never
        produces network traffic.

        Args:
            config: Per-invocation client configuration.
            client: Pre-built RPC client. Built from config when None.

        Raises:
            KeypairError: If the keypair file is missing or malformed.
        """
        self.config = config
        self.keypair = load_keypair(config.expanded_keypair_path)
        self.pubkey = self.keypair.pubkey()
        self.client = client or Client(config.rpc_url, commitment=Commitment(config.commitment))
        logger.debug("wallet %s on %s", self.pubkey, config.rpc_url)

    def _call(self, what: str, fn, *args, **kwargs) -> Any:
        try:
            return fn(*args, **kwargs)
        except (SolanaRpcException, RPCException) as e:
            reason = _describe(e)
            logger.warning("%s failed: %s", what, reason)
            raise NetworkError(f"{what} failed: {reason}") from e

    def get_balance(self, address: Optional[PubkeyLike] = None) -> int:
        """
        Get the lamport balance of an address (defaults to the wallet).

        Raises:
            NetworkError: If the RPC request fails or returns no value.
        """
        target = to_pubkey(address) if address is not None else self.pubkey
        response = self._call("getBalance", self.client.get_balance, target)
        if response.value is None:
            raise NetworkError("Failed to retrieve balance from RPC")
        return int(response.value)

    def get_version(self) -> str:
        response = self._call("getVersion", self.client.get_version)
        return str(response.value.solana_core)

    def get_account_info(self, address: PubkeyLike):
        """
        Fetch an account. Returns None when the account does not exist.

        Raises:
            NetworkError: If the RPC request fails.
        """
        response = self._call("getAccountInfo", self.client.get_account_info, to_pubkey(address))
        return response.value

    def send_instructions(self, ixs: List[Instruction]) -> str:
        """Build, sign, send and confirm a transaction. Returns signature string.

        Raises:
            NetworkError: Blockhash fetch failed or no confirmation in time.
            ProgramRejectionError: The cluster or program rejected the transaction.
        """
        blockhash_resp = self._call("getLatestBlockhash", self.client.get_latest_blockhash)
        blockhash = blockhash_resp.value.blockhash
        msg = Message.new_with_blockhash(ixs, self.pubkey, blockhash)
        tx = Transaction.new_unsigned(msg)
        tx.sign([self.keypair], blockhash)

        try:
            resp = self.client.send_transaction(
                tx, opts=TxOpts(skip_preflight=False, preflight_commitment=Commitment(self.config.commitment))
            )
        except RPCException as e:
            logger.warning("transaction rejected: %s", e)
            raise ProgramRejectionError(f"Transaction rejected: {e}") from e
        except SolanaRpcException as e:
            raise NetworkError(f"sendTransaction failed: {_describe(e)}") from e

        sig = resp.value
        if sig is None:
            raise ProgramRejectionError(f"Transaction failed: {resp}")
        logger.info("submitted transaction %s", sig)
        return self._await_confirmation(sig)

    def _await_confirmation(self, sig) -> str:
        wanted = _SATISFIES[self.config.commitment]
        deadline = time.monotonic() + self.config.confirm_timeout_seconds
        while True:
            status = self._call("getSignatureStatuses", self.client.get_signature_statuses, [sig])
            if status.value and status.value[0] is not None:
                entry = status.value[0]
                if entry.err:
                    raise ProgramRejectionError(f"Transaction error: {entry.err}")
                if entry.confirmation_status in wanted:
                    logger.debug("transaction %s reached %s", sig, entry.confirmation_status)
                    return str(sig)
            if time.monotonic() >= deadline:
                raise NetworkError(
                    f"Transaction {sig} not {self.config.commitment} within "
                    f"{self.config.confirm_timeout_seconds}s"
                )
            time.sleep(POLL_INTERVAL_SECONDS)
