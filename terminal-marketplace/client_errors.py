"""Error taxonomy for the marketplace clients.

Every failure the clients report belongs to exactly one ErrorKind, and each
kind has its own process exit code.
"""

from enum import Enum


class ErrorKind(Enum):
    """Closed set of failure categories."""

    CONFIGURATION = 2
    NETWORK = 3
    NOT_FOUND = 4
    PROGRAM_REJECTION = 5

    @property
    def exit_code(self) -> int:
        return self.value

    @property
    def label(self) -> str:
        return f"{self.name.replace('_', ' ').title()} Error"


class MarketplaceError(Exception):
    """Base class for all reportable client errors."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(MarketplaceError):
    kind = ErrorKind.CONFIGURATION


class InvalidPublicKeyError(ConfigurationError):
    """Raised when a value cannot be read as a 32-byte public key."""


class KeypairError(ConfigurationError):
    """Raised when the local key file is missing or malformed."""


class AccountDecodeError(ConfigurationError):
    """Account data does not match the compiled account layout."""


class NetworkError(MarketplaceError):
    kind = ErrorKind.NETWORK


class AccountNotFoundError(MarketplaceError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, address: str = ""):
        super().__init__(message)
        self.address = address


class ProgramRejectionError(MarketplaceError):
    kind = ErrorKind.PROGRAM_REJECTION


def exit_code_for(exc: BaseException) -> int:
    """Map an exception to the process exit code for its kind."""
    if isinstance(exc, MarketplaceError):
        return exc.kind.exit_code
    return 1
