"""SOL <-> lamport conversion.

Prices are typed in whole SOL on the command line and submitted as integer
lamports. Conversion goes through Decimal so 2.5 SOL is exactly
2_500_000_000 lamports.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

from client_errors import ConfigurationError

LAMPORTS_PER_SOL = 10**9
_SCALE = Decimal(LAMPORTS_PER_SOL)


def sol_to_lamports(value: Union[str, int, float, Decimal]) -> int:
    """Convert a positive SOL amount to lamports.

    Raises:
        ConfigurationError: If the amount is not a finite positive number or
            is more precise than one lamport.
    """
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ConfigurationError(f"Invalid price: {value!r} is not a number")

    if not amount.is_finite():
        raise ConfigurationError(f"Invalid price: {value!r} is not finite")
    if amount <= 0:
        raise ConfigurationError(f"Invalid price: {value!r} must be greater than zero")

    lamports = amount * _SCALE
    if lamports != lamports.to_integral_value():
        raise ConfigurationError(f"Invalid price: {value!r} is finer than one lamport")
    return int(lamports)


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(int(lamports)) / _SCALE


def format_sol(lamports: int) -> str:
    """Render lamports as a SOL string without trailing zeros."""
    sol = lamports_to_sol(lamports)
    if sol == sol.to_integral_value():
        return str(sol.quantize(Decimal(1)))
    return format(sol.normalize(), "f")
