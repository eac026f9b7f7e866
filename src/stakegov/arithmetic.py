"""
stakegov/arithmetic.py

Checked unsigned ledger arithmetic.

Tallies, stakes and balances are u128 values on the ledger. Python integers
never overflow, so the bounds are enforced here instead: any result outside
[0, U128_MAX] raises LedgerArithmeticError.
"""

from .config import U128_MAX


class LedgerArithmeticError(ArithmeticError):
    """Ledger value left the unsigned 128-bit range."""


def _check(value: int, op: str, limit: int) -> int:
    if value < 0:
        raise LedgerArithmeticError(f"{op} underflow: result {value} is negative")
    if value > limit:
        raise LedgerArithmeticError(f"{op} overflow: result exceeds {limit}")
    return value


def checked_add(a: int, b: int, limit: int = U128_MAX) -> int:
    return _check(a + b, "add", limit)


def checked_sub(a: int, b: int, limit: int = U128_MAX) -> int:
    return _check(a - b, "sub", limit)


def checked_mul(a: int, b: int, limit: int = U128_MAX) -> int:
    return _check(a * b, "mul", limit)
