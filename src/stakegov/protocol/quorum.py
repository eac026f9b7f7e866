"""
stakegov/protocol/quorum.py

Quorum policy: how much weighted participation a proposal class needs.

The threshold is a fixed share of total stake:
- Class 0 (routine): 10%
- Class 1 (major): 30%
- Class 2 (critical, vetoable): 50%

Controllers compute it once at submission and freeze it into the proposal,
so later changes to total stake never move an in-flight proposal's bar.
"""

from ..arithmetic import checked_mul
from ..config import QUORUM_PERCENT
from ..errors import InvalidClassError


def is_valid_class(proposal_class: int) -> bool:
    """Check if proposal_class is one of the supported classes."""
    return (
        isinstance(proposal_class, int)
        and not isinstance(proposal_class, bool)
        and proposal_class in QUORUM_PERCENT
    )


def quorum(proposal_class: int, total_stake: int) -> int:
    """
    Quorum threshold for a proposal class.

    Args:
        proposal_class: 0, 1 or 2
        total_stake: Total stake in the system

    Returns:
        total_stake * percent // 100 (integer truncation)

    Raises:
        InvalidClassError: If proposal_class is not supported
        LedgerArithmeticError: If the product leaves the u128 range
    """
    if not is_valid_class(proposal_class):
        raise InvalidClassError(f"Invalid proposal class: {proposal_class!r}")
    return checked_mul(total_stake, QUORUM_PERCENT[proposal_class]) // 100
