"""
stakegov/protocol/weighting.py

Hybrid vote weighting.

Voting power is based on:
- Raw votes, square-rooted (diminishing returns for large holders)
- Reputation, as a fixed-point multiplier (+1% per 100 reputation)

Everything is integer arithmetic with truncating division so that every
node computes exactly the same weight for the same inputs.
"""

from ..arithmetic import checked_add, checked_mul
from ..config import FIXED_POINT_SCALE
from ..errors import ValidationError


def isqrt(x: int) -> int:
    """
    Integer square root by Newton's method.

    Starts at x // 2 and steps down until guess * guess <= x.

    Raises:
        ValidationError: If x is negative
    """
    if x < 0:
        raise ValidationError(f"Cannot take square root of negative value {x}")
    # 0 would divide by zero below and x // 2 undershoots for 1
    if x < 2:
        return x

    guess = x // 2
    while guess * guess > x:
        guess = (guess + x // guess) // 2
    return guess


def reputation_multiplier(reputation: int) -> int:
    """Fixed-point multiplier (scale 100) earned by reputation."""
    if reputation < 0:
        raise ValidationError(f"Reputation cannot be negative: {reputation}")
    return checked_add(FIXED_POINT_SCALE, reputation // FIXED_POINT_SCALE)


def weight(raw_votes: int, reputation: int) -> int:
    """
    Effective voting weight.

    Args:
        raw_votes: Votes the voter commits (bounded by stake upstream)
        reputation: Voter's reputation score

    Returns:
        isqrt(raw_votes) * (100 + reputation // 100) // 100
    """
    effective = isqrt(raw_votes)
    return checked_mul(effective, reputation_multiplier(reputation)) // FIXED_POINT_SCALE
