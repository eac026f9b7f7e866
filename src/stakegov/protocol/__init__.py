"""
stakegov/protocol/

Governance, treasury and stake directory protocols.
"""

from .quorum import quorum, is_valid_class
from .weighting import isqrt, weight, reputation_multiplier
from .staking import StakeDirectory, InMemoryStakeDirectory, Voter
from .proposals import (
    Proposal,
    ProposalRegistry,
    ProposalState,
    SequentialIdGenerator,
    Vote,
    VoteChoice,
)
from .governance import GovernanceController
from .treasury import (
    TreasuryController,
    TreasuryRegistry,
    Balance,
    Approval,
    WithdrawalRequest,
    WithdrawalState,
)
from .actions import ProposalActionHandler, ParameterChange, UpgradeRequest

__all__ = [
    "quorum",
    "is_valid_class",
    "isqrt",
    "weight",
    "reputation_multiplier",
    "StakeDirectory",
    "InMemoryStakeDirectory",
    "Voter",
    "Proposal",
    "ProposalRegistry",
    "ProposalState",
    "SequentialIdGenerator",
    "Vote",
    "VoteChoice",
    "GovernanceController",
    "TreasuryController",
    "TreasuryRegistry",
    "Balance",
    "Approval",
    "WithdrawalRequest",
    "WithdrawalState",
    # Executed proposal effects
    "ProposalActionHandler",
    "ParameterChange",
    "UpgradeRequest",
]
