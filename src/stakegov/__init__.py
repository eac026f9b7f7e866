"""
stakegov - Stake-weighted governance and approval-gated treasury

Built on trio with:
- Hybrid (square-root + reputation) vote weighting
- Class-specific quorum frozen at submission
- At-most-once proposal and withdrawal execution
- Per-record locking for serialized state transitions

Usage:
    from stakegov import GovernanceController, InMemoryStakeDirectory

    directory = InMemoryStakeDirectory()
    directory.register_validator("EAlice", stake=1000, reputation=50)

    governance = GovernanceController(directory)
    proposal_id = (await governance.submit_proposal("EAlice", "Raise bonus", 0)).unwrap()
    await governance.hybrid_vote(proposal_id, "EAlice", 100, support=True)

Treasury Usage:
    from stakegov import TreasuryController

    treasury = TreasuryController()
    await treasury.deposit("ETreasury", 1000)
"""

from .config import (
    GovernanceConfig,
    GOVERNANCE_AUTHORITY,
    TREASURY_MANAGER,
)
from .errors import (
    OperationResult,
    GovernanceError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
    InvalidClassError,
    InvalidStateError,
    InsufficientFundsError,
    DuplicateVoteError,
    QuorumNotMetError,
    RejectedError,
    DuplicateApprovalError,
    AlreadyInitializedError,
)
from .arithmetic import LedgerArithmeticError
from .protocol import (
    quorum,
    isqrt,
    weight,
    StakeDirectory,
    InMemoryStakeDirectory,
    Voter,
    Proposal,
    Vote,
    VoteChoice,
    GovernanceController,
    TreasuryController,
    WithdrawalRequest,
    WithdrawalState,
    ProposalActionHandler,
)

__version__ = "0.1.0"
__all__ = [
    "GovernanceConfig",
    "GOVERNANCE_AUTHORITY",
    "TREASURY_MANAGER",
    "OperationResult",
    "GovernanceError",
    "AuthorizationError",
    "NotFoundError",
    "ValidationError",
    "InvalidClassError",
    "InvalidStateError",
    "InsufficientFundsError",
    "DuplicateVoteError",
    "QuorumNotMetError",
    "RejectedError",
    "DuplicateApprovalError",
    "AlreadyInitializedError",
    "LedgerArithmeticError",
    "quorum",
    "isqrt",
    "weight",
    "StakeDirectory",
    "InMemoryStakeDirectory",
    "Voter",
    "Proposal",
    "Vote",
    "VoteChoice",
    "GovernanceController",
    "TreasuryController",
    "WithdrawalRequest",
    "WithdrawalState",
    "ProposalActionHandler",
]
