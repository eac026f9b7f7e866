"""
stakegov/errors.py

Error taxonomy and operation results.

Every public operation returns an OperationResult. Expected rejections
(bad input, missing role, quorum not met, ...) travel in result.error as an
instance of one of the GovernanceError subclasses below and are never raised
by the controllers. Callers that prefer exceptions use result.unwrap().

Arithmetic faults are not rejections: see stakegov.arithmetic.
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar


T = TypeVar("T")


class GovernanceError(Exception):
    """Base class for rejected governance and treasury operations."""


class AuthorizationError(GovernanceError):
    """Caller lacks the role the operation requires."""


class NotFoundError(GovernanceError):
    """Referenced proposal, withdrawal, voter or account does not exist."""


class ValidationError(GovernanceError):
    """Malformed input: empty text, non-positive amount, out-of-range value."""


class InvalidClassError(ValidationError):
    """Proposal class outside the supported range."""


class InvalidStateError(GovernanceError):
    """Operation is illegal for the current lifecycle state."""


class InsufficientFundsError(InvalidStateError):
    """Balance or stake too small for the requested amount."""


class DuplicateVoteError(InvalidStateError):
    """Voter already voted on this proposal (one-vote-per-voter mode)."""


class QuorumNotMetError(GovernanceError):
    """Not enough weighted votes or approvals."""


class RejectedError(GovernanceError):
    """Majority not achieved."""


class DuplicateApprovalError(GovernanceError):
    """Approver already approved this withdrawal."""


class AlreadyInitializedError(GovernanceError):
    """Treasury balance record already exists."""


@dataclass
class OperationResult(Generic[T]):
    """Outcome of a single state transition."""
    ok: bool
    value: Optional[T] = None
    error: Optional[GovernanceError] = None

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: GovernanceError) -> "OperationResult":
        return cls(ok=False, error=error)

    @property
    def message(self) -> str:
        """Human readable reason for a failure ("" on success)."""
        return str(self.error) if self.error else ""

    def unwrap(self) -> Optional[T]:
        """Return the value, raising the carried error if the operation failed."""
        if self.error is not None:
            raise self.error
        return self.value

    def __bool__(self) -> bool:
        return self.ok
