"""
stakegov/protocol/proposals.py

Proposal registry: the keyed store of proposals, their tallies and vote log.

Proposals are immutable history once executed and are never deleted. The
registry does no authorization or validation of its own; the governance
controller checks every precondition while holding the proposal's lock and
then commits through the registry.
"""

import itertools
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Set

from ..arithmetic import checked_add
from ..config import U64_MAX
from ..errors import InvalidStateError

logger = logging.getLogger("stakegov.protocol.proposals")


# ============================================================================
# ENUMS
# ============================================================================

class ProposalState(Enum):
    """Lifecycle state of a proposal."""
    OPEN = "open"                 # Accepting votes
    EXECUTED = "executed"         # Terminal


class VoteChoice(Enum):
    """Tally a vote was added to."""
    FOR = "for"
    AGAINST = "against"
    VETO = "veto"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class Vote:
    """One hybrid vote as recorded in the vote log."""
    proposal_id: int
    voter: str                    # Actor who cast the vote
    effective_voter: str          # Voter's delegate, or the voter itself
    raw_votes: int
    final_votes: int              # Weighted votes added to the tally
    choice: VoteChoice
    timestamp: int

    def to_dict(self) -> dict:
        return {
            **asdict(self),
            "choice": self.choice.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Vote":
        data = dict(data)
        data["choice"] = VoteChoice(data["choice"])
        return cls(**data)


@dataclass
class Proposal:
    """A governance proposal."""
    proposal_id: int
    creator: str
    description: str
    proposal_class: int           # 0/1/2, ordinal severity
    quorum: int                   # Frozen at creation from total stake
    created_at: int = 0
    votes_for: int = 0
    votes_against: int = 0
    veto_votes: int = 0
    executed: bool = False
    executed_by: str = ""
    executed_at: int = 0

    @property
    def state(self) -> ProposalState:
        return ProposalState.EXECUTED if self.executed else ProposalState.OPEN

    @property
    def participation(self) -> int:
        """Weighted votes counted toward quorum (vetoes excluded)."""
        return self.votes_for + self.votes_against

    def quorum_reached(self) -> bool:
        return self.participation >= self.quorum

    def majority_reached(self) -> bool:
        return self.votes_for > self.votes_against

    def to_dict(self) -> dict:
        return {
            **asdict(self),
            "state": self.state.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Proposal":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# ============================================================================
# ID GENERATION
# ============================================================================

class SequentialIdGenerator:
    """Monotonic proposal ids starting at 1."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def __call__(self) -> int:
        next_id = next(self._counter)
        if next_id > U64_MAX:
            raise OverflowError("Proposal id space exhausted")
        return next_id


# ============================================================================
# PROPOSAL REGISTRY
# ============================================================================

class ProposalRegistry:
    """Keyed store: proposal id -> Proposal, plus the per-proposal vote log."""

    def __init__(self, id_generator: Optional[Callable[[], int]] = None):
        self._generate_id = id_generator or SequentialIdGenerator()
        self._proposals: Dict[int, Proposal] = {}
        self._votes: Dict[int, List[Vote]] = {}
        self._voters: Dict[int, Set[str]] = {}

    def allocate_id(self) -> int:
        """Draw a fresh id, refusing one the generator has already handed out."""
        proposal_id = self._generate_id()
        if proposal_id in self._proposals:
            raise RuntimeError(f"Id generator returned an id already in use: {proposal_id}")
        return proposal_id

    def add(self, proposal: Proposal) -> Proposal:
        self._proposals[proposal.proposal_id] = proposal
        self._votes[proposal.proposal_id] = []
        self._voters[proposal.proposal_id] = set()
        logger.debug(f"Stored proposal {proposal.proposal_id}")
        return proposal

    def get(self, proposal_id: int) -> Optional[Proposal]:
        return self._proposals.get(proposal_id)

    def has_voted(self, proposal_id: int, voter: str) -> bool:
        return voter in self._voters.get(proposal_id, set())

    def get_votes(self, proposal_id: int) -> List[Vote]:
        return list(self._votes.get(proposal_id, []))

    def record_vote(self, proposal: Proposal, vote: Vote) -> None:
        """
        Add a vote to its tally and the vote log.

        Raises:
            InvalidStateError: If the proposal was already executed
            LedgerArithmeticError: If the tally would overflow (nothing is changed)
        """
        if proposal.executed:
            raise InvalidStateError(f"Proposal {proposal.proposal_id} already executed")

        if vote.choice == VoteChoice.VETO:
            proposal.veto_votes = checked_add(proposal.veto_votes, vote.final_votes)
        elif vote.choice == VoteChoice.FOR:
            proposal.votes_for = checked_add(proposal.votes_for, vote.final_votes)
        else:
            proposal.votes_against = checked_add(proposal.votes_against, vote.final_votes)

        self._votes[proposal.proposal_id].append(vote)
        self._voters[proposal.proposal_id].add(vote.voter)

    def mark_executed(self, proposal: Proposal, executed_by: str, executed_at: int) -> None:
        """Flip the executed flag. The only place it is ever set."""
        if proposal.executed:
            raise InvalidStateError(f"Proposal {proposal.proposal_id} already executed")
        proposal.executed = True
        proposal.executed_by = executed_by
        proposal.executed_at = executed_at

    def __iter__(self) -> Iterator[Proposal]:
        return iter(list(self._proposals.values()))

    def __len__(self) -> int:
        return len(self._proposals)

    def __contains__(self, proposal_id: int) -> bool:
        return proposal_id in self._proposals
