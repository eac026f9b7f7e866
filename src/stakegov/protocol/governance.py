"""
stakegov/protocol/governance.py

Stake-weighted governance: submit proposals, cast hybrid votes, execute.

Voting power is based on:
- Raw votes committed, bounded by the voter's stake (square-rooted)
- Voter reputation (multiplier)

Key Features:
- Class-specific quorum frozen at submission
- Veto tally for critical (class 2) proposals
- One level of delegation for vote attribution
- At-most-once execution by the governance authority

Usage:
    from stakegov.protocol.governance import GovernanceController

    governance = GovernanceController(directory)

    result = await governance.submit_proposal("EAlice", "Raise relay bonus", 0)
    proposal_id = result.unwrap()

    await governance.hybrid_vote(proposal_id, "EBob", 100, support=True, veto=False)
    await governance.execute_proposal(GOVERNANCE_AUTHORITY, proposal_id)
"""

import logging
import time
from typing import Callable, List, Optional

from ..config import GovernanceConfig, VETO_PROPOSAL_CLASS
from ..errors import (
    AuthorizationError,
    DuplicateVoteError,
    GovernanceError,
    InvalidClassError,
    InvalidStateError,
    NotFoundError,
    OperationResult,
    QuorumNotMetError,
    RejectedError,
    ValidationError,
)
from ..locks import KeyedLocks
from .proposals import Proposal, ProposalRegistry, Vote, VoteChoice
from .quorum import is_valid_class, quorum
from .staking import StakeDirectory
from .weighting import weight

logger = logging.getLogger("stakegov.protocol.governance")


class GovernanceController:
    """
    Public governance operations.

    Every operation holds the proposal's lock while it checks its
    preconditions and commits, and returns an OperationResult. A failed
    operation changes nothing.
    """

    def __init__(
        self,
        directory: StakeDirectory,
        config: Optional[GovernanceConfig] = None,
        registry: Optional[ProposalRegistry] = None,
        id_generator: Optional[Callable[[], int]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize GovernanceController.

        Args:
            directory: Stake and reputation lookups
            config: Roles and voting policy
            registry: Proposal store (a fresh one by default)
            id_generator: Proposal id source, used when registry is not given
            clock: Returns the current Unix time
        """
        self._directory = directory
        self.config = config or GovernanceConfig()
        self.registry = registry or ProposalRegistry(id_generator)
        self._clock = clock or (lambda: int(time.time()))
        self._locks = KeyedLocks()

    # ========================================================================
    # PROPOSAL SUBMISSION
    # ========================================================================

    async def submit_proposal(
        self,
        creator: str,
        description: str,
        proposal_class: int,
    ) -> OperationResult:
        """
        Create a new proposal.

        Args:
            creator: Submitting actor
            description: Proposal text (non-empty)
            proposal_class: 0, 1 or 2

        Returns:
            OperationResult with the new proposal id
        """
        if not isinstance(description, str) or not description.strip():
            return self._reject("submit", ValidationError("Proposal description cannot be empty"))
        if not is_valid_class(proposal_class):
            return self._reject("submit", InvalidClassError(
                f"Invalid proposal class: {proposal_class!r}"
            ))

        threshold = quorum(proposal_class, self._directory.total_stake())
        proposal_id = self.registry.allocate_id()

        async with self._locks.hold(("proposal", proposal_id)):
            self.registry.add(Proposal(
                proposal_id=proposal_id,
                creator=creator,
                description=description,
                proposal_class=proposal_class,
                quorum=threshold,
                created_at=self._clock(),
            ))

        logger.info(
            f"Created proposal {proposal_id} (class={proposal_class}, quorum={threshold}) "
            f"by {creator}"
        )
        return OperationResult.success(proposal_id)

    # ========================================================================
    # VOTING
    # ========================================================================

    async def hybrid_vote(
        self,
        proposal_id: int,
        voter_address: str,
        raw_votes: int,
        support: bool,
        veto: bool = False,
    ) -> OperationResult:
        """
        Cast a hybrid-weighted vote.

        Weight comes from the voter's own reputation; a delegate only
        changes who the vote is attributed to. A veto counts only on class 2
        proposals; elsewhere it falls through to support/against.

        Args:
            proposal_id: Proposal to vote on
            voter_address: Voting actor
            raw_votes: Votes committed, at most the voter's stake
            support: True for, False against
            veto: Veto a class 2 proposal

        Returns:
            OperationResult with the recorded Vote
        """
        async with self._locks.hold(("proposal", proposal_id)):
            proposal = self.registry.get(proposal_id)
            if proposal is None:
                return self._reject("vote", NotFoundError(f"Proposal not found: {proposal_id}"))

            voter = self._directory.get_voter(voter_address)
            if voter is None:
                return self._reject("vote", NotFoundError(
                    f"Voter not registered: {voter_address}"
                ))
            if proposal.executed:
                return self._reject("vote", InvalidStateError(
                    f"Proposal {proposal_id} has already been executed"
                ))
            if not isinstance(raw_votes, int) or isinstance(raw_votes, bool) or raw_votes < 0:
                return self._reject("vote", ValidationError(
                    f"Raw votes must be a non-negative integer: {raw_votes!r}"
                ))
            if raw_votes > voter.stake:
                return self._reject("vote", ValidationError(
                    f"Insufficient stake to cast {raw_votes} votes (stake={voter.stake})"
                ))
            if self.config.one_vote_per_voter and self.registry.has_voted(proposal_id, voter_address):
                return self._reject("vote", DuplicateVoteError(
                    f"{voter_address} already voted on proposal {proposal_id}"
                ))

            if veto and proposal.proposal_class == VETO_PROPOSAL_CLASS:
                choice = VoteChoice.VETO
            elif support:
                choice = VoteChoice.FOR
            else:
                choice = VoteChoice.AGAINST

            vote = Vote(
                proposal_id=proposal_id,
                voter=voter_address,
                effective_voter=voter.effective_address,
                raw_votes=raw_votes,
                final_votes=weight(raw_votes, voter.reputation),
                choice=choice,
                timestamp=self._clock(),
            )
            self.registry.record_vote(proposal, vote)

        logger.debug(
            f"Vote on {proposal_id} by {voter_address} (as {vote.effective_voter}): "
            f"{choice.value} raw={raw_votes} final={vote.final_votes}"
        )
        return OperationResult.success(vote)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    async def execute_proposal(self, caller: str, proposal_id: int) -> OperationResult:
        """
        Execute a proposal that met quorum and majority (governance authority only).

        Returns:
            OperationResult with the executed Proposal
        """
        if not self.config.is_governance_authority(caller):
            return self._reject("execute", AuthorizationError(
                "Only the governance authority can execute proposals"
            ))

        async with self._locks.hold(("proposal", proposal_id)):
            proposal = self.registry.get(proposal_id)
            if proposal is None:
                return self._reject("execute", NotFoundError(f"Proposal not found: {proposal_id}"))
            if proposal.executed:
                return self._reject("execute", InvalidStateError(
                    f"Proposal {proposal_id} has already been executed"
                ))
            if not proposal.quorum_reached():
                return self._reject("execute", QuorumNotMetError(
                    f"Quorum not met: {proposal.participation} < {proposal.quorum}"
                ))
            if not proposal.majority_reached():
                return self._reject("execute", RejectedError(
                    f"Proposal rejected: {proposal.votes_for} for, "
                    f"{proposal.votes_against} against"
                ))

            self.registry.mark_executed(proposal, caller, self._clock())

        logger.info(
            f"Executed proposal {proposal_id} "
            f"({proposal.votes_for} for, {proposal.votes_against} against)"
        )
        return OperationResult.success(proposal)

    # ========================================================================
    # QUERY METHODS
    # ========================================================================

    def get_proposal(self, proposal_id: int) -> Optional[Proposal]:
        """Get a proposal by id."""
        return self.registry.get(proposal_id)

    def get_votes(self, proposal_id: int) -> List[Vote]:
        """Get the vote log of a proposal."""
        return self.registry.get_votes(proposal_id)

    def list_proposals(self, open_only: bool = False) -> List[Proposal]:
        """Get all proposals, or only those still open."""
        return [p for p in self.registry if not (open_only and p.executed)]

    def get_stats(self) -> dict:
        """Get governance statistics."""
        proposals = list(self.registry)
        executed = sum(1 for p in proposals if p.executed)
        return {
            "total_proposals": len(proposals),
            "open_proposals": len(proposals) - executed,
            "executed_proposals": executed,
            "total_stake": self._directory.total_stake(),
            "one_vote_per_voter": self.config.one_vote_per_voter,
        }

    # ========================================================================
    # INTERNAL METHODS
    # ========================================================================

    @staticmethod
    def _reject(operation: str, error: GovernanceError) -> OperationResult:
        logger.warning(f"Governance {operation} rejected: {error}")
        return OperationResult.failure(error)
