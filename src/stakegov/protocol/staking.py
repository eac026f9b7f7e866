"""
stakegov/protocol/staking.py

Stake directory: who can vote, with how much stake and reputation.

The governance core only ever reads from the directory:
- get_voter(address) -> stake, reputation and delegate of one actor
- total_stake() -> stake held across the whole system

InMemoryStakeDirectory is the reference collaborator. Besides the reads it
carries the validator bookkeeping the core depends on:
- register_validator() (registration step)
- delegate_stake() (point a voter at a validator)
- update_reputation() (governance authority only)
- record_heartbeat() (validator liveness)
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional

from ..arithmetic import checked_add, checked_sub
from ..config import GovernanceConfig
from ..errors import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    OperationResult,
    ValidationError,
)
from ..locks import KeyedLocks

logger = logging.getLogger("stakegov.protocol.staking")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class Voter:
    """A registered staker / validator."""
    address: str
    stake: int
    reputation: int = 0
    delegate: Optional[str] = None    # Validator this voter delegates to
    delegated_amount: int = 0         # Stake this voter delegated to its delegate
    delegated_stake: int = 0          # Stake others delegated to this voter
    last_heartbeat: int = 0           # Unix timestamp of last heartbeat

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Voter":
        return cls(
            address=data["address"],
            stake=int(data.get("stake", 0)),
            reputation=int(data.get("reputation", 0)),
            delegate=data.get("delegate"),
            delegated_amount=int(data.get("delegated_amount", 0)),
            delegated_stake=int(data.get("delegated_stake", 0)),
            last_heartbeat=int(data.get("last_heartbeat", 0)),
        )

    @property
    def effective_address(self) -> str:
        """Address votes are attributed to (one level of delegation)."""
        return self.delegate or self.address


# ============================================================================
# DIRECTORY INTERFACE
# ============================================================================

class StakeDirectory(ABC):
    """Read-only view of stake the governance core depends on."""

    @abstractmethod
    def get_voter(self, address: str) -> Optional[Voter]:
        """Get the voter record for address, or None if unregistered."""

    @abstractmethod
    def total_stake(self) -> int:
        """Total stake in the system."""


# ============================================================================
# IN-MEMORY DIRECTORY
# ============================================================================

class InMemoryStakeDirectory(StakeDirectory):
    """
    Stake directory held in process memory.

    Usage:
        directory = InMemoryStakeDirectory()
        directory.register_validator("EAlice", stake=5000, reputation=200)

        result = await directory.delegate_stake("EAlice", "EBob", 1000)
        if not result:
            print(result.message)
    """

    def __init__(
        self,
        config: Optional[GovernanceConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize InMemoryStakeDirectory.

        Args:
            config: Roles and minimum delegation stake
            clock: Returns the current Unix time (injectable for tests)
        """
        self.config = config or GovernanceConfig()
        self._clock = clock or (lambda: int(time.time()))
        self._voters: Dict[str, Voter] = {}
        self._locks = KeyedLocks()

    # ========================================================================
    # READS
    # ========================================================================

    def get_voter(self, address: str) -> Optional[Voter]:
        return self._voters.get(address)

    def total_stake(self) -> int:
        total = 0
        for voter in self._voters.values():
            total = checked_add(total, voter.stake)
        return total

    def get_validators(self) -> List[Voter]:
        """Get all registered voters."""
        return list(self._voters.values())

    def get_delegators(self, validator_address: str) -> List[Voter]:
        """Get voters delegating to validator_address."""
        return [v for v in self._voters.values() if v.delegate == validator_address]

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_validator(self, address: str, stake: int, reputation: int = 0) -> Voter:
        """
        Register a new voter.

        Raises:
            ValidationError: If address is empty, already registered, or
                stake/reputation is negative
        """
        if not address:
            raise ValidationError("Voter address cannot be empty")
        if address in self._voters:
            raise ValidationError(f"Voter already registered: {address}")
        if stake < 0 or reputation < 0:
            raise ValidationError("Stake and reputation must be non-negative")

        voter = Voter(address=address, stake=stake, reputation=reputation)
        self._voters[address] = voter
        logger.info(f"Registered voter {address} (stake={stake}, reputation={reputation})")
        return voter

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    async def delegate_stake(
        self,
        delegator: str,
        validator_address: str,
        amount: int,
    ) -> OperationResult:
        """
        Delegate stake to a validator.

        A voter has at most one delegation. Delegating again replaces it:
        the amount previously delegated is withdrawn from the old delegate
        (which may be the same validator) before the new amount is credited,
        so a validator's delegated_stake is always backed by its delegators'
        own stake.

        Voting weight is still computed from the delegator's own stake; the
        delegate only changes who the vote is attributed to.

        Args:
            delegator: Calling actor
            validator_address: Validator to delegate to
            amount: Stake to delegate (at least min_delegation_stake)

        Returns:
            OperationResult with the updated delegator Voter
        """
        if not isinstance(amount, int) or isinstance(amount, bool):
            return self._reject(ValidationError(f"Staking amount must be an integer: {amount!r}"))
        if amount < self.config.min_delegation_stake:
            return self._reject(ValidationError(
                f"Staking amount below minimum: {amount} < {self.config.min_delegation_stake}"
            ))
        if delegator == validator_address:
            return self._reject(ValidationError("Cannot delegate to yourself"))

        while True:
            current = self._voters.get(delegator)
            previous = current.delegate if current else None
            keys = [("voter", delegator), ("voter", validator_address)]
            if previous is not None:
                keys.append(("voter", previous))

            async with self._locks.hold(*keys):
                voter = self._voters.get(delegator)
                if voter is not None and voter.delegate != previous:
                    # Redelegated while we waited; lock the new previous delegate
                    continue

                validator = self._voters.get(validator_address)
                if validator is None:
                    return self._reject(NotFoundError(f"Validator not found: {validator_address}"))
                if voter is None:
                    return self._reject(NotFoundError(f"Delegator not registered: {delegator}"))
                if amount > voter.stake:
                    return self._reject(InsufficientFundsError(
                        f"Insufficient stake to delegate: {amount} > {voter.stake}"
                    ))

                old = self._voters.get(previous) if previous is not None else None
                withdrawn = None
                if old is validator:
                    delegated = checked_add(
                        checked_sub(validator.delegated_stake, voter.delegated_amount), amount
                    )
                else:
                    if old is not None:
                        withdrawn = checked_sub(old.delegated_stake, voter.delegated_amount)
                    delegated = checked_add(validator.delegated_stake, amount)

                if withdrawn is not None:
                    old.delegated_stake = withdrawn
                validator.delegated_stake = delegated
                voter.delegate = validator_address
                voter.delegated_amount = amount
                break

        if previous is not None and previous != validator_address:
            logger.info(f"Delegation: {delegator} moved from {previous} to {validator_address} ({amount})")
        else:
            logger.info(f"Delegation: {delegator} -> {validator_address} ({amount})")
        return OperationResult.success(voter)

    async def update_reputation(
        self,
        caller: str,
        validator_address: str,
        reputation_change: int,
    ) -> OperationResult:
        """
        Adjust a validator's reputation by a signed amount (governance authority only).

        Raises:
            LedgerArithmeticError: If reputation would drop below zero
        """
        async with self._locks.hold(("voter", validator_address)):
            if not self.config.is_governance_authority(caller):
                return self._reject(AuthorizationError(
                    "Only the governance authority can update reputation"
                ))
            validator = self._voters.get(validator_address)
            if validator is None:
                return self._reject(NotFoundError(f"Validator not found: {validator_address}"))

            validator.reputation = checked_add(validator.reputation, reputation_change)

        logger.info(
            f"Reputation of {validator_address} changed by {reputation_change} "
            f"to {validator.reputation}"
        )
        return OperationResult.success(validator.reputation)

    async def record_heartbeat(self, caller: str, validator_address: str) -> OperationResult:
        """Record a liveness heartbeat (the validator itself only)."""
        async with self._locks.hold(("voter", validator_address)):
            if caller != validator_address:
                return self._reject(AuthorizationError(
                    "Only the validator can record their own heartbeat"
                ))
            validator = self._voters.get(validator_address)
            if validator is None:
                return self._reject(NotFoundError(f"Validator not found: {validator_address}"))

            validator.last_heartbeat = self._clock()

        logger.debug(f"Heartbeat from {validator_address} at {validator.last_heartbeat}")
        return OperationResult.success(validator.last_heartbeat)

    # ========================================================================
    # INTERNAL METHODS
    # ========================================================================

    @staticmethod
    def _reject(error: Exception) -> OperationResult:
        logger.warning(f"Stake directory operation rejected: {error}")
        return OperationResult.failure(error)
