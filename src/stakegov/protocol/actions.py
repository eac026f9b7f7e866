"""
stakegov/protocol/actions.py

Effects of executed proposals.

Once a proposal has been executed the governance authority applies what it
decided. Two kinds of action are supported:
- Parameter changes, stored in the handler's parameter table
- Upgrade requests, recorded for the external upgrade dispatcher

Each executed proposal drives at most one action.
"""

import logging
import time
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional, Union

from ..config import GovernanceConfig, NULL_ADDRESS, U64_MAX
from ..errors import (
    AuthorizationError,
    GovernanceError,
    InvalidStateError,
    NotFoundError,
    OperationResult,
    ValidationError,
)
from ..locks import KeyedLocks
from .governance import GovernanceController

logger = logging.getLogger("stakegov.protocol.actions")


@dataclass
class ParameterChange:
    """A parameter set by an executed proposal."""
    proposal_id: int
    name: str
    value: int
    applied_at: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UpgradeRequest:
    """An upgrade approved by an executed proposal, awaiting dispatch."""
    proposal_id: int
    new_target: str
    requested_at: int

    def to_dict(self) -> dict:
        return asdict(self)


Action = Union[ParameterChange, UpgradeRequest]


class ProposalActionHandler:
    """Applies parameter changes and upgrade requests for executed proposals."""

    def __init__(
        self,
        governance: GovernanceController,
        config: Optional[GovernanceConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._governance = governance
        self.config = config or governance.config
        self._clock = clock or (lambda: int(time.time()))
        self._parameters: Dict[str, ParameterChange] = {}
        self._actions: Dict[int, Action] = {}
        self._locks = KeyedLocks()

    async def modify_parameter(
        self,
        caller: str,
        proposal_id: int,
        name: str,
        value: int,
    ) -> OperationResult:
        """Set a named parameter on behalf of an executed proposal."""
        async with self._locks.hold(("action", proposal_id)):
            error = self._check_proposal(caller, proposal_id)
            if error is None and not (name and name.strip()):
                error = ValidationError("Parameter name cannot be empty")
            if error is None and (not isinstance(value, int) or not 0 <= value <= U64_MAX):
                error = ValidationError(f"Parameter value out of range: {value!r}")
            if error is not None:
                return self._reject("modify_parameter", error)

            change = ParameterChange(
                proposal_id=proposal_id,
                name=name,
                value=value,
                applied_at=self._clock(),
            )
            self._parameters[name] = change
            self._actions[proposal_id] = change

        logger.info(f"Parameter modified by proposal {proposal_id}: {name}={value}")
        return OperationResult.success(change)

    async def request_upgrade(
        self,
        caller: str,
        proposal_id: int,
        new_target: str,
    ) -> OperationResult:
        """Record an upgrade to new_target on behalf of an executed proposal."""
        async with self._locks.hold(("action", proposal_id)):
            error = self._check_proposal(caller, proposal_id)
            if error is None and (not new_target or new_target == NULL_ADDRESS):
                error = ValidationError(f"Invalid upgrade target: {new_target!r}")
            if error is not None:
                return self._reject("request_upgrade", error)

            request = UpgradeRequest(
                proposal_id=proposal_id,
                new_target=new_target,
                requested_at=self._clock(),
            )
            self._actions[proposal_id] = request

        logger.info(f"Upgrade requested by proposal {proposal_id}: {new_target}")
        return OperationResult.success(request)

    def get_parameter(self, name: str, default: Optional[int] = None) -> Optional[int]:
        change = self._parameters.get(name)
        return change.value if change else default

    def get_action(self, proposal_id: int) -> Optional[Action]:
        return self._actions.get(proposal_id)

    def get_upgrade_requests(self) -> List[UpgradeRequest]:
        return [a for a in self._actions.values() if isinstance(a, UpgradeRequest)]

    def _check_proposal(self, caller: str, proposal_id: int) -> Optional[GovernanceError]:
        if not self.config.is_governance_authority(caller):
            return AuthorizationError("Only the governance authority can apply proposal actions")
        if not isinstance(proposal_id, int) or proposal_id <= 0:
            return ValidationError(f"Invalid proposal id: {proposal_id!r}")

        proposal = self._governance.get_proposal(proposal_id)
        if proposal is None:
            return NotFoundError(f"Proposal not found: {proposal_id}")
        if not proposal.executed:
            return InvalidStateError(f"Proposal {proposal_id} has not been executed")
        if proposal_id in self._actions:
            return InvalidStateError(f"Proposal {proposal_id} already applied an action")
        return None

    @staticmethod
    def _reject(operation: str, error: GovernanceError) -> OperationResult:
        logger.warning(f"Proposal action {operation} rejected: {error}")
        return OperationResult.failure(error)
