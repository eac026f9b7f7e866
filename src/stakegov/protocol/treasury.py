"""
stakegov/protocol/treasury.py

Approval-gated treasury withdrawals.

A withdrawal moves through:
- PENDING: submitted, fewer approvals than the threshold
- APPROVED: enough distinct approvers signed off, not yet executed
- EXECUTED: paid out exactly once (terminal)

Balances only ever grow by deposit/initialize and shrink by an executed
withdrawal, and never go below zero.

Usage:
    treasury = TreasuryController()
    await treasury.initialize(GOVERNANCE_AUTHORITY, 1_000_000)

    await treasury.submit_withdrawal_proposal("EAlice", 1, 500)
    await treasury.approve_withdrawal("ESigner1", 1, 500)
    await treasury.approve_withdrawal("ESigner2", 1, 500)

    result = await treasury.execute_withdrawal(TREASURY_MANAGER, 1, 2, "ERecipient")
"""

import logging
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..arithmetic import checked_add, checked_sub
from ..config import GovernanceConfig
from ..errors import (
    AlreadyInitializedError,
    AuthorizationError,
    DuplicateApprovalError,
    GovernanceError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    OperationResult,
    QuorumNotMetError,
    ValidationError,
)
from ..locks import KeyedLocks

logger = logging.getLogger("stakegov.protocol.treasury")


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class WithdrawalState(Enum):
    """Lifecycle state of a withdrawal request."""
    PENDING = "pending"
    APPROVED = "approved"
    EXECUTED = "executed"


@dataclass
class Balance:
    """Balance held by one account."""
    account: str
    value: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Approval:
    """One approver's sign-off on a withdrawal."""
    withdrawal_id: int
    amount: int
    approver: str
    timestamp: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Approval":
        return cls(**data)


@dataclass
class WithdrawalRequest:
    """A request to pay out treasury funds."""
    withdrawal_id: int
    proposer: str
    amount: int
    created_at: int = 0
    recipient: str = ""           # Bound at execution
    executed: bool = False
    executed_at: int = 0

    def state(self, approvals: int, required_approvals: int) -> WithdrawalState:
        """Lifecycle state given the approvals collected and the threshold."""
        if self.executed:
            return WithdrawalState.EXECUTED
        if approvals >= required_approvals:
            return WithdrawalState.APPROVED
        return WithdrawalState.PENDING

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "WithdrawalRequest":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# ============================================================================
# TREASURY REGISTRY
# ============================================================================

class TreasuryRegistry:
    """
    Keyed stores for the treasury.

    - balances: account -> Balance
    - withdrawals: withdrawal id -> WithdrawalRequest
    - approvals: append-only log keyed by (withdrawal id, approver)
    """

    def __init__(self):
        self._balances: Dict[str, Balance] = {}
        self._withdrawals: Dict[int, WithdrawalRequest] = {}
        self._approvals: Dict[Tuple[int, str], Approval] = {}

    # Balances

    def get_balance(self, account: str) -> Optional[Balance]:
        return self._balances.get(account)

    def has_balance(self, account: str) -> bool:
        return account in self._balances

    def credit(self, account: str, amount: int) -> Balance:
        """Create the balance record on first credit, otherwise increment it."""
        balance = self._balances.get(account)
        if balance is None:
            balance = Balance(account=account, value=checked_add(0, amount))
            self._balances[account] = balance
        else:
            balance.value = checked_add(balance.value, amount)
        return balance

    def debit(self, account: str, amount: int) -> Balance:
        balance = self._balances.get(account)
        if balance is None:
            raise InsufficientFundsError(f"No balance for {account}")
        balance.value = checked_sub(balance.value, amount)
        return balance

    # Withdrawals

    def get_withdrawal(self, withdrawal_id: int) -> Optional[WithdrawalRequest]:
        return self._withdrawals.get(withdrawal_id)

    def add_withdrawal(self, request: WithdrawalRequest) -> WithdrawalRequest:
        self._withdrawals[request.withdrawal_id] = request
        return request

    def list_withdrawals(self) -> List[WithdrawalRequest]:
        return list(self._withdrawals.values())

    # Approvals

    def has_approved(self, withdrawal_id: int, approver: str) -> bool:
        return (withdrawal_id, approver) in self._approvals

    def add_approval(self, approval: Approval) -> Approval:
        key = (approval.withdrawal_id, approval.approver)
        if key in self._approvals:
            raise DuplicateApprovalError(
                f"{approval.approver} already approved withdrawal {approval.withdrawal_id}"
            )
        self._approvals[key] = approval
        return approval

    def get_approvals(self, withdrawal_id: int) -> List[Approval]:
        return [a for (wid, _), a in self._approvals.items() if wid == withdrawal_id]

    def approval_count(self, withdrawal_id: int) -> int:
        """Number of distinct approvers for a withdrawal."""
        return sum(1 for (wid, _) in self._approvals if wid == withdrawal_id)


# ============================================================================
# TREASURY CONTROLLER
# ============================================================================

class TreasuryController:
    """
    Public treasury operations.

    Operations on the same withdrawal id or account serialize on that
    record's lock; each returns an OperationResult and a failed operation
    changes nothing.
    """

    def __init__(
        self,
        config: Optional[GovernanceConfig] = None,
        registry: Optional[TreasuryRegistry] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize TreasuryController.

        Args:
            config: Roles and the treasury account identity
            registry: Treasury store (a fresh one by default)
            clock: Returns the current Unix time
        """
        self.config = config or GovernanceConfig()
        self.registry = registry or TreasuryRegistry()
        self._clock = clock or (lambda: int(time.time()))
        self._locks = KeyedLocks()

    @property
    def treasury_account(self) -> str:
        return self.config.treasury_account

    # ========================================================================
    # BALANCES
    # ========================================================================

    async def initialize(self, caller: str, initial_balance: int) -> OperationResult:
        """
        Create the treasury balance (governance authority only, once).

        Returns:
            OperationResult with the treasury Balance
        """
        if not self.config.is_governance_authority(caller):
            return self._reject("initialize", AuthorizationError(
                "Only the governance authority can initialize the treasury"
            ))

        account = self.treasury_account
        async with self._locks.hold(("balance", account)):
            if self.registry.has_balance(account):
                return self._reject("initialize", AlreadyInitializedError(
                    "Treasury already initialized"
                ))
            if (not isinstance(initial_balance, int) or isinstance(initial_balance, bool)
                    or initial_balance < 0):
                return self._reject("initialize", ValidationError(
                    f"Initial balance must be a non-negative integer: {initial_balance!r}"
                ))

            balance = self.registry.credit(account, initial_balance)

        logger.info(f"Treasury {account} initialized with {initial_balance}")
        return OperationResult.success(balance)

    async def deposit(self, account: str, amount: int) -> OperationResult:
        """
        Deposit into an account, creating its balance on first deposit.

        Returns:
            OperationResult with the updated Balance
        """
        async with self._locks.hold(("balance", account)):
            if not _is_positive_int(amount):
                return self._reject("deposit", ValidationError(
                    f"Deposit amount must be positive: {amount!r}"
                ))

            balance = self.registry.credit(account, amount)

        logger.info(f"Deposited {amount} into {account} (balance={balance.value})")
        return OperationResult.success(balance)

    # ========================================================================
    # WITHDRAWALS
    # ========================================================================

    async def submit_withdrawal_proposal(
        self,
        proposer: str,
        withdrawal_id: int,
        amount: int,
    ) -> OperationResult:
        """
        Submit a pending withdrawal request.

        Returns:
            OperationResult with the WithdrawalRequest
        """
        async with self._locks.hold(("withdrawal", withdrawal_id)):
            if not _is_positive_int(amount):
                return self._reject("submit", ValidationError(
                    f"Withdrawal amount must be positive: {amount!r}"
                ))
            if self.registry.get_withdrawal(withdrawal_id) is not None:
                return self._reject("submit", InvalidStateError(
                    f"Withdrawal {withdrawal_id} already exists"
                ))

            request = self.registry.add_withdrawal(WithdrawalRequest(
                withdrawal_id=withdrawal_id,
                proposer=proposer,
                amount=amount,
                created_at=self._clock(),
            ))

        logger.info(f"Withdrawal {withdrawal_id} submitted by {proposer} for {amount}")
        return OperationResult.success(request)

    async def approve_withdrawal(
        self,
        approver: str,
        withdrawal_id: int,
        amount: int,
    ) -> OperationResult:
        """
        Record one approver's sign-off.

        Returns:
            OperationResult with the Approval
        """
        async with self._locks.hold(("withdrawal", withdrawal_id)):
            if not _is_positive_int(amount):
                return self._reject("approve", ValidationError(
                    f"Approval amount must be positive: {amount!r}"
                ))
            if self.registry.has_approved(withdrawal_id, approver):
                return self._reject("approve", DuplicateApprovalError(
                    f"{approver} already approved withdrawal {withdrawal_id}"
                ))
            request = self.registry.get_withdrawal(withdrawal_id)
            if request is not None and request.executed:
                return self._reject("approve", InvalidStateError(
                    f"Withdrawal {withdrawal_id} has already been executed"
                ))

            approval = self.registry.add_approval(Approval(
                withdrawal_id=withdrawal_id,
                amount=amount,
                approver=approver,
                timestamp=self._clock(),
            ))
            count = self.registry.approval_count(withdrawal_id)

        logger.info(f"Withdrawal {withdrawal_id} approved by {approver} ({count} approvals)")
        return OperationResult.success(approval)

    async def execute_withdrawal(
        self,
        caller: str,
        withdrawal_id: int,
        required_approvals: int,
        recipient: str,
    ) -> OperationResult:
        """
        Pay out an approved withdrawal (treasury manager only, once).

        Args:
            caller: Must be the treasury manager
            withdrawal_id: Withdrawal to execute
            required_approvals: Distinct approvals needed (at least 1)
            recipient: Account the payout is bound to

        Returns:
            OperationResult with the executed WithdrawalRequest
        """
        if not self.config.is_treasury_manager(caller):
            return self._reject("execute", AuthorizationError(
                "Only the treasury manager can execute withdrawals"
            ))

        account = self.treasury_account
        async with self._locks.hold(("withdrawal", withdrawal_id), ("balance", account)):
            if not _is_positive_int(required_approvals):
                return self._reject("execute", ValidationError(
                    "Required approvals must be greater than zero"
                ))
            if not recipient:
                return self._reject("execute", ValidationError("Recipient cannot be empty"))

            request = self.registry.get_withdrawal(withdrawal_id)
            if request is None:
                return self._reject("execute", NotFoundError(
                    f"Withdrawal not found: {withdrawal_id}"
                ))

            approvals = self.registry.approval_count(withdrawal_id)
            if approvals < required_approvals:
                return self._reject("execute", QuorumNotMetError(
                    f"Not enough approvals: {approvals} < {required_approvals}"
                ))
            if request.executed:
                return self._reject("execute", InvalidStateError(
                    f"Withdrawal {withdrawal_id} has already been executed"
                ))

            balance = self.registry.get_balance(account)
            available = balance.value if balance else 0
            if available < request.amount:
                return self._reject("execute", InsufficientFundsError(
                    f"Insufficient treasury balance: {available} < {request.amount}"
                ))

            self.registry.debit(account, request.amount)
            request.recipient = recipient
            request.executed = True
            request.executed_at = self._clock()

        logger.info(
            f"Executed withdrawal {withdrawal_id}: {request.amount} to {recipient} "
            f"({approvals} approvals)"
        )
        return OperationResult.success(request)

    # ========================================================================
    # QUERY METHODS
    # ========================================================================

    def get_balance(self, account: Optional[str] = None) -> int:
        """Balance of account (the treasury account by default), 0 if none."""
        balance = self.registry.get_balance(account or self.treasury_account)
        return balance.value if balance else 0

    def get_withdrawal(self, withdrawal_id: int) -> Optional[WithdrawalRequest]:
        return self.registry.get_withdrawal(withdrawal_id)

    def get_approvals(self, withdrawal_id: int) -> List[Approval]:
        return self.registry.get_approvals(withdrawal_id)

    def approval_count(self, withdrawal_id: int) -> int:
        return self.registry.approval_count(withdrawal_id)

    def get_withdrawal_state(
        self,
        withdrawal_id: int,
        required_approvals: int,
    ) -> Optional[WithdrawalState]:
        """Lifecycle state of a withdrawal against a given threshold."""
        request = self.registry.get_withdrawal(withdrawal_id)
        if request is None:
            return None
        return request.state(self.registry.approval_count(withdrawal_id), required_approvals)

    # ========================================================================
    # INTERNAL METHODS
    # ========================================================================

    @staticmethod
    def _reject(operation: str, error: GovernanceError) -> OperationResult:
        logger.warning(f"Treasury {operation} rejected: {error}")
        return OperationResult.failure(error)
