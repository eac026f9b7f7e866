"""
Tests for stakegov/protocol/staking.py

Tests the in-memory stake directory and its validator bookkeeping.
"""

import pytest
import trio

from stakegov.arithmetic import LedgerArithmeticError
from stakegov.config import GovernanceConfig, GOVERNANCE_AUTHORITY
from stakegov.errors import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from stakegov.protocol.staking import InMemoryStakeDirectory, StakeDirectory, Voter


# ============================================================================
# TEST DATA
# ============================================================================

FIXED_TIME = 1700000000


def create_test_directory(**voters) -> InMemoryStakeDirectory:
    """Create a directory with voters given as address=(stake, reputation)."""
    directory = InMemoryStakeDirectory(clock=lambda: FIXED_TIME)
    for address, (stake, reputation) in voters.items():
        directory.register_validator(address, stake, reputation)
    return directory


# ============================================================================
# VOTER TESTS
# ============================================================================

class TestVoter:
    """Tests for the Voter dataclass."""

    def test_voter_to_dict(self):
        """Test voter serialization."""
        voter = Voter(address="EAlice", stake=1000, reputation=50)
        data = voter.to_dict()
        assert data["address"] == "EAlice"
        assert data["stake"] == 1000
        assert data["delegate"] is None
        assert data["delegated_amount"] == 0

    def test_voter_from_dict(self):
        """Test voter deserialization with missing optional fields."""
        voter = Voter.from_dict({"address": "EBob", "stake": "2000", "delegate": "EVal"})
        assert voter.stake == 2000
        assert voter.reputation == 0
        assert voter.delegate == "EVal"

    def test_effective_address(self):
        """Test one level of delegation for attribution."""
        assert Voter(address="EAlice", stake=1).effective_address == "EAlice"
        assert Voter(address="EAlice", stake=1, delegate="EVal").effective_address == "EVal"


# ============================================================================
# DIRECTORY READ TESTS
# ============================================================================

class TestDirectoryReads:
    """Tests for registration and reads."""

    def test_is_stake_directory(self):
        """Test the in-memory directory implements the interface."""
        assert isinstance(InMemoryStakeDirectory(), StakeDirectory)

    def test_register_and_get(self):
        """Test registering a voter."""
        directory = create_test_directory(EAlice=(1000, 50))
        voter = directory.get_voter("EAlice")
        assert voter.stake == 1000
        assert voter.reputation == 50
        assert directory.get_voter("EUnknown") is None

    def test_total_stake(self):
        """Test total stake sums every voter."""
        directory = create_test_directory(EAlice=(1000, 0), EBob=(9000, 0))
        assert directory.total_stake() == 10000

    def test_total_stake_empty(self):
        """Test an empty directory has zero stake."""
        assert InMemoryStakeDirectory().total_stake() == 0

    def test_register_duplicate(self):
        """Test an address can only register once."""
        directory = create_test_directory(EAlice=(1000, 0))
        with pytest.raises(ValidationError):
            directory.register_validator("EAlice", 5)

    def test_register_invalid(self):
        """Test empty address and negative amounts are refused."""
        directory = InMemoryStakeDirectory()
        with pytest.raises(ValidationError):
            directory.register_validator("", 5)
        with pytest.raises(ValidationError):
            directory.register_validator("EAlice", -1)


# ============================================================================
# DELEGATION TESTS
# ============================================================================

class TestDelegateStake:
    """Tests for delegate_stake."""

    @pytest.mark.trio
    async def test_delegate_stake(self):
        """Test delegating sets the delegate and credits the validator."""
        directory = create_test_directory(EChild=(5000, 0), EValidator=(10000, 0))

        result = await directory.delegate_stake("EChild", "EValidator", 2000)

        assert result.ok is True
        assert directory.get_voter("EChild").delegate == "EValidator"
        assert directory.get_voter("EValidator").delegated_stake == 2000
        assert [v.address for v in directory.get_delegators("EValidator")] == ["EChild"]
        # Own stake is untouched; total stake does not double count
        assert directory.get_voter("EChild").stake == 5000
        assert directory.total_stake() == 15000

    @pytest.mark.trio
    async def test_below_minimum(self):
        """Test amounts below the minimum are refused."""
        directory = create_test_directory(EChild=(5000, 0), EValidator=(10000, 0))
        result = await directory.delegate_stake("EChild", "EValidator", 999)
        assert isinstance(result.error, ValidationError)
        assert directory.get_voter("EChild").delegate is None

    @pytest.mark.trio
    async def test_custom_minimum(self):
        """Test the minimum comes from configuration."""
        directory = InMemoryStakeDirectory(config=GovernanceConfig(min_delegation_stake=10))
        directory.register_validator("EChild", 50)
        directory.register_validator("EValidator", 50)
        result = await directory.delegate_stake("EChild", "EValidator", 10)
        assert result.ok is True

    @pytest.mark.trio
    async def test_self_delegation(self):
        """Test delegating to yourself is refused."""
        directory = create_test_directory(EChild=(5000, 0))
        result = await directory.delegate_stake("EChild", "EChild", 1000)
        assert isinstance(result.error, ValidationError)

    @pytest.mark.trio
    async def test_unknown_validator(self):
        """Test delegating to an unregistered validator."""
        directory = create_test_directory(EChild=(5000, 0))
        result = await directory.delegate_stake("EChild", "EGhost", 1000)
        assert isinstance(result.error, NotFoundError)

    @pytest.mark.trio
    async def test_unknown_delegator(self):
        """Test an unregistered delegator."""
        directory = create_test_directory(EValidator=(5000, 0))
        result = await directory.delegate_stake("EGhost", "EValidator", 1000)
        assert isinstance(result.error, NotFoundError)

    @pytest.mark.trio
    async def test_more_than_stake(self):
        """Test delegating more than you hold."""
        directory = create_test_directory(EChild=(1500, 0), EValidator=(5000, 0))
        result = await directory.delegate_stake("EChild", "EValidator", 2000)
        assert isinstance(result.error, InsufficientFundsError)
        assert directory.get_voter("EValidator").delegated_stake == 0

    @pytest.mark.trio
    async def test_redelegate_same_validator(self):
        """Test delegating again replaces the earlier amount instead of stacking."""
        directory = create_test_directory(EChild=(1000, 0), EValidator=(5000, 0))

        for _ in range(5):
            result = await directory.delegate_stake("EChild", "EValidator", 1000)
            assert result.ok is True

        assert directory.get_voter("EValidator").delegated_stake == 1000
        assert directory.get_voter("EChild").delegated_amount == 1000

    @pytest.mark.trio
    async def test_redelegate_to_other_validator(self):
        """Test moving a delegation withdraws it from the previous validator."""
        directory = create_test_directory(
            EChild=(3000, 0), EFirst=(5000, 0), ESecond=(5000, 0),
        )
        await directory.delegate_stake("EChild", "EFirst", 3000)

        result = await directory.delegate_stake("EChild", "ESecond", 2000)

        assert result.ok is True
        assert directory.get_voter("EChild").delegate == "ESecond"
        assert directory.get_voter("EFirst").delegated_stake == 0
        assert directory.get_voter("ESecond").delegated_stake == 2000
        assert directory.get_delegators("EFirst") == []

    @pytest.mark.trio
    async def test_delegated_stake_backed_by_delegators(self):
        """Test total delegated stake never exceeds what delegators hold."""
        directory = create_test_directory(
            EA=(1000, 0), EB=(2000, 0), EFirst=(5000, 0), ESecond=(5000, 0),
        )
        for validator in ("EFirst", "ESecond", "EFirst", "ESecond"):
            await directory.delegate_stake("EA", validator, 1000)
            await directory.delegate_stake("EB", validator, 2000)

        delegated = sum(directory.get_voter(v).delegated_stake for v in ("EFirst", "ESecond"))
        assert delegated == 3000
        assert directory.get_voter("ESecond").delegated_stake == 3000

    @pytest.mark.trio
    async def test_failed_redelegation_keeps_previous(self):
        """Test a refused redelegation leaves the existing delegation in place."""
        directory = create_test_directory(EChild=(1500, 0), EFirst=(5000, 0), ESecond=(5000, 0))
        await directory.delegate_stake("EChild", "EFirst", 1500)

        result = await directory.delegate_stake("EChild", "ESecond", 2000)

        assert isinstance(result.error, InsufficientFundsError)
        assert directory.get_voter("EChild").delegate == "EFirst"
        assert directory.get_voter("EFirst").delegated_stake == 1500
        assert directory.get_voter("ESecond").delegated_stake == 0

    @pytest.mark.trio
    async def test_concurrent_redelegations(self):
        """Test racing redelegations leave exactly one delegation in place."""
        directory = create_test_directory(EChild=(1000, 0), EFirst=(5000, 0), ESecond=(5000, 0))

        async with trio.open_nursery() as nursery:
            for _ in range(10):
                nursery.start_soon(directory.delegate_stake, "EChild", "EFirst", 1000)
                nursery.start_soon(directory.delegate_stake, "EChild", "ESecond", 1000)

        first = directory.get_voter("EFirst").delegated_stake
        second = directory.get_voter("ESecond").delegated_stake
        assert first + second == 1000
        assert directory.get_voter(directory.get_voter("EChild").delegate).delegated_stake == 1000


# ============================================================================
# REPUTATION AND HEARTBEAT TESTS
# ============================================================================

class TestReputationAndHeartbeat:
    """Tests for update_reputation and record_heartbeat."""

    @pytest.mark.trio
    async def test_update_reputation(self):
        """Test positive then negative reputation changes."""
        directory = create_test_directory(EValidator=(1000, 100))

        result = await directory.update_reputation(GOVERNANCE_AUTHORITY, "EValidator", 10)
        assert result.value == 110

        result = await directory.update_reputation(GOVERNANCE_AUTHORITY, "EValidator", -20)
        assert result.value == 90
        assert directory.get_voter("EValidator").reputation == 90

    @pytest.mark.trio
    async def test_update_reputation_unauthorized(self):
        """Test only the governance authority may change reputation."""
        directory = create_test_directory(EValidator=(1000, 100))
        result = await directory.update_reputation("EMallory", "EValidator", 1000)
        assert isinstance(result.error, AuthorizationError)
        assert directory.get_voter("EValidator").reputation == 100

    @pytest.mark.trio
    async def test_update_reputation_unknown(self):
        """Test updating an unknown validator."""
        directory = InMemoryStakeDirectory()
        result = await directory.update_reputation(GOVERNANCE_AUTHORITY, "EGhost", 1)
        assert isinstance(result.error, NotFoundError)

    @pytest.mark.trio
    async def test_update_reputation_underflow(self):
        """Test reputation can never go negative."""
        directory = create_test_directory(EValidator=(1000, 5))
        with pytest.raises(LedgerArithmeticError):
            await directory.update_reputation(GOVERNANCE_AUTHORITY, "EValidator", -6)
        assert directory.get_voter("EValidator").reputation == 5

    @pytest.mark.trio
    async def test_record_heartbeat(self):
        """Test a validator records its own heartbeat."""
        directory = create_test_directory(EValidator=(1000, 0))
        result = await directory.record_heartbeat("EValidator", "EValidator")
        assert result.ok is True
        assert directory.get_voter("EValidator").last_heartbeat == FIXED_TIME

    @pytest.mark.trio
    async def test_record_heartbeat_for_someone_else(self):
        """Test a heartbeat cannot be recorded for another validator."""
        directory = create_test_directory(EValidator=(1000, 0))
        result = await directory.record_heartbeat("EOther", "EValidator")
        assert isinstance(result.error, AuthorizationError)
        assert directory.get_voter("EValidator").last_heartbeat == 0

    @pytest.mark.trio
    async def test_record_heartbeat_unknown(self):
        """Test a heartbeat from an unregistered validator."""
        directory = InMemoryStakeDirectory()
        result = await directory.record_heartbeat("EGhost", "EGhost")
        assert isinstance(result.error, NotFoundError)
