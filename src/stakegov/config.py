"""
stakegov/config.py

Configuration constants and data classes for stakegov.
"""

from dataclasses import dataclass
from typing import Dict, Optional


# Role identities (replace with the deployment's actual addresses)
GOVERNANCE_AUTHORITY = "0x123"
TREASURY_MANAGER = "0x456"

# Address that may never be the target of an upgrade
NULL_ADDRESS = "0x0"

# Quorum as a percentage of total stake, by proposal class (0 = least severe)
QUORUM_PERCENT: Dict[int, int] = {
    0: 10,
    1: 30,
    2: 50,
}

# Only the most severe class accepts veto votes
VETO_PROPOSAL_CLASS = 2

# Reputation and weights are fixed-point with this scale
FIXED_POINT_SCALE = 100

# Minimum amount a delegator may delegate to a validator
MIN_DELEGATION_STAKE = 1000

# Ledger integer widths
U64_MAX = 2 ** 64 - 1
U128_MAX = 2 ** 128 - 1


@dataclass
class GovernanceConfig:
    """Roles and policy switches shared by the governance and treasury controllers."""
    governance_authority: str = GOVERNANCE_AUTHORITY
    treasury_manager: str = TREASURY_MANAGER
    treasury_account: Optional[str] = None    # Defaults to governance_authority
    min_delegation_stake: int = MIN_DELEGATION_STAKE
    one_vote_per_voter: bool = False          # Reject repeat votes on a proposal

    def __post_init__(self):
        if self.treasury_account is None:
            self.treasury_account = self.governance_authority

    def is_governance_authority(self, actor: str) -> bool:
        """Check if actor holds the governance authority role."""
        return actor == self.governance_authority

    def is_treasury_manager(self, actor: str) -> bool:
        """Check if actor holds the treasury manager role."""
        return actor == self.treasury_manager
