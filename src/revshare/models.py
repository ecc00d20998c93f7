"""
revshare/models.py

Ledger entities and status enums.

All amounts are integers in the reward token's smallest unit, all
timestamps are integer Unix seconds (UTC).

Entities:
- MonthlyRewardDistribution: one month's distribution and its window
- HolderAllocation: immutable per-wallet share, fixed at calculation time
- RewardTransfer: mutable execution record for one allocation
- BurnRecord: the single burn accounting entry of a closed distribution
"""

import time
import uuid
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, FrozenSet, Optional


def new_id() -> str:
    """Generate an opaque record identifier."""
    return uuid.uuid4().hex


def unix_now() -> int:
    """Current time in whole Unix seconds. Default clock of every component."""
    return int(time.time())


# ============================================================================
# STATUS ENUMS
# ============================================================================

class DistributionStatus(Enum):
    """Lifecycle of a monthly distribution. Only ever moves forward."""
    PENDING = "pending"                  # Calculated, window not opened
    OPEN = "open"                        # Collection window running
    CLOSED_BURNING = "closed_burning"    # Window closed, burn in progress
    COMPLETE = "complete"                # Burn recorded, terminal

    def can_transition_to(self, target: "DistributionStatus") -> bool:
        """Check the transition table."""
        return target in _DISTRIBUTION_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return self is DistributionStatus.COMPLETE


_DISTRIBUTION_TRANSITIONS: Dict[DistributionStatus, FrozenSet[DistributionStatus]] = {
    DistributionStatus.PENDING: frozenset({DistributionStatus.OPEN}),
    DistributionStatus.OPEN: frozenset({DistributionStatus.CLOSED_BURNING}),
    DistributionStatus.CLOSED_BURNING: frozenset({DistributionStatus.COMPLETE}),
    DistributionStatus.COMPLETE: frozenset(),
}


class TransferStatus(Enum):
    """State of a single holder payment."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_uncollected(self) -> bool:
        """PENDING and FAILED transfers are burned at close."""
        return self is not TransferStatus.COMPLETED


class BurnStatus(Enum):
    """State of the external burn transaction."""
    PENDING = "pending"              # Record written, burn not yet executed
    EXECUTED = "executed"            # Burn tx broadcast
    FAILED = "failed"                # Burn tx failed, needs reconciliation
    NOT_REQUIRED = "not_required"    # Nothing left to burn


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class Holding:
    """One wallet's eligible holdings from a snapshot."""
    wallet_address: str
    weight: int
    user_handle: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Holding":
        return cls(
            wallet_address=data['wallet_address'],
            weight=data['weight'],
            user_handle=data.get('user_handle'),
        )


@dataclass
class MonthlyRewardDistribution:
    """A month's reward distribution."""
    id: str
    month: str                              # YYYY-MM
    revenue_amount: int
    holder_allocation_amount: int
    holder_count: int = 0
    status: DistributionStatus = DistributionStatus.PENDING
    created_at: int = field(default_factory=lambda: int(time.time()))
    window_opened_at: Optional[int] = None
    window_deadline: Optional[int] = None
    closed_at: Optional[int] = None
    completed_at: Optional[int] = None
    total_burnt: int = 0
    uncollected_count: int = 0

    def is_window_open(self, now: int) -> bool:
        """True while claims are accepted."""
        return (
            self.status is DistributionStatus.OPEN
            and self.window_deadline is not None
            and now < self.window_deadline
        )

    def is_expired(self, now: int) -> bool:
        """True once an OPEN window has reached its deadline."""
        return (
            self.status is DistributionStatus.OPEN
            and self.window_deadline is not None
            and now >= self.window_deadline
        )

    def to_dict(self) -> dict:
        result = asdict(self)
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "MonthlyRewardDistribution":
        data = dict(data)
        data['status'] = DistributionStatus(data['status'])
        return cls(**data)


@dataclass(frozen=True)
class HolderAllocation:
    """Immutable share of one wallet in a distribution."""
    distribution_id: str
    wallet_address: str
    weight: int
    amount: int
    user_handle: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RewardTransfer:
    """Execution record for paying one allocation."""
    id: str
    distribution_id: str
    wallet_address: str
    amount: int
    status: TransferStatus = TransferStatus.PENDING
    tx_hash: Optional[str] = None
    attempts: int = 0
    created_at: int = field(default_factory=lambda: int(time.time()))
    completed_at: Optional[int] = None
    last_error: Optional[str] = None
    lease_expires_at: Optional[int] = None

    def is_leased(self, now: int) -> bool:
        """True while another claim holds the broadcast lease."""
        return self.lease_expires_at is not None and now < self.lease_expires_at

    def to_dict(self) -> dict:
        result = asdict(self)
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "RewardTransfer":
        data = dict(data)
        data['status'] = TransferStatus(data['status'])
        return cls(**data)


@dataclass
class BurnRecord:
    """Burn accounting for a closed distribution."""
    distribution_id: str
    total_burnt: int
    uncollected_count: int
    burn_status: BurnStatus = BurnStatus.PENDING
    burn_tx_ref: Optional[str] = None
    error: Optional[str] = None
    executed_at: int = field(default_factory=lambda: int(time.time()))

    @property
    def needs_reconciliation(self) -> bool:
        return self.burn_status in (BurnStatus.PENDING, BurnStatus.FAILED)

    def to_dict(self) -> dict:
        result = asdict(self)
        result['burn_status'] = self.burn_status.value
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "BurnRecord":
        data = dict(data)
        data['burn_status'] = BurnStatus(data['burn_status'])
        return cls(**data)


@dataclass
class TransferResult:
    """Outcome returned to a claiming holder."""
    distribution_id: str
    wallet_address: str
    amount: int
    status: TransferStatus
    tx_hash: Optional[str]
    attempts: int
    completed_at: Optional[int] = None
    already_completed: bool = False   # True when served from the stored record

    @classmethod
    def from_transfer(
        cls,
        transfer: RewardTransfer,
        already_completed: bool = False,
    ) -> "TransferResult":
        return cls(
            distribution_id=transfer.distribution_id,
            wallet_address=transfer.wallet_address,
            amount=transfer.amount,
            status=transfer.status,
            tx_hash=transfer.tx_hash,
            attempts=transfer.attempts,
            completed_at=transfer.completed_at,
            already_completed=already_completed,
        )

    def to_dict(self) -> dict:
        result = asdict(self)
        result['status'] = self.status.value
        return result
