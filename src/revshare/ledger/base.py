"""
revshare/ledger/base.py

DistributionLedger: the durable record of distributions and their transfers.

Every state change is a single compare-and-set operation scoped to one
distribution or one transfer row. Operations that lose the compare-and-set
return None (or False) instead of raising; callers re-read and decide.
Implementations must be safe to call from many threads at once.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from ..models import (
    BurnRecord,
    BurnStatus,
    DistributionStatus,
    HolderAllocation,
    MonthlyRewardDistribution,
    RewardTransfer,
    TransferStatus,
)


class DistributionLedger(ABC):
    """Abstract base class for ledger stores."""

    # ========================================================================
    # DISTRIBUTIONS
    # ========================================================================

    @abstractmethod
    def create_distribution(
        self,
        distribution: MonthlyRewardDistribution,
        allocations: Sequence[HolderAllocation],
    ) -> MonthlyRewardDistribution:
        """
        Store a PENDING distribution together with its allocations.

        All-or-nothing: a failure leaves no partial rows behind.

        Raises:
            DuplicateDistributionError: a distribution exists for the month
        """
        pass

    @abstractmethod
    def get_distribution(self, distribution_id: str) -> Optional[MonthlyRewardDistribution]:
        """Get a distribution by id."""
        pass

    @abstractmethod
    def get_distribution_by_month(self, month: str) -> Optional[MonthlyRewardDistribution]:
        """Get the distribution for a YYYY-MM month."""
        pass

    @abstractmethod
    def list_distributions(
        self,
        status: Optional[DistributionStatus] = None,
        limit: Optional[int] = None,
    ) -> List[MonthlyRewardDistribution]:
        """List distributions, newest month first."""
        pass

    @abstractmethod
    def list_expired_open(self, now: int) -> List[MonthlyRewardDistribution]:
        """OPEN distributions whose deadline is at or before now."""
        pass

    @abstractmethod
    def list_stalled_closing(self, closed_before: int) -> List[MonthlyRewardDistribution]:
        """CLOSED_BURNING distributions that entered that state before the cutoff."""
        pass

    @abstractmethod
    def get_allocations(self, distribution_id: str) -> List[HolderAllocation]:
        """Allocations of a distribution, ordered by wallet address."""
        pass

    # ========================================================================
    # DISTRIBUTION TRANSITIONS
    # ========================================================================

    @abstractmethod
    def open_distribution(
        self,
        distribution_id: str,
        opened_at: int,
        deadline: int,
    ) -> Optional[MonthlyRewardDistribution]:
        """
        PENDING -> OPEN, creating one PENDING transfer per allocation.

        Returns:
            Updated distribution, or None if it was not PENDING
        """
        pass

    @abstractmethod
    def begin_close(
        self,
        distribution_id: str,
        closed_at: int,
    ) -> Optional[MonthlyRewardDistribution]:
        """
        OPEN -> CLOSED_BURNING. Exactly one concurrent caller wins.

        Returns:
            Updated distribution for the winner, None for everyone else
        """
        pass

    @abstractmethod
    def finalize_distribution(
        self,
        distribution_id: str,
        total_burnt: int,
        uncollected_count: int,
        completed_at: int,
    ) -> Optional[MonthlyRewardDistribution]:
        """
        CLOSED_BURNING -> COMPLETE, storing the burn totals.

        Returns:
            Updated distribution, or None if it was not CLOSED_BURNING
        """
        pass

    # ========================================================================
    # TRANSFERS
    # ========================================================================

    @abstractmethod
    def get_transfer(self, distribution_id: str, wallet_address: str) -> Optional[RewardTransfer]:
        """Get the transfer for (distribution, wallet)."""
        pass

    @abstractmethod
    def list_transfers(
        self,
        distribution_id: str,
        status: Optional[TransferStatus] = None,
    ) -> List[RewardTransfer]:
        """Transfers of a distribution, ordered by wallet address."""
        pass

    @abstractmethod
    def list_transfers_for_wallet(self, wallet_address: str) -> List[RewardTransfer]:
        """All transfers of a wallet, newest first."""
        pass

    @abstractmethod
    def begin_attempt(
        self,
        transfer_id: str,
        now: int,
        lease_until: int,
    ) -> Optional[RewardTransfer]:
        """
        Take the broadcast lease and count one attempt.

        Succeeds only if the transfer is PENDING and unleased (or its lease
        expired) and its distribution is OPEN with now < deadline.

        Returns:
            Updated transfer, or None if any condition failed
        """
        pass

    @abstractmethod
    def complete_transfer(
        self,
        transfer_id: str,
        tx_hash: str,
        completed_at: int,
    ) -> Optional[RewardTransfer]:
        """
        PENDING or FAILED -> COMPLETED, only while the distribution is
        still OPEN.

        A broadcast tx hash is proof of payment, so a transfer exhausted by
        a later claim while an earlier broadcast was in flight still
        completes.

        Returns:
            Updated transfer, or None if refused
        """
        pass

    @abstractmethod
    def record_failure(
        self,
        transfer_id: str,
        error: str,
        max_attempts: int,
    ) -> Optional[RewardTransfer]:
        """
        Release the lease after a failed broadcast.

        Marks the transfer FAILED once attempts >= max_attempts.

        Returns:
            Updated transfer, or None if it was not PENDING
        """
        pass

    @abstractmethod
    def uncollected_totals(self, distribution_id: str) -> Tuple[int, int]:
        """(sum of amounts, count) of PENDING and FAILED transfers."""
        pass

    # ========================================================================
    # BURN RECORDS
    # ========================================================================

    @abstractmethod
    def insert_burn_record(self, record: BurnRecord) -> bool:
        """
        Insert the burn record of a distribution.

        Returns:
            True if inserted, False if one already existed
        """
        pass

    @abstractmethod
    def get_burn_record(self, distribution_id: str) -> Optional[BurnRecord]:
        """Get the burn record of a distribution."""
        pass

    @abstractmethod
    def update_burn_record(
        self,
        distribution_id: str,
        burn_status: BurnStatus,
        burn_tx_ref: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[BurnRecord]:
        """Update the external burn outcome. Returns None if no record exists."""
        pass

    def close(self) -> None:
        """Release underlying resources."""
        pass
