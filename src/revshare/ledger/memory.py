"""
revshare/ledger/memory.py

In-memory ledger for development, tests and single-process deployments.

One re-entrant lock guards every operation, which makes each method a
single atomic compare-and-set. Records are copied in and out so callers
never share mutable state with the store.
"""

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import DuplicateDistributionError
from ..models import (
    BurnRecord,
    BurnStatus,
    DistributionStatus,
    HolderAllocation,
    MonthlyRewardDistribution,
    RewardTransfer,
    TransferStatus,
    new_id,
)
from .base import DistributionLedger

logger = logging.getLogger("revshare.ledger.memory")


class MemoryLedger(DistributionLedger):
    """Thread-safe in-memory DistributionLedger."""

    def __init__(self):
        self._lock = threading.RLock()
        self._distributions: Dict[str, MonthlyRewardDistribution] = {}
        self._month_index: Dict[str, str] = {}                       # month -> distribution_id
        self._allocations: Dict[str, List[HolderAllocation]] = {}    # distribution_id -> allocations
        self._transfers: Dict[str, RewardTransfer] = {}              # transfer_id -> transfer
        self._transfer_index: Dict[Tuple[str, str], str] = {}        # (distribution_id, wallet) -> transfer_id
        self._burns: Dict[str, BurnRecord] = {}                      # distribution_id -> record

    # ========================================================================
    # DISTRIBUTIONS
    # ========================================================================

    def create_distribution(
        self,
        distribution: MonthlyRewardDistribution,
        allocations: Sequence[HolderAllocation],
    ) -> MonthlyRewardDistribution:
        with self._lock:
            existing = self._month_index.get(distribution.month)
            if existing is not None:
                raise DuplicateDistributionError(distribution.month, existing_id=existing)
            stored = replace(distribution)
            self._distributions[stored.id] = stored
            self._month_index[stored.month] = stored.id
            self._allocations[stored.id] = sorted(allocations, key=lambda a: a.wallet_address)
            logger.debug(f"Stored {stored.month} ({stored.id}) with {len(allocations)} allocations")
            return replace(stored)

    def get_distribution(self, distribution_id: str) -> Optional[MonthlyRewardDistribution]:
        with self._lock:
            distribution = self._distributions.get(distribution_id)
            return replace(distribution) if distribution else None

    def get_distribution_by_month(self, month: str) -> Optional[MonthlyRewardDistribution]:
        with self._lock:
            distribution_id = self._month_index.get(month)
            if distribution_id is None:
                return None
            return replace(self._distributions[distribution_id])

    def list_distributions(
        self,
        status: Optional[DistributionStatus] = None,
        limit: Optional[int] = None,
    ) -> List[MonthlyRewardDistribution]:
        with self._lock:
            result = [
                replace(d) for d in self._distributions.values()
                if status is None or d.status is status
            ]
        result.sort(key=lambda d: d.month, reverse=True)
        return result[:limit] if limit is not None else result

    def list_expired_open(self, now: int) -> List[MonthlyRewardDistribution]:
        with self._lock:
            result = [replace(d) for d in self._distributions.values() if d.is_expired(now)]
        result.sort(key=lambda d: d.window_deadline)
        return result

    def list_stalled_closing(self, closed_before: int) -> List[MonthlyRewardDistribution]:
        with self._lock:
            result = [
                replace(d) for d in self._distributions.values()
                if d.status is DistributionStatus.CLOSED_BURNING
                and d.closed_at is not None
                and d.closed_at <= closed_before
            ]
        result.sort(key=lambda d: d.closed_at)
        return result

    def get_allocations(self, distribution_id: str) -> List[HolderAllocation]:
        with self._lock:
            return list(self._allocations.get(distribution_id, []))

    # ========================================================================
    # DISTRIBUTION TRANSITIONS
    # ========================================================================

    def _transition(
        self,
        distribution_id: str,
        expected: DistributionStatus,
        target: DistributionStatus,
        **changes,
    ) -> Optional[MonthlyRewardDistribution]:
        """Compare-and-set on a distribution's status. Caller holds the lock."""
        distribution = self._distributions.get(distribution_id)
        if distribution is None or distribution.status is not expected:
            return None
        if not expected.can_transition_to(target):
            return None
        updated = replace(distribution, status=target, **changes)
        self._distributions[distribution_id] = updated
        return replace(updated)

    def open_distribution(
        self,
        distribution_id: str,
        opened_at: int,
        deadline: int,
    ) -> Optional[MonthlyRewardDistribution]:
        with self._lock:
            updated = self._transition(
                distribution_id,
                DistributionStatus.PENDING,
                DistributionStatus.OPEN,
                window_opened_at=opened_at,
                window_deadline=deadline,
            )
            if updated is None:
                return None

            for allocation in self._allocations.get(distribution_id, []):
                transfer = RewardTransfer(
                    id=new_id(),
                    distribution_id=distribution_id,
                    wallet_address=allocation.wallet_address,
                    amount=allocation.amount,
                    created_at=opened_at,
                )
                self._transfers[transfer.id] = transfer
                self._transfer_index[(distribution_id, allocation.wallet_address)] = transfer.id
            return updated

    def begin_close(
        self,
        distribution_id: str,
        closed_at: int,
    ) -> Optional[MonthlyRewardDistribution]:
        with self._lock:
            return self._transition(
                distribution_id,
                DistributionStatus.OPEN,
                DistributionStatus.CLOSED_BURNING,
                closed_at=closed_at,
            )

    def finalize_distribution(
        self,
        distribution_id: str,
        total_burnt: int,
        uncollected_count: int,
        completed_at: int,
    ) -> Optional[MonthlyRewardDistribution]:
        with self._lock:
            return self._transition(
                distribution_id,
                DistributionStatus.CLOSED_BURNING,
                DistributionStatus.COMPLETE,
                total_burnt=total_burnt,
                uncollected_count=uncollected_count,
                completed_at=completed_at,
            )

    # ========================================================================
    # TRANSFERS
    # ========================================================================

    def get_transfer(self, distribution_id: str, wallet_address: str) -> Optional[RewardTransfer]:
        with self._lock:
            transfer_id = self._transfer_index.get((distribution_id, wallet_address))
            if transfer_id is None:
                return None
            return replace(self._transfers[transfer_id])

    def list_transfers(
        self,
        distribution_id: str,
        status: Optional[TransferStatus] = None,
    ) -> List[RewardTransfer]:
        with self._lock:
            result = [
                replace(t) for t in self._transfers.values()
                if t.distribution_id == distribution_id
                and (status is None or t.status is status)
            ]
        result.sort(key=lambda t: t.wallet_address)
        return result

    def list_transfers_for_wallet(self, wallet_address: str) -> List[RewardTransfer]:
        with self._lock:
            result = [replace(t) for t in self._transfers.values() if t.wallet_address == wallet_address]
        result.sort(key=lambda t: t.created_at, reverse=True)
        return result

    def begin_attempt(
        self,
        transfer_id: str,
        now: int,
        lease_until: int,
    ) -> Optional[RewardTransfer]:
        with self._lock:
            transfer = self._transfers.get(transfer_id)
            if transfer is None or transfer.status is not TransferStatus.PENDING:
                return None
            if transfer.is_leased(now):
                return None
            distribution = self._distributions.get(transfer.distribution_id)
            if distribution is None or not distribution.is_window_open(now):
                return None

            updated = replace(
                transfer,
                attempts=transfer.attempts + 1,
                lease_expires_at=lease_until,
            )
            self._transfers[transfer_id] = updated
            return replace(updated)

    def complete_transfer(
        self,
        transfer_id: str,
        tx_hash: str,
        completed_at: int,
    ) -> Optional[RewardTransfer]:
        with self._lock:
            transfer = self._transfers.get(transfer_id)
            if transfer is None or transfer.status is TransferStatus.COMPLETED:
                return None
            distribution = self._distributions.get(transfer.distribution_id)
            if distribution is None or distribution.status is not DistributionStatus.OPEN:
                return None

            updated = replace(
                transfer,
                status=TransferStatus.COMPLETED,
                tx_hash=tx_hash,
                completed_at=completed_at,
                lease_expires_at=None,
                last_error=None,
            )
            self._transfers[transfer_id] = updated
            return replace(updated)

    def record_failure(
        self,
        transfer_id: str,
        error: str,
        max_attempts: int,
    ) -> Optional[RewardTransfer]:
        with self._lock:
            transfer = self._transfers.get(transfer_id)
            if transfer is None or transfer.status is not TransferStatus.PENDING:
                return None

            status = TransferStatus.FAILED if transfer.attempts >= max_attempts else TransferStatus.PENDING
            updated = replace(
                transfer,
                status=status,
                last_error=error,
                lease_expires_at=None,
            )
            self._transfers[transfer_id] = updated
            return replace(updated)

    def uncollected_totals(self, distribution_id: str) -> Tuple[int, int]:
        with self._lock:
            uncollected = [
                t.amount for t in self._transfers.values()
                if t.distribution_id == distribution_id and t.status.is_uncollected
            ]
        return sum(uncollected), len(uncollected)

    # ========================================================================
    # BURN RECORDS
    # ========================================================================

    def insert_burn_record(self, record: BurnRecord) -> bool:
        with self._lock:
            if record.distribution_id in self._burns:
                return False
            self._burns[record.distribution_id] = replace(record)
            return True

    def get_burn_record(self, distribution_id: str) -> Optional[BurnRecord]:
        with self._lock:
            record = self._burns.get(distribution_id)
            return replace(record) if record else None

    def update_burn_record(
        self,
        distribution_id: str,
        burn_status: BurnStatus,
        burn_tx_ref: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[BurnRecord]:
        with self._lock:
            record = self._burns.get(distribution_id)
            if record is None:
                return None
            updated = replace(
                record,
                burn_status=burn_status,
                burn_tx_ref=burn_tx_ref if burn_tx_ref is not None else record.burn_tx_ref,
                error=error,
            )
            self._burns[distribution_id] = updated
            return replace(updated)

    def get_stats(self) -> dict:
        """Get store statistics."""
        with self._lock:
            return {
                'distributions': len(self._distributions),
                'transfers': len(self._transfers),
                'burn_records': len(self._burns),
            }
