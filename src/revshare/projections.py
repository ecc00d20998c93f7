"""
revshare/projections.py

Read-only views over the ledger for dashboards and the admin API.

Nothing here is stored or cached: every view is recomputed from the
ledger records, so it can never drift from the state the engine acts on.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

from .errors import DistributionNotFoundError
from .ledger.base import DistributionLedger
from .models import DistributionStatus, TransferStatus

logger = logging.getLogger("revshare.projections")

# Distributions shown on the admin overview by default
DEFAULT_OVERVIEW_LIMIT = 6


# ============================================================================
# DISTRIBUTION REPORT
# ============================================================================

@dataclass
class DistributionReport:
    """Collection and burn totals of one distribution."""
    distribution_id: str
    month: str
    status: str
    holder_allocation_amount: int
    holder_count: int
    collected_amount: int = 0
    collected_count: int = 0
    pending_amount: int = 0
    pending_count: int = 0
    failed_amount: int = 0
    failed_count: int = 0
    window_deadline: Optional[int] = None
    burn: Optional[dict] = None
    conserved: bool = True

    @property
    def uncollected_amount(self) -> int:
        return self.pending_amount + self.failed_amount

    @property
    def collection_rate(self) -> float:
        """Collected share of the holder allocation (0.0 - 1.0)."""
        if self.holder_allocation_amount == 0:
            return 0.0
        return self.collected_amount / self.holder_allocation_amount

    def to_dict(self) -> dict:
        result = asdict(self)
        result['uncollected_amount'] = self.uncollected_amount
        result['collection_rate'] = round(self.collection_rate, 4)
        return result


def distribution_report(ledger: DistributionLedger, distribution_id: str) -> DistributionReport:
    """
    Build the report of one distribution.

    ``conserved`` checks the accounting invariant for the current state:
    allocations sum to the holder allocation, and for a COMPLETE
    distribution collected plus burnt equals the holder allocation.

    Raises:
        DistributionNotFoundError: unknown id
    """
    distribution = ledger.get_distribution(distribution_id)
    if distribution is None:
        raise DistributionNotFoundError(distribution_id)

    report = DistributionReport(
        distribution_id=distribution.id,
        month=distribution.month,
        status=distribution.status.value,
        holder_allocation_amount=distribution.holder_allocation_amount,
        holder_count=distribution.holder_count,
        window_deadline=distribution.window_deadline,
    )

    for transfer in ledger.list_transfers(distribution_id):
        if transfer.status is TransferStatus.COMPLETED:
            report.collected_amount += transfer.amount
            report.collected_count += 1
        elif transfer.status is TransferStatus.FAILED:
            report.failed_amount += transfer.amount
            report.failed_count += 1
        else:
            report.pending_amount += transfer.amount
            report.pending_count += 1

    allocated = sum(a.amount for a in ledger.get_allocations(distribution_id))
    conserved = allocated == distribution.holder_allocation_amount

    burn = ledger.get_burn_record(distribution_id)
    if burn is not None:
        report.burn = burn.to_dict()

    if distribution.status is DistributionStatus.COMPLETE:
        burnt = burn.total_burnt if burn else 0
        conserved = conserved and (
            report.collected_amount + burnt == distribution.holder_allocation_amount
            and burnt == distribution.total_burnt
        )
    elif distribution.status is not DistributionStatus.PENDING:
        conserved = conserved and (
            report.collected_amount + report.uncollected_amount
            == distribution.holder_allocation_amount
        )

    if not conserved:
        logger.error(f"Accounting mismatch in distribution {distribution_id} ({distribution.month})")
    report.conserved = conserved
    return report


# ============================================================================
# WALLET VIEWS
# ============================================================================

@dataclass
class AvailableReward:
    """A reward the wallet can claim right now."""
    distribution_id: str
    month: str
    amount: int
    window_deadline: int
    seconds_remaining: int

    def to_dict(self) -> dict:
        return asdict(self)


def available_rewards(ledger: DistributionLedger, wallet_address: str, now: int) -> List[AvailableReward]:
    """PENDING transfers of a wallet in windows that are still open, soonest deadline first."""
    result = []
    for transfer in ledger.list_transfers_for_wallet(wallet_address):
        if transfer.status is not TransferStatus.PENDING:
            continue
        distribution = ledger.get_distribution(transfer.distribution_id)
        if distribution is None or not distribution.is_window_open(now):
            continue
        result.append(AvailableReward(
            distribution_id=distribution.id,
            month=distribution.month,
            amount=transfer.amount,
            window_deadline=distribution.window_deadline,
            seconds_remaining=distribution.window_deadline - now,
        ))
    result.sort(key=lambda r: r.window_deadline)
    return result


@dataclass
class WalletRewardEntry:
    """One distribution as seen by a wallet."""
    distribution_id: str
    month: str
    amount: int
    status: str                     # transfer status
    distribution_status: str
    tx_hash: Optional[str] = None
    completed_at: Optional[int] = None
    forfeited: bool = False         # burned at close


@dataclass
class WalletSummary:
    """Claim history and totals of a wallet."""
    wallet_address: str
    total_allocated: int = 0
    total_collected: int = 0
    total_forfeited: int = 0
    total_claimable: int = 0
    entries: List[WalletRewardEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def wallet_summary(ledger: DistributionLedger, wallet_address: str, now: int) -> WalletSummary:
    """Per-distribution claim history of a wallet, newest first."""
    summary = WalletSummary(wallet_address=wallet_address)

    for transfer in ledger.list_transfers_for_wallet(wallet_address):
        distribution = ledger.get_distribution(transfer.distribution_id)
        if distribution is None:
            continue

        forfeited = (
            transfer.status.is_uncollected
            and distribution.status in (DistributionStatus.CLOSED_BURNING, DistributionStatus.COMPLETE)
        )
        summary.entries.append(WalletRewardEntry(
            distribution_id=distribution.id,
            month=distribution.month,
            amount=transfer.amount,
            status=transfer.status.value,
            distribution_status=distribution.status.value,
            tx_hash=transfer.tx_hash,
            completed_at=transfer.completed_at,
            forfeited=forfeited,
        ))

        summary.total_allocated += transfer.amount
        if transfer.status is TransferStatus.COMPLETED:
            summary.total_collected += transfer.amount
        elif forfeited:
            summary.total_forfeited += transfer.amount
        elif transfer.status is TransferStatus.PENDING and distribution.is_window_open(now):
            summary.total_claimable += transfer.amount

    summary.entries.sort(key=lambda e: e.month, reverse=True)
    return summary


# ============================================================================
# ADMIN OVERVIEW
# ============================================================================

@dataclass
class HolderRow:
    """A holder of the latest distribution."""
    wallet_address: str
    user_handle: Optional[str]
    weight: int
    share_percent: float
    amount: int
    transfer_status: Optional[str]


@dataclass
class AdminOverview:
    """Recent distributions, lifetime totals and the latest holder list."""
    distribution_count: int
    status_counts: Dict[str, int]
    total_allocated: int
    total_burnt: int
    recent_distributions: List[dict] = field(default_factory=list)
    latest_month: Optional[str] = None
    holders: List[HolderRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def admin_overview(ledger: DistributionLedger, limit: int = DEFAULT_OVERVIEW_LIMIT) -> AdminOverview:
    """Summary for the admin dashboard."""
    distributions = ledger.list_distributions()

    status_counts = {status.value: 0 for status in DistributionStatus}
    for distribution in distributions:
        status_counts[distribution.status.value] += 1

    overview = AdminOverview(
        distribution_count=len(distributions),
        status_counts=status_counts,
        total_allocated=sum(d.holder_allocation_amount for d in distributions),
        total_burnt=sum(d.total_burnt for d in distributions),
        recent_distributions=[d.to_dict() for d in distributions[:limit]],
    )

    if distributions:
        latest = distributions[0]
        overview.latest_month = latest.month
        allocations = ledger.get_allocations(latest.id)
        total_weight = sum(a.weight for a in allocations)
        transfers = {t.wallet_address: t for t in ledger.list_transfers(latest.id)}
        for allocation in allocations:
            transfer = transfers.get(allocation.wallet_address)
            overview.holders.append(HolderRow(
                wallet_address=allocation.wallet_address,
                user_handle=allocation.user_handle,
                weight=allocation.weight,
                share_percent=round(allocation.weight * 100 / total_weight, 4) if total_weight else 0.0,
                amount=allocation.amount,
                transfer_status=transfer.status.value if transfer else None,
            ))

    return overview
