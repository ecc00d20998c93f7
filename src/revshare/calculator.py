"""
revshare/calculator.py

Reward calculation: splits a month's holder allocation across wallets in
proportion to their weights, using integer arithmetic only.

Allocation uses the largest-remainder method:
1. Each wallet gets floor(total * weight / total_weight)
2. Leftover units go one at a time to the largest fractional remainders
3. Ties are broken by wallet address ascending

The result always sums to the total and is identical for identical input.
"""

import logging
import re
from typing import Callable, Dict, List, Mapping, Sequence, Tuple

from .config import BPS_DENOMINATOR, DEFAULT_HOLDER_SHARE_BPS
from .errors import InsufficientDataError, InvalidMonthError
from .ledger.base import DistributionLedger
from .models import (
    HolderAllocation,
    Holding,
    MonthlyRewardDistribution,
    new_id,
    unix_now,
)

logger = logging.getLogger("revshare.calculator")

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_month(month: str) -> str:
    """Return month unchanged if it is YYYY-MM, else raise InvalidMonthError."""
    if not isinstance(month, str) or not MONTH_PATTERN.match(month):
        raise InvalidMonthError(f"Invalid month {month!r}, expected YYYY-MM")
    return month


def allocate_largest_remainder(total: int, weights: Mapping[str, int]) -> Dict[str, int]:
    """
    Split total across keys proportionally to their weights.

    Args:
        total: Non-negative integer amount to split
        weights: Key -> positive integer weight

    Returns:
        Key -> integer share; shares sum to total exactly

    Example:
        >>> allocate_largest_remainder(10, {"A": 1, "B": 1, "C": 1})
        {'A': 4, 'B': 3, 'C': 3}
    """
    if total < 0:
        raise ValueError(f"total must be non-negative, got {total}")
    total_weight = sum(weights.values())
    if total_weight <= 0:
        raise ValueError("weights must sum to a positive value")

    shares: Dict[str, int] = {}
    remainders: List[Tuple[int, str]] = []
    for key, weight in weights.items():
        share, remainder = divmod(total * weight, total_weight)
        shares[key] = share
        remainders.append((remainder, key))

    leftover = total - sum(shares.values())
    # Largest remainder first, then key ascending
    remainders.sort(key=lambda item: (-item[0], item[1]))
    for _, key in remainders[:leftover]:
        shares[key] += 1

    return shares


def _merge_holdings(holdings: Sequence[Holding]) -> Tuple[Dict[str, int], Dict[str, str]]:
    """Validate and merge holdings into wallet -> weight (and handle)."""
    weights: Dict[str, int] = {}
    handles: Dict[str, str] = {}

    for holding in holdings:
        weight = holding.weight
        if isinstance(weight, bool) or not isinstance(weight, int):
            raise InsufficientDataError(
                f"Weight for {holding.wallet_address} must be an integer, got {weight!r}",
                wallet=holding.wallet_address,
            )
        if weight < 0:
            raise InsufficientDataError(
                f"Weight for {holding.wallet_address} is negative ({weight})",
                wallet=holding.wallet_address,
            )
        if not holding.wallet_address:
            raise InsufficientDataError("Holding without wallet address")

        weights[holding.wallet_address] = weights.get(holding.wallet_address, 0) + weight
        if holding.user_handle and holding.wallet_address not in handles:
            handles[holding.wallet_address] = holding.user_handle

    return {wallet: w for wallet, w in weights.items() if w > 0}, handles


class RewardCalculator:
    """
    Computes and persists a month's distribution.

    Usage:
        calculator = RewardCalculator(ledger)
        distribution, allocations = calculator.calculate("2025-01", 1000, holdings)
    """

    def __init__(
        self,
        ledger: DistributionLedger,
        holder_share_bps: int = DEFAULT_HOLDER_SHARE_BPS,
        clock: Callable[[], int] = unix_now,
    ):
        """
        Initialize RewardCalculator.

        Args:
            ledger: Ledger to persist distributions into
            holder_share_bps: Share of revenue given to holders (basis points)
            clock: Returns the current Unix time in seconds
        """
        self.ledger = ledger
        self.holder_share_bps = holder_share_bps
        self._clock = clock

    def holder_allocation_for(self, revenue_amount: int) -> int:
        """Portion of revenue distributed to holders."""
        return revenue_amount * self.holder_share_bps // BPS_DENOMINATOR

    def calculate(
        self,
        month: str,
        revenue_amount: int,
        holdings: Sequence[Holding],
    ) -> Tuple[MonthlyRewardDistribution, List[HolderAllocation]]:
        """
        Compute allocations and store a PENDING distribution.

        Args:
            month: YYYY-MM
            revenue_amount: Revenue for the month (smallest token unit)
            holdings: Snapshot holdings; zero weights are ignored

        Returns:
            (distribution, allocations ordered by wallet address)

        Raises:
            InvalidMonthError: month is not YYYY-MM
            InsufficientDataError: no revenue, no weighted holders, bad weights
            DuplicateDistributionError: month already distributed
        """
        validate_month(month)

        if isinstance(revenue_amount, bool) or not isinstance(revenue_amount, int):
            raise InsufficientDataError(f"Revenue must be an integer, got {revenue_amount!r}")
        if revenue_amount <= 0:
            raise InsufficientDataError(f"No revenue for {month} ({revenue_amount})")

        weights, handles = _merge_holdings(holdings)
        if not weights:
            raise InsufficientDataError(f"No eligible holders for {month}")

        total = self.holder_allocation_for(revenue_amount)
        if total <= 0:
            raise InsufficientDataError(
                f"Holder allocation for {month} rounds to zero "
                f"(revenue {revenue_amount}, share {self.holder_share_bps} bps)"
            )

        shares = allocate_largest_remainder(total, weights)

        distribution = MonthlyRewardDistribution(
            id=new_id(),
            month=month,
            revenue_amount=revenue_amount,
            holder_allocation_amount=total,
            holder_count=len(weights),
            created_at=self._clock(),
        )
        allocations = [
            HolderAllocation(
                distribution_id=distribution.id,
                wallet_address=wallet,
                weight=weights[wallet],
                amount=shares[wallet],
                user_handle=handles.get(wallet),
            )
            for wallet in sorted(weights)
        ]

        stored = self.ledger.create_distribution(distribution, allocations)
        logger.info(
            f"Calculated distribution {stored.id} for {month}: "
            f"{total} across {len(allocations)} holders"
        )
        return stored, allocations
