"""
revshare/window.py

CollectionWindowController: the distribution state machine.

    PENDING --open_window--> OPEN --close_window--> CLOSED_BURNING --> COMPLETE

Closing is a compare-and-set in the ledger. Exactly one caller wins it and
runs the burn; everyone else observes the new status and does nothing. A
distribution left in CLOSED_BURNING by a crashed closer is finished by
resume_close, which relies on the burn record being unique so the
external burn still happens at most once.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .burn import BurnEngine
from .config import DEFAULT_WINDOW_DURATION
from .errors import DistributionNotFoundError, InvalidStateError, WindowStillOpenError
from .ledger.base import DistributionLedger
from .models import BurnRecord, DistributionStatus, MonthlyRewardDistribution, unix_now

logger = logging.getLogger("revshare.window")


@dataclass
class CloseResult:
    """Outcome of a close request."""
    distribution: MonthlyRewardDistribution
    burn_record: Optional[BurnRecord]
    performed: bool     # True only for the caller that completed the close

    def to_dict(self) -> dict:
        return {
            'distribution': self.distribution.to_dict(),
            'burn_record': self.burn_record.to_dict() if self.burn_record else None,
            'performed': self.performed,
        }


class CollectionWindowController:
    """
    Opens and closes collection windows.

    Usage:
        controller = CollectionWindowController(ledger, burn_engine)
        controller.open_window(distribution_id)
        ...
        result = controller.close_window(distribution_id)
    """

    def __init__(
        self,
        ledger: DistributionLedger,
        burn_engine: BurnEngine,
        window_duration: int = DEFAULT_WINDOW_DURATION,
        clock: Callable[[], int] = unix_now,
    ):
        """
        Initialize CollectionWindowController.

        Args:
            ledger: Distribution ledger
            burn_engine: Executes the burn at close
            window_duration: Window length in seconds, fixed at open time
            clock: Returns the current Unix time in seconds
        """
        self.ledger = ledger
        self.burn_engine = burn_engine
        self.window_duration = window_duration
        self._clock = clock

    def _require(self, distribution_id: str) -> MonthlyRewardDistribution:
        distribution = self.ledger.get_distribution(distribution_id)
        if distribution is None:
            raise DistributionNotFoundError(distribution_id)
        return distribution

    # ========================================================================
    # OPEN
    # ========================================================================

    def open_window(self, distribution_id: str) -> MonthlyRewardDistribution:
        """
        Open the collection window and create the transfers.

        Raises:
            DistributionNotFoundError: unknown id
            InvalidStateError: distribution is not PENDING
        """
        distribution = self._require(distribution_id)
        if distribution.status is not DistributionStatus.PENDING:
            raise InvalidStateError(
                f"Cannot open {distribution_id}: status is {distribution.status.value}",
                distribution_id=distribution_id,
                current_status=distribution.status.value,
            )

        now = self._clock()
        opened = self.ledger.open_distribution(distribution_id, now, now + self.window_duration)
        if opened is None:
            current = self._require(distribution_id)
            logger.warning(f"Lost open race for {distribution_id}, now {current.status.value}")
            raise InvalidStateError(
                f"Cannot open {distribution_id}: status is {current.status.value}",
                distribution_id=distribution_id,
                current_status=current.status.value,
            )

        logger.info(
            f"Opened window for {opened.month} ({distribution_id}), "
            f"deadline {opened.window_deadline}"
        )
        return opened

    # ========================================================================
    # CLOSE
    # ========================================================================

    def close_window(self, distribution_id: str, force: bool = False) -> CloseResult:
        """
        Close the window and burn what was not collected.

        Idempotent: closing a COMPLETE distribution returns its burn record.

        Args:
            distribution_id: Distribution to close
            force: Admin override to close before the deadline

        Raises:
            DistributionNotFoundError: unknown id
            InvalidStateError: distribution is still PENDING
            WindowStillOpenError: deadline not reached and force not set
        """
        distribution = self._require(distribution_id)

        if distribution.status is DistributionStatus.PENDING:
            raise InvalidStateError(
                f"Cannot close {distribution_id}: window was never opened",
                distribution_id=distribution_id,
                current_status=distribution.status.value,
            )
        if distribution.status is not DistributionStatus.OPEN:
            return self._observed(distribution)

        now = self._clock()
        if now < distribution.window_deadline and not force:
            raise WindowStillOpenError(
                f"Window for {distribution_id} is open until {distribution.window_deadline}",
                distribution_id=distribution_id,
                current_status=distribution.status.value,
            )

        closing = self.ledger.begin_close(distribution_id, now)
        if closing is None:
            logger.debug(f"Close of {distribution_id} already taken by another caller")
            return self._observed(self._require(distribution_id))

        if force and now < distribution.window_deadline:
            logger.warning(f"Force-closing {distribution_id} before its deadline")
        logger.info(f"Closing window for {closing.month} ({distribution_id})")

        return self._finish(closing)

    def resume_close(self, distribution_id: str) -> CloseResult:
        """
        Finish a distribution stuck in CLOSED_BURNING.

        Raises:
            DistributionNotFoundError: unknown id
            InvalidStateError: distribution is PENDING or OPEN
        """
        distribution = self._require(distribution_id)
        if distribution.status is DistributionStatus.COMPLETE:
            return self._observed(distribution)
        if distribution.status is not DistributionStatus.CLOSED_BURNING:
            raise InvalidStateError(
                f"Cannot resume close of {distribution_id}: status is {distribution.status.value}",
                distribution_id=distribution_id,
                current_status=distribution.status.value,
            )

        logger.warning(f"Resuming interrupted close of {distribution_id}")
        return self._finish(distribution)

    def _finish(self, distribution: MonthlyRewardDistribution) -> CloseResult:
        """Burn the uncollected remainder and mark the distribution COMPLETE."""
        total, count = self.ledger.uncollected_totals(distribution.id)
        record = self.burn_engine.burn(distribution.id, total, count)

        finalized = self.ledger.finalize_distribution(
            distribution.id,
            total_burnt=record.total_burnt,
            uncollected_count=record.uncollected_count,
            completed_at=self._clock(),
        )
        if finalized is None:
            # A concurrent resume finished it first
            return self._observed(self._require(distribution.id))

        logger.info(
            f"Distribution {distribution.id} complete: burnt {record.total_burnt} "
            f"from {record.uncollected_count} uncollected transfers"
        )
        return CloseResult(distribution=finalized, burn_record=record, performed=True)

    def _observed(self, distribution: MonthlyRewardDistribution) -> CloseResult:
        return CloseResult(
            distribution=distribution,
            burn_record=self.ledger.get_burn_record(distribution.id),
            performed=False,
        )
