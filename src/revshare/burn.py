"""
revshare/burn.py

BurnEngine: records and executes the burn of a closed distribution's
unclaimed rewards.

The BurnRecord is inserted before anything touches the chain. Insertion is
unique per distribution, so only the caller that inserted the record ever
calls the burn client; every other caller gets the stored record back.
"""

import logging
from typing import Callable

from .clients import ChainBurnClient
from .errors import BurnExecutionError, DistributionNotFoundError, InvalidStateError
from .ledger.base import DistributionLedger
from .models import BurnRecord, BurnStatus, unix_now

logger = logging.getLogger("revshare.burn")


class BurnEngine:
    """
    Exactly-once burn bookkeeping.

    Usage:
        engine = BurnEngine(ledger, burn_client)
        record = engine.burn(distribution_id, total_uncollected=250, uncollected_count=1)
    """

    def __init__(
        self,
        ledger: DistributionLedger,
        burn_client: ChainBurnClient,
        clock: Callable[[], int] = unix_now,
    ):
        self.ledger = ledger
        self.burn_client = burn_client
        self._clock = clock

    def burn(
        self,
        distribution_id: str,
        total_uncollected: int,
        uncollected_count: int = 0,
    ) -> BurnRecord:
        """
        Record and execute the burn for a distribution.

        External burn failures are recorded on the BurnRecord (FAILED) and
        logged; they are never raised from here.

        Args:
            distribution_id: Closed distribution
            total_uncollected: Amount left unclaimed
            uncollected_count: Number of unclaimed transfers

        Returns:
            The distribution's BurnRecord
        """
        if total_uncollected < 0:
            raise ValueError(f"total_uncollected must be non-negative, got {total_uncollected}")

        record = BurnRecord(
            distribution_id=distribution_id,
            total_burnt=total_uncollected,
            uncollected_count=uncollected_count,
            burn_status=BurnStatus.NOT_REQUIRED if total_uncollected == 0 else BurnStatus.PENDING,
            executed_at=self._clock(),
        )

        if not self.ledger.insert_burn_record(record):
            existing = self.ledger.get_burn_record(distribution_id)
            logger.debug(f"Burn for {distribution_id} already recorded ({existing.burn_status.value})")
            return existing

        if total_uncollected == 0:
            logger.info(f"Nothing to burn for {distribution_id}")
            return record

        try:
            tx_ref = self.burn_client.burn(total_uncollected)
        except Exception as e:
            error = BurnExecutionError(
                f"Burn of {total_uncollected} failed: {e}",
                distribution_id=distribution_id,
            )
            logger.error(
                f"Burn failed for {distribution_id} ({total_uncollected} units, "
                f"{uncollected_count} transfers), needs reconciliation: {e}"
            )
            return self.ledger.update_burn_record(
                distribution_id,
                BurnStatus.FAILED,
                error=error.message,
            )

        logger.info(f"Burned {total_uncollected} for {distribution_id}: {tx_ref}")
        return self.ledger.update_burn_record(
            distribution_id,
            BurnStatus.EXECUTED,
            burn_tx_ref=tx_ref,
        )

    def reconcile(self, distribution_id: str, burn_tx_ref: str) -> BurnRecord:
        """
        Attach the tx reference of a manually executed burn.

        Raises:
            DistributionNotFoundError: no burn record for the distribution
            InvalidStateError: the record does not need reconciliation
        """
        record = self.ledger.get_burn_record(distribution_id)
        if record is None:
            raise DistributionNotFoundError(distribution_id)
        if not record.needs_reconciliation:
            raise InvalidStateError(
                f"Burn for {distribution_id} is {record.burn_status.value}, nothing to reconcile",
                distribution_id=distribution_id,
                current_status=record.burn_status.value,
            )

        updated = self.ledger.update_burn_record(
            distribution_id,
            BurnStatus.EXECUTED,
            burn_tx_ref=burn_tx_ref,
        )
        logger.info(f"Reconciled burn for {distribution_id}: {burn_tx_ref}")
        return updated
