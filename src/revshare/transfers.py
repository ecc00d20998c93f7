"""
revshare/transfers.py

TransferExecutor: pays a holder's allocation when they claim it.

A claim is keyed by (distribution_id, wallet). It takes a short lease on
the transfer row before broadcasting, so concurrent claims for the same
wallet never send twice. No distribution-wide lock is held while the
payment is in flight; the completion write re-checks that the window is
still open and refuses otherwise. A broadcast that outlives its lease
still records its tx hash, even if a later claim exhausted the attempts
meanwhile.
"""

import logging
from typing import Callable

from .clients import ChainTransferClient
from .config import DEFAULT_CLAIM_LEASE_SECONDS, DEFAULT_MAX_ATTEMPTS
from .errors import (
    ClaimInProgressError,
    DistributionNotFoundError,
    NotEligibleError,
    TransferFailedError,
    WindowClosedError,
)
from .ledger.base import DistributionLedger
from .models import (
    DistributionStatus,
    MonthlyRewardDistribution,
    RewardTransfer,
    TransferResult,
    TransferStatus,
    unix_now,
)

logger = logging.getLogger("revshare.transfers")


class TransferExecutor:
    """
    Executes holder claims.

    Usage:
        executor = TransferExecutor(ledger, chain_client)
        result = executor.claim(distribution_id, wallet)
    """

    def __init__(
        self,
        ledger: DistributionLedger,
        transfer_client: ChainTransferClient,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        claim_lease_seconds: int = DEFAULT_CLAIM_LEASE_SECONDS,
        clock: Callable[[], int] = unix_now,
    ):
        """
        Initialize TransferExecutor.

        Args:
            ledger: Distribution ledger
            transfer_client: Broadcasts payments
            max_attempts: Broadcast attempts before a transfer is FAILED
            claim_lease_seconds: How long one claim may hold a transfer
            clock: Returns the current Unix time in seconds
        """
        self.ledger = ledger
        self.transfer_client = transfer_client
        self.max_attempts = max_attempts
        self.claim_lease_seconds = claim_lease_seconds
        self._clock = clock

    def claim(self, distribution_id: str, wallet_address: str) -> TransferResult:
        """
        Claim a holder's reward.

        Claiming an already COMPLETED transfer returns the stored result
        and sends nothing.

        Args:
            distribution_id: Distribution to claim from
            wallet_address: Claiming wallet

        Returns:
            TransferResult with the tx hash

        Raises:
            DistributionNotFoundError: unknown distribution
            WindowClosedError: window not open or deadline passed
            NotEligibleError: wallet has no allocation
            ClaimInProgressError: another claim is broadcasting for this wallet
            TransferFailedError: broadcast failed or attempts exhausted
        """
        distribution = self.ledger.get_distribution(distribution_id)
        if distribution is None:
            raise DistributionNotFoundError(distribution_id)

        transfer = self.ledger.get_transfer(distribution_id, wallet_address)
        if transfer is not None and transfer.status is TransferStatus.COMPLETED:
            return TransferResult.from_transfer(transfer, already_completed=True)

        now = self._clock()
        if not distribution.is_window_open(now):
            raise self._window_closed(distribution, wallet_address)
        if transfer is None:
            raise NotEligibleError(
                f"{wallet_address} has no allocation in {distribution.month}",
                distribution_id=distribution_id,
                wallet=wallet_address,
            )
        if transfer.status is TransferStatus.FAILED:
            raise self._exhausted(transfer)

        leased = self.ledger.begin_attempt(transfer.id, now, now + self.claim_lease_seconds)
        if leased is None:
            return self._lease_refused(distribution_id, wallet_address, now)

        try:
            tx_hash = self.transfer_client.send(wallet_address, leased.amount)
        except Exception as e:
            raise self._record_failure(leased, e) from e

        completed = self.ledger.complete_transfer(leased.id, tx_hash, self._clock())
        if completed is None:
            return self._completion_refused(leased, tx_hash)

        logger.info(
            f"Paid {completed.amount} to {wallet_address} for {distribution_id}: {tx_hash} "
            f"(attempt {completed.attempts})"
        )
        return TransferResult.from_transfer(completed)

    # ========================================================================
    # OUTCOMES
    # ========================================================================

    def _window_closed(
        self,
        distribution: MonthlyRewardDistribution,
        wallet_address: str,
    ) -> WindowClosedError:
        return WindowClosedError(
            f"Collection window for {distribution.month} is not open "
            f"(status {distribution.status.value}); wait for the next distribution",
            distribution_id=distribution.id,
            wallet=wallet_address,
        )

    def _exhausted(self, transfer: RewardTransfer) -> TransferFailedError:
        return TransferFailedError(
            f"Transfer to {transfer.wallet_address} failed after {transfer.attempts} attempts: "
            f"{transfer.last_error}",
            distribution_id=transfer.distribution_id,
            wallet=transfer.wallet_address,
            attempts=transfer.attempts,
            retryable=False,
        )

    def _lease_refused(self, distribution_id: str, wallet_address: str, now: int) -> TransferResult:
        """Work out why begin_attempt refused and report it."""
        current = self.ledger.get_transfer(distribution_id, wallet_address)
        if current.status is TransferStatus.COMPLETED:
            return TransferResult.from_transfer(current, already_completed=True)
        if current.status is TransferStatus.FAILED:
            raise self._exhausted(current)

        distribution = self.ledger.get_distribution(distribution_id)
        if not distribution.is_window_open(now):
            raise self._window_closed(distribution, wallet_address)

        logger.warning(f"Claim for {wallet_address} in {distribution_id} already in progress")
        raise ClaimInProgressError(
            f"A claim for {wallet_address} is already in progress",
            distribution_id=distribution_id,
            wallet=wallet_address,
        )

    def _record_failure(self, leased: RewardTransfer, error: Exception) -> TransferFailedError:
        failed = self.ledger.record_failure(leased.id, str(error), self.max_attempts)
        attempts = failed.attempts if failed else leased.attempts
        retryable = failed is not None and failed.status is TransferStatus.PENDING

        if retryable:
            logger.warning(
                f"Transfer to {leased.wallet_address} for {leased.distribution_id} failed "
                f"(attempt {attempts}/{self.max_attempts}): {error}"
            )
        else:
            logger.error(
                f"Transfer to {leased.wallet_address} for {leased.distribution_id} failed "
                f"permanently after {attempts} attempts: {error}"
            )

        return TransferFailedError(
            f"Transfer to {leased.wallet_address} failed: {error}",
            distribution_id=leased.distribution_id,
            wallet=leased.wallet_address,
            attempts=attempts,
            retryable=retryable,
        )

    def _completion_refused(self, leased: RewardTransfer, tx_hash: str) -> TransferResult:
        """The payment went out but the ledger refused to record it."""
        current = self.ledger.get_transfer(leased.distribution_id, leased.wallet_address)
        if current.status is TransferStatus.COMPLETED:
            # Lease expired mid-broadcast and a second claim recorded its own tx
            logger.error(
                f"Duplicate payment to {leased.wallet_address} for {leased.distribution_id}: "
                f"{tx_hash} not recorded, ledger holds {current.tx_hash}; needs reconciliation"
            )
            return TransferResult.from_transfer(current, already_completed=True)

        distribution = self.ledger.get_distribution(leased.distribution_id)
        if distribution.status is DistributionStatus.OPEN:
            logger.error(
                f"Payment to {leased.wallet_address} for {leased.distribution_id} not recorded "
                f"({current.status.value}): {tx_hash} ({leased.amount}); needs reconciliation"
            )
            raise TransferFailedError(
                f"Transfer to {leased.wallet_address} was sent (tx {tx_hash}) but could not be recorded",
                distribution_id=leased.distribution_id,
                wallet=leased.wallet_address,
                attempts=current.attempts,
                retryable=False,
            )

        logger.error(
            f"Window for {leased.distribution_id} closed while paying {leased.wallet_address}: "
            f"{tx_hash} ({leased.amount}) not recorded; needs reconciliation"
        )
        raise WindowClosedError(
            f"Collection window closed before the transfer to {leased.wallet_address} "
            f"could be recorded (tx {tx_hash})",
            distribution_id=leased.distribution_id,
            wallet=leased.wallet_address,
        )
