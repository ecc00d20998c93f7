"""
revshare/errors.py

Exception taxonomy for the reward distribution engine.

Every error carries the identifiers an operator needs to act on it
(distribution id, wallet) so the admin layer can surface them as-is.
"""

from typing import Optional


class RevshareError(Exception):
    """Base class for all revshare errors."""

    def __init__(
        self,
        message: str,
        distribution_id: Optional[str] = None,
        wallet: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.distribution_id = distribution_id
        self.wallet = wallet

    def to_dict(self) -> dict:
        return {
            'error': type(self).__name__,
            'message': self.message,
            'distribution_id': self.distribution_id,
            'wallet': self.wallet,
        }


class ConfigError(RevshareError, ValueError):
    """Invalid engine configuration."""
    pass


# ============================================================================
# CALCULATION
# ============================================================================

class InsufficientDataError(RevshareError):
    """No holders or no revenue: calculation refuses to proceed."""
    pass


class InvalidMonthError(InsufficientDataError, ValueError):
    """Month is not in YYYY-MM form."""
    pass


class SnapshotUnavailableError(RevshareError):
    """Holdings indexer has not finished the snapshot for a month."""

    def __init__(self, message: str, month: Optional[str] = None):
        super().__init__(message)
        self.month = month


# ============================================================================
# STATE MACHINE
# ============================================================================

class InvalidStateError(RevshareError):
    """Transition attempted from the wrong state. State is never modified."""

    def __init__(
        self,
        message: str,
        distribution_id: Optional[str] = None,
        current_status: Optional[str] = None,
    ):
        super().__init__(message, distribution_id=distribution_id)
        self.current_status = current_status


class DuplicateDistributionError(InvalidStateError):
    """A distribution already exists for the month."""

    def __init__(self, month: str, existing_id: Optional[str] = None):
        super().__init__(
            f"Distribution for {month} already exists",
            distribution_id=existing_id,
        )
        self.month = month


class WindowStillOpenError(InvalidStateError):
    """Close requested before the deadline without the admin override."""
    pass


class DistributionNotFoundError(RevshareError):
    """Unknown distribution id."""

    def __init__(self, distribution_id: str):
        super().__init__(
            f"Distribution {distribution_id} not found",
            distribution_id=distribution_id,
        )


# ============================================================================
# CLAIMS
# ============================================================================

class WindowClosedError(RevshareError):
    """Claim outside the collection window. Wait for the next distribution."""
    pass


class NotEligibleError(RevshareError):
    """Wallet holds no allocation in the distribution."""
    pass


class ClaimInProgressError(RevshareError):
    """Another claim for the same transfer is currently broadcasting."""
    pass


class TransferFailedError(RevshareError):
    """External broadcast failed."""

    def __init__(
        self,
        message: str,
        distribution_id: Optional[str] = None,
        wallet: Optional[str] = None,
        attempts: int = 0,
        retryable: bool = False,
    ):
        super().__init__(message, distribution_id=distribution_id, wallet=wallet)
        self.attempts = attempts
        self.retryable = retryable

    def to_dict(self) -> dict:
        result = super().to_dict()
        result['attempts'] = self.attempts
        result['retryable'] = self.retryable
        return result


# ============================================================================
# BURN
# ============================================================================

class BurnExecutionError(RevshareError):
    """External burn failed. Recorded for manual reconciliation."""
    pass
