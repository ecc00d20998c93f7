"""
revshare/service.py

RewardService: the operations exposed to the API layer.

Wires the calculator, window controller, transfer executor and burn engine
around a single ledger and config. The API layer (out of scope here) is
expected to map RevshareError subclasses to responses via ``to_dict()``.

Usage:
    from revshare import RewardService, EngineConfig, StaticSnapshotProvider, DryRunChainClient

    chain = DryRunChainClient()
    service = RewardService.from_config(EngineConfig.from_env(), snapshots, chain, chain)

    distribution, _ = service.calculate_monthly("2025-01", 1000)
    service.open_window(distribution.id)
    service.claim(distribution.id, "rWallet...")
"""

import logging
from typing import Callable, List, Optional, Tuple

from .burn import BurnEngine
from .calculator import RewardCalculator
from .clients import ChainBurnClient, ChainTransferClient, HoldingsSnapshotProvider
from .config import EngineConfig
from .errors import DistributionNotFoundError
from .ledger import DistributionLedger, create_ledger
from .metrics import RewardMetricsCollector
from .models import (
    BurnRecord,
    DistributionStatus,
    HolderAllocation,
    MonthlyRewardDistribution,
    TransferResult,
    unix_now,
)
from .projections import (
    DEFAULT_OVERVIEW_LIMIT,
    AdminOverview,
    AvailableReward,
    DistributionReport,
    WalletSummary,
    admin_overview,
    available_rewards,
    distribution_report,
    wallet_summary,
)
from .scheduler import WindowScheduler
from .transfers import TransferExecutor
from .window import CloseResult, CollectionWindowController

logger = logging.getLogger("revshare.service")


class RewardService:
    """Facade over the distribution engine."""

    def __init__(
        self,
        ledger: DistributionLedger,
        snapshot_provider: HoldingsSnapshotProvider,
        transfer_client: ChainTransferClient,
        burn_client: ChainBurnClient,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], int] = unix_now,
    ):
        """
        Initialize RewardService.

        Args:
            ledger: Distribution ledger
            snapshot_provider: Source of monthly holdings
            transfer_client: Broadcasts reward payments
            burn_client: Broadcasts burns
            config: Engine settings (defaults if None)
            clock: Returns the current Unix time in seconds
        """
        self.config = config or EngineConfig()
        self.ledger = ledger
        self.snapshot_provider = snapshot_provider
        self._clock = clock

        self.calculator = RewardCalculator(
            ledger,
            holder_share_bps=self.config.holder_share_bps,
            clock=clock,
        )
        self.burn_engine = BurnEngine(ledger, burn_client, clock=clock)
        self.window = CollectionWindowController(
            ledger,
            self.burn_engine,
            window_duration=self.config.window_duration,
            clock=clock,
        )
        self.executor = TransferExecutor(
            ledger,
            transfer_client,
            max_attempts=self.config.max_attempts,
            claim_lease_seconds=self.config.claim_lease_seconds,
            clock=clock,
        )

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        snapshot_provider: HoldingsSnapshotProvider,
        transfer_client: ChainTransferClient,
        burn_client: ChainBurnClient,
    ) -> "RewardService":
        """Build a service with the ledger named by config.ledger_url."""
        return cls(
            create_ledger(config.ledger_url),
            snapshot_provider,
            transfer_client,
            burn_client,
            config=config,
        )

    # ========================================================================
    # ADMIN OPERATIONS
    # ========================================================================

    def calculate_monthly(
        self,
        month: str,
        revenue_amount: int,
    ) -> Tuple[MonthlyRewardDistribution, List[HolderAllocation]]:
        """
        Snapshot holdings for a month and store the PENDING distribution.

        Raises:
            SnapshotUnavailableError: indexer has not finished the month
            InsufficientDataError: no revenue or no eligible holders
            DuplicateDistributionError: month already calculated
        """
        holdings = self.snapshot_provider.get_holdings(month)
        logger.debug(f"Snapshot for {month}: {len(holdings)} holdings")
        return self.calculator.calculate(month, revenue_amount, holdings)

    def open_window(self, distribution_id: str) -> MonthlyRewardDistribution:
        return self.window.open_window(distribution_id)

    def close_window(self, distribution_id: str, force: bool = False) -> CloseResult:
        return self.window.close_window(distribution_id, force=force)

    def resume_close(self, distribution_id: str) -> CloseResult:
        return self.window.resume_close(distribution_id)

    def reconcile_burn(self, distribution_id: str, burn_tx_ref: str) -> BurnRecord:
        return self.burn_engine.reconcile(distribution_id, burn_tx_ref)

    # ========================================================================
    # HOLDER OPERATIONS
    # ========================================================================

    def claim(self, distribution_id: str, wallet_address: str) -> TransferResult:
        return self.executor.claim(distribution_id, wallet_address)

    def get_available_rewards(self, wallet_address: str) -> List[AvailableReward]:
        return available_rewards(self.ledger, wallet_address, self._clock())

    def get_wallet_summary(self, wallet_address: str) -> WalletSummary:
        return wallet_summary(self.ledger, wallet_address, self._clock())

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_distribution(self, distribution_id: str) -> MonthlyRewardDistribution:
        distribution = self.ledger.get_distribution(distribution_id)
        if distribution is None:
            raise DistributionNotFoundError(distribution_id)
        return distribution

    def list_distributions(
        self,
        status: Optional[DistributionStatus] = None,
        limit: Optional[int] = None,
    ) -> List[MonthlyRewardDistribution]:
        return self.ledger.list_distributions(status=status, limit=limit)

    def get_distribution_report(self, distribution_id: str) -> DistributionReport:
        return distribution_report(self.ledger, distribution_id)

    def get_admin_overview(self, limit: int = DEFAULT_OVERVIEW_LIMIT) -> AdminOverview:
        return admin_overview(self.ledger, limit=limit)

    # ========================================================================
    # BACKGROUND
    # ========================================================================

    def create_scheduler(self) -> WindowScheduler:
        """Scheduler that closes this service's expired windows."""
        return WindowScheduler(
            self.ledger,
            self.window,
            tick_interval=self.config.tick_interval,
            stalled_close_seconds=self.config.stalled_close_seconds,
            clock=self._clock,
        )

    def create_metrics_collector(self, scheduler: Optional[WindowScheduler] = None) -> RewardMetricsCollector:
        return RewardMetricsCollector(self.ledger, scheduler=scheduler)

    def close(self) -> None:
        self.ledger.close()
