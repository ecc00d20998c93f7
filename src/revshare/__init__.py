"""
revshare - Monthly revenue-share rewards for NFT holders

Splits a month's revenue across holders by weight, opens a fixed 24h
collection window, pays holders who claim inside it and burns whatever
is left when the window closes.

Usage:
    from revshare import RewardService, EngineConfig
    from revshare.clients import HttpSnapshotProvider

    service = RewardService.from_config(
        EngineConfig.from_env(),
        HttpSnapshotProvider("https://indexer.example/api"),
        transfer_client=wallet_service,
        burn_client=wallet_service,
    )

    distribution, allocations = service.calculate_monthly("2025-01", 1000)
    service.open_window(distribution.id)

    # Holders claim during the window
    result = service.claim(distribution.id, wallet)

Scheduler Usage:
    scheduler = service.create_scheduler()

    async with trio.open_nursery() as nursery:
        nursery.start_soon(scheduler.run)
"""

from .burn import BurnEngine
from .calculator import RewardCalculator, allocate_largest_remainder, validate_month
from .clients import (
    ChainBurnClient,
    ChainTransferClient,
    DryRunChainClient,
    HoldingsSnapshotProvider,
    HttpSnapshotProvider,
    StaticSnapshotProvider,
)
from .config import EngineConfig
from .errors import (
    RevshareError,
    ConfigError,
    InsufficientDataError,
    InvalidMonthError,
    SnapshotUnavailableError,
    InvalidStateError,
    DuplicateDistributionError,
    WindowStillOpenError,
    DistributionNotFoundError,
    WindowClosedError,
    NotEligibleError,
    ClaimInProgressError,
    TransferFailedError,
    BurnExecutionError,
)
from .ledger import DistributionLedger, MemoryLedger, SqlLedger, create_ledger
from .metrics import RewardMetricsCollector
from .models import (
    BurnRecord,
    BurnStatus,
    DistributionStatus,
    HolderAllocation,
    Holding,
    MonthlyRewardDistribution,
    RewardTransfer,
    TransferResult,
    TransferStatus,
)
from .scheduler import TickReport, WindowScheduler
from .service import RewardService
from .transfers import TransferExecutor
from .window import CloseResult, CollectionWindowController

__version__ = "0.1.0"
__all__ = [
    # Service
    "RewardService",
    "EngineConfig",
    # Components
    "RewardCalculator",
    "allocate_largest_remainder",
    "validate_month",
    "CollectionWindowController",
    "CloseResult",
    "TransferExecutor",
    "BurnEngine",
    "WindowScheduler",
    "TickReport",
    "RewardMetricsCollector",
    # Ledger
    "DistributionLedger",
    "MemoryLedger",
    "SqlLedger",
    "create_ledger",
    # External clients
    "HoldingsSnapshotProvider",
    "StaticSnapshotProvider",
    "HttpSnapshotProvider",
    "ChainTransferClient",
    "ChainBurnClient",
    "DryRunChainClient",
    # Models
    "Holding",
    "MonthlyRewardDistribution",
    "HolderAllocation",
    "RewardTransfer",
    "BurnRecord",
    "TransferResult",
    "DistributionStatus",
    "TransferStatus",
    "BurnStatus",
    # Errors
    "RevshareError",
    "ConfigError",
    "InsufficientDataError",
    "InvalidMonthError",
    "SnapshotUnavailableError",
    "InvalidStateError",
    "DuplicateDistributionError",
    "WindowStillOpenError",
    "DistributionNotFoundError",
    "WindowClosedError",
    "NotEligibleError",
    "ClaimInProgressError",
    "TransferFailedError",
    "BurnExecutionError",
]
