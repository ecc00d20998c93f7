"""
revshare/scheduler.py

Periodic window scheduler.

Each tick closes every OPEN distribution whose deadline has passed and
resumes distributions that have been stuck in CLOSED_BURNING for longer
than the grace period. Ticks are plain synchronous calls; the trio loop
runs them in a worker thread so ledger and chain I/O never block the
event loop.

Usage:
    scheduler = WindowScheduler(ledger, controller)

    async with trio.open_nursery() as nursery:
        nursery.start_soon(scheduler.run)
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import trio

from .config import DEFAULT_STALLED_CLOSE_SECONDS, DEFAULT_TICK_INTERVAL, MAX_TICK_INTERVAL
from .errors import ConfigError
from .ledger.base import DistributionLedger
from .models import unix_now
from .window import CollectionWindowController

logger = logging.getLogger("revshare.scheduler")


@dataclass
class TickReport:
    """What one tick did."""
    started_at: int
    closed: List[str] = field(default_factory=list)      # distribution ids closed by this tick
    resumed: List[str] = field(default_factory=list)     # stalled closes finished by this tick
    skipped: List[str] = field(default_factory=list)     # already closed by someone else
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            'started_at': self.started_at,
            'closed': list(self.closed),
            'resumed': list(self.resumed),
            'skipped': list(self.skipped),
            'errors': dict(self.errors),
        }


class WindowScheduler:
    """Closes expired collection windows on a fixed interval."""

    def __init__(
        self,
        ledger: DistributionLedger,
        controller: CollectionWindowController,
        tick_interval: int = DEFAULT_TICK_INTERVAL,
        stalled_close_seconds: int = DEFAULT_STALLED_CLOSE_SECONDS,
        clock: Callable[[], int] = unix_now,
    ):
        """
        Initialize WindowScheduler.

        Args:
            ledger: Distribution ledger to scan
            controller: Performs the closes
            tick_interval: Seconds between ticks (1..60)
            stalled_close_seconds: Grace before a CLOSED_BURNING close is resumed
            clock: Returns the current Unix time in seconds
        """
        if not 1 <= tick_interval <= MAX_TICK_INTERVAL:
            raise ConfigError(
                f"tick_interval must be between 1 and {MAX_TICK_INTERVAL} seconds, got {tick_interval}"
            )
        self.ledger = ledger
        self.controller = controller
        self.tick_interval = tick_interval
        self.stalled_close_seconds = stalled_close_seconds
        self._clock = clock

        self._running = False
        self._cancel_scope: Optional[trio.CancelScope] = None
        self.ticks = 0
        self.last_report: Optional[TickReport] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def tick(self) -> TickReport:
        """
        Run one scan. Failures are logged per distribution and never raised.

        Returns:
            TickReport
        """
        now = self._clock()
        report = TickReport(started_at=now)

        for distribution in self.ledger.list_expired_open(now):
            try:
                result = self.controller.close_window(distribution.id)
            except Exception as e:
                logger.error(f"Failed to close {distribution.id} ({distribution.month}): {e}")
                report.errors[distribution.id] = str(e)
                continue
            if result.performed:
                report.closed.append(distribution.id)
            else:
                report.skipped.append(distribution.id)

        for distribution in self.ledger.list_stalled_closing(now - self.stalled_close_seconds):
            try:
                result = self.controller.resume_close(distribution.id)
            except Exception as e:
                logger.error(f"Failed to resume close of {distribution.id}: {e}")
                report.errors[distribution.id] = str(e)
                continue
            if result.performed:
                report.resumed.append(distribution.id)

        self.ticks += 1
        self.last_report = report
        if report.closed or report.resumed or report.errors:
            logger.info(
                f"Tick: closed={len(report.closed)} resumed={len(report.resumed)} "
                f"errors={len(report.errors)}"
            )
        return report

    async def run(self) -> None:
        """
        Tick until stop() is called or the surrounding scope is cancelled.
        """
        self._running = True
        logger.info(f"Window scheduler started (interval {self.tick_interval}s)")
        try:
            with trio.CancelScope() as scope:
                self._cancel_scope = scope
                while self._running:
                    try:
                        await trio.to_thread.run_sync(self.tick)
                    except Exception as e:
                        logger.error(f"Scheduler tick failed: {e}")

                    await trio.sleep(self.tick_interval)
        finally:
            self._running = False
            self._cancel_scope = None
            logger.info("Window scheduler stopped")

    def stop(self) -> None:
        """Stop the loop. Must be called from the trio thread running it."""
        self._running = False
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()
