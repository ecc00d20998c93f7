"""
Tests for revshare/transfers.py

Tests claims: idempotency, retry cap, leases and window checks.
"""

import threading
import time
from unittest.mock import Mock

import pytest

from revshare.burn import BurnEngine
from revshare.calculator import RewardCalculator
from revshare.errors import (
    ClaimInProgressError,
    DistributionNotFoundError,
    NotEligibleError,
    TransferFailedError,
    WindowClosedError,
)
from revshare.ledger import MemoryLedger
from revshare.models import Holding, TransferStatus
from revshare.transfers import TransferExecutor
from revshare.window import CollectionWindowController

DAY = 24 * 60 * 60


@pytest.fixture
def controller(ledger, burn_engine, clock):
    return CollectionWindowController(ledger, burn_engine, clock=clock)


@pytest.fixture
def distribution(ledger, controller, clock):
    calculator = RewardCalculator(ledger, clock=clock)
    distribution, _ = calculator.calculate("2025-01", 1000, [Holding("rA", 3), Holding("rB", 1)])
    return controller.open_window(distribution.id)


@pytest.fixture
def client():
    client = Mock()
    client.send.return_value = "tx-abc"
    return client


@pytest.fixture
def executor(ledger, client, clock):
    return TransferExecutor(ledger, client, max_attempts=3, claim_lease_seconds=120, clock=clock)


class TestClaim:
    """Tests for successful and idempotent claims."""

    def test_claim(self, executor, client, distribution, ledger, clock):
        result = executor.claim(distribution.id, "rA")
        assert result.status is TransferStatus.COMPLETED
        assert result.amount == 750
        assert result.tx_hash == "tx-abc"
        assert result.attempts == 1
        assert result.completed_at == clock.now
        assert result.already_completed is False
        client.send.assert_called_once_with("rA", 750)

        stored = ledger.get_transfer(distribution.id, "rA")
        assert stored.status is TransferStatus.COMPLETED
        assert stored.tx_hash == "tx-abc"

    def test_claim_twice_sends_once(self, executor, client, distribution):
        first = executor.claim(distribution.id, "rA")
        second = executor.claim(distribution.id, "rA")

        assert second.already_completed is True
        assert second.tx_hash == first.tx_hash
        assert second.amount == first.amount
        assert client.send.call_count == 1

    def test_completed_claim_after_close_returns_stored(self, executor, controller, client, distribution, clock):
        executor.claim(distribution.id, "rA")
        clock.advance(DAY)
        controller.close_window(distribution.id)

        result = executor.claim(distribution.id, "rA")
        assert result.already_completed is True
        assert client.send.call_count == 1

    def test_not_eligible(self, executor, distribution):
        with pytest.raises(NotEligibleError) as exc_info:
            executor.claim(distribution.id, "rZ")
        assert exc_info.value.wallet == "rZ"

    def test_unknown_distribution(self, executor):
        with pytest.raises(DistributionNotFoundError):
            executor.claim("missing", "rA")


class TestWindowChecks:
    """Claims outside the window are refused."""

    def test_claim_after_deadline(self, executor, client, distribution, ledger, clock):
        clock.advance(DAY)
        with pytest.raises(WindowClosedError):
            executor.claim(distribution.id, "rB")
        client.send.assert_not_called()
        assert ledger.get_transfer(distribution.id, "rB").status is TransferStatus.PENDING

    def test_claim_before_open(self, ledger, executor, client, clock):
        calculator = RewardCalculator(ledger, clock=clock)
        pending, _ = calculator.calculate("2025-02", 100, [Holding("rA", 1)])
        with pytest.raises(WindowClosedError):
            executor.claim(pending.id, "rA")
        client.send.assert_not_called()

    def test_window_closes_during_send(self, ledger, chain, clock):
        """The payment is not recorded when the window closed mid-broadcast."""
        controller = CollectionWindowController(ledger, BurnEngine(ledger, chain), clock=clock)
        calculator = RewardCalculator(ledger, clock=clock)
        distribution, _ = calculator.calculate("2025-01", 1000, [Holding("rA", 1)])
        controller.open_window(distribution.id)

        def send(wallet, amount):
            clock.advance(DAY)
            controller.close_window(distribution.id)
            return "tx-late"

        client = Mock()
        client.send.side_effect = send
        executor = TransferExecutor(ledger, client, clock=clock)

        with pytest.raises(WindowClosedError) as exc_info:
            executor.claim(distribution.id, "rA")
        assert "tx-late" in str(exc_info.value)

        transfer = ledger.get_transfer(distribution.id, "rA")
        assert transfer.status is TransferStatus.PENDING
        assert ledger.get_burn_record(distribution.id).total_burnt == 1000


class TestFailures:
    """Tests for broadcast failures and the attempt cap."""

    def test_failure_is_retryable(self, executor, client, distribution, ledger):
        client.send.side_effect = ConnectionError("timeout")

        with pytest.raises(TransferFailedError) as exc_info:
            executor.claim(distribution.id, "rA")

        error = exc_info.value
        assert error.attempts == 1
        assert error.retryable is True
        assert error.wallet == "rA"
        transfer = ledger.get_transfer(distribution.id, "rA")
        assert transfer.status is TransferStatus.PENDING
        assert transfer.last_error == "timeout"
        assert transfer.lease_expires_at is None

    def test_retry_then_succeed(self, executor, client, distribution):
        client.send.side_effect = [ConnectionError("timeout"), "tx-retry"]

        with pytest.raises(TransferFailedError):
            executor.claim(distribution.id, "rA")
        result = executor.claim(distribution.id, "rA")

        assert result.tx_hash == "tx-retry"
        assert result.attempts == 2

    def test_attempts_exhausted(self, executor, client, distribution, ledger):
        client.send.side_effect = ConnectionError("timeout")

        for attempt in range(1, 4):
            with pytest.raises(TransferFailedError) as exc_info:
                executor.claim(distribution.id, "rA")
            assert exc_info.value.attempts == attempt

        assert exc_info.value.retryable is False
        assert ledger.get_transfer(distribution.id, "rA").status is TransferStatus.FAILED

        # FAILED transfers are refused without another broadcast
        with pytest.raises(TransferFailedError) as exc_info:
            executor.claim(distribution.id, "rA")
        assert exc_info.value.retryable is False
        assert client.send.call_count == 3

    def test_failed_transfer_is_burned(self, executor, controller, client, distribution, clock):
        client.send.side_effect = ConnectionError("timeout")
        for _ in range(3):
            with pytest.raises(TransferFailedError):
                executor.claim(distribution.id, "rA")
        clock.advance(DAY)

        result = controller.close_window(distribution.id)
        assert result.burn_record.total_burnt == 1000
        assert result.burn_record.uncollected_count == 2


class TestLease:
    """Concurrent claims for the same wallet."""

    def test_claim_in_progress(self, executor, client, distribution, ledger, clock):
        transfer = ledger.get_transfer(distribution.id, "rA")
        ledger.begin_attempt(transfer.id, clock.now, clock.now + 120)

        with pytest.raises(ClaimInProgressError):
            executor.claim(distribution.id, "rA")
        client.send.assert_not_called()

    def test_expired_lease_can_be_retaken(self, executor, client, distribution, ledger, clock):
        transfer = ledger.get_transfer(distribution.id, "rA")
        ledger.begin_attempt(transfer.id, clock.now, clock.now + 120)
        clock.advance(120)

        result = executor.claim(distribution.id, "rA")
        assert result.status is TransferStatus.COMPLETED
        assert result.attempts == 2

    def test_slow_broadcast_outlives_exhausted_retry(self, ledger, controller, distribution, clock):
        """A late tx hash records the payment even after a retry exhausted the transfer."""
        calls = []

        def send(wallet, amount):
            calls.append(wallet)
            if len(calls) == 1:
                # Lease runs out; a second claim fails and uses the last attempt
                clock.advance(200)
                with pytest.raises(TransferFailedError):
                    executor.claim(distribution.id, "rA")
                assert ledger.get_transfer(distribution.id, "rA").status is TransferStatus.FAILED
                return "tx-first"
            raise ConnectionError("node down")

        client = Mock()
        client.send.side_effect = send
        executor = TransferExecutor(ledger, client, max_attempts=2, claim_lease_seconds=120, clock=clock)

        result = executor.claim(distribution.id, "rA")
        assert result.status is TransferStatus.COMPLETED
        assert result.tx_hash == "tx-first"
        assert result.attempts == 2

        clock.advance(DAY)
        closed = controller.close_window(distribution.id)
        assert closed.burn_record.total_burnt == 250
        assert closed.burn_record.uncollected_count == 1

    def test_unrecorded_payment_while_open(self, chain, clock):
        """A refused completion in an open window is not reported as a closed window."""
        class RefusingLedger(MemoryLedger):
            def complete_transfer(self, transfer_id, tx_hash, completed_at):
                return None

        ledger = RefusingLedger()
        calculator = RewardCalculator(ledger, clock=clock)
        distribution, _ = calculator.calculate("2025-01", 1000, [Holding("rA", 1)])
        CollectionWindowController(ledger, BurnEngine(ledger, chain), clock=clock).open_window(distribution.id)

        client = Mock()
        client.send.return_value = "tx-lost"
        executor = TransferExecutor(ledger, client, clock=clock)

        with pytest.raises(TransferFailedError) as exc_info:
            executor.claim(distribution.id, "rA")
        assert "tx-lost" in str(exc_info.value)
        assert exc_info.value.retryable is False

    @pytest.mark.timeout(30)
    def test_concurrent_claims_send_once(self, memory_ledger, chain, clock):
        calculator = RewardCalculator(memory_ledger, clock=clock)
        distribution, _ = calculator.calculate("2025-01", 1000, [Holding("rA", 1)])
        controller = CollectionWindowController(memory_ledger, BurnEngine(memory_ledger, chain), clock=clock)
        controller.open_window(distribution.id)

        sent = []
        release = threading.Event()

        def send(wallet, amount):
            sent.append(wallet)
            release.wait(5)
            return "tx-once"

        client = Mock()
        client.send.side_effect = send
        executor = TransferExecutor(memory_ledger, client, clock=clock)

        outcomes = []

        def claim():
            try:
                outcomes.append(executor.claim(distribution.id, "rA"))
            except ClaimInProgressError as e:
                outcomes.append(e)

        first = threading.Thread(target=claim)
        first.start()
        while not sent:
            time.sleep(0.01)

        others = [threading.Thread(target=claim) for _ in range(5)]
        for t in others:
            t.start()
        for t in others:
            t.join()
        release.set()
        first.join()

        assert len(sent) == 1
        assert sum(1 for o in outcomes if isinstance(o, ClaimInProgressError)) == 5
        assert memory_ledger.get_transfer(distribution.id, "rA").tx_hash == "tx-once"
