"""
Tests for revshare/projections.py and revshare/metrics.py

Tests the read-only dashboard views and Prometheus output.
"""

import pytest

from revshare.errors import DistributionNotFoundError
from revshare.metrics import RewardMetricsCollector
from revshare.projections import (
    admin_overview,
    available_rewards,
    distribution_report,
    wallet_summary,
)

DAY = 24 * 60 * 60


@pytest.fixture
def january(service, clock):
    """2025-01 closed with rA collected and rB burned."""
    distribution, _ = service.calculate_monthly("2025-01", 1000)
    service.open_window(distribution.id)
    service.claim(distribution.id, "rA")
    clock.advance(DAY)
    service.close_window(distribution.id)
    return distribution


@pytest.fixture
def february(service, january):
    """2025-02 open, nothing claimed yet."""
    distribution, _ = service.calculate_monthly("2025-02", 10)
    return service.open_window(distribution.id)


class TestDistributionReport:
    """Tests for distribution_report."""

    def test_complete(self, ledger, january):
        report = distribution_report(ledger, january.id)
        assert report.status == "complete"
        assert report.collected_amount == 750
        assert report.collected_count == 1
        assert report.uncollected_amount == 250
        assert report.burn['total_burnt'] == 250
        assert report.collection_rate == 0.75
        assert report.conserved is True

    def test_open(self, ledger, february):
        report = distribution_report(ledger, february.id)
        assert report.status == "open"
        assert report.pending_count == 3
        assert report.pending_amount == 10
        assert report.burn is None
        assert report.conserved is True

    def test_to_dict(self, ledger, january):
        data = distribution_report(ledger, january.id).to_dict()
        assert data['uncollected_amount'] == 250
        assert data['collection_rate'] == 0.75
        assert data['month'] == "2025-01"

    def test_unknown(self, ledger):
        with pytest.raises(DistributionNotFoundError):
            distribution_report(ledger, "missing")


class TestWalletViews:
    """Tests for available_rewards and wallet_summary."""

    def test_available_rewards(self, ledger, february, clock):
        rewards = available_rewards(ledger, "rA", clock.now)
        assert len(rewards) == 1
        assert rewards[0].month == "2025-02"
        assert rewards[0].amount == 4
        assert rewards[0].seconds_remaining == DAY

        assert available_rewards(ledger, "rA", february.window_deadline) == []
        assert available_rewards(ledger, "rZ", clock.now) == []

    def test_claimed_reward_not_available(self, service, ledger, february, clock):
        service.claim(february.id, "rA")
        assert available_rewards(ledger, "rA", clock.now) == []

    def test_wallet_summary(self, ledger, february, clock):
        summary = wallet_summary(ledger, "rB", clock.now)
        assert [e.month for e in summary.entries] == ["2025-02", "2025-01"]
        assert summary.total_allocated == 253
        assert summary.total_collected == 0
        assert summary.total_forfeited == 250
        assert summary.total_claimable == 3
        assert summary.entries[1].forfeited is True

    def test_wallet_summary_collected(self, ledger, january, clock):
        summary = wallet_summary(ledger, "rA", clock.now)
        assert summary.total_collected == 750
        assert summary.entries[0].tx_hash is not None
        assert summary.to_dict()['wallet_address'] == "rA"

    def test_service_wallet_views(self, service, february):
        assert service.get_available_rewards("rC")[0].amount == 3
        assert service.get_wallet_summary("rC").total_claimable == 3


class TestAdminOverview:
    """Tests for admin_overview."""

    def test_overview(self, ledger, february):
        overview = admin_overview(ledger)
        assert overview.distribution_count == 2
        assert overview.status_counts == {"pending": 0, "open": 1, "closed_burning": 0, "complete": 1}
        assert overview.total_allocated == 1010
        assert overview.total_burnt == 250
        assert overview.latest_month == "2025-02"
        assert [h.wallet_address for h in overview.holders] == ["rA", "rB", "rC"]
        assert overview.holders[0].transfer_status == "pending"
        assert overview.holders[0].share_percent == pytest.approx(33.3333)

    def test_limit(self, service, february):
        overview = service.get_admin_overview(limit=1)
        assert [d['month'] for d in overview.recent_distributions] == ["2025-02"]

    def test_empty(self, ledger):
        overview = admin_overview(ledger)
        assert overview.distribution_count == 0
        assert overview.holders == []
        assert overview.latest_month is None


class TestMetrics:
    """Tests for RewardMetricsCollector."""

    def test_collect(self, ledger, february):
        output = RewardMetricsCollector(ledger).collect()
        assert "# TYPE revshare_distributions gauge" in output
        assert 'revshare_distributions{status="complete"} 1' in output
        assert 'revshare_distributions{status="open"} 1' in output
        assert "revshare_allocated_total 1010" in output
        assert "revshare_collected_total 750" in output
        assert "revshare_burnt_total 250" in output
        assert 'revshare_open_window_transfers{status="pending"} 3' in output
        assert "revshare_burns_needing_reconciliation 0" in output
        assert output.endswith("\n")

    def test_scheduler_ticks(self, service, ledger):
        scheduler = service.create_scheduler()
        scheduler.tick()
        scheduler.tick()
        collector = service.create_metrics_collector(scheduler)
        assert collector.get_stats()["scheduler_ticks"] == 2
        assert "revshare_scheduler_ticks_total 2" in collector.collect()

    def test_collect_survives_ledger_error(self):
        class BrokenLedger:
            def list_distributions(self):
                raise RuntimeError("database gone")

        output = RewardMetricsCollector(BrokenLedger()).collect()
        assert "# Error collecting metrics: database gone" in output
