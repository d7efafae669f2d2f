"""
Tests for StatsAggregator queries.

Rows are inserted directly with fixed timestamps; the aggregator runs
against a fixed clock.
"""

from datetime import datetime, timedelta

import pytest
from prometheus_client import CollectorRegistry
from sqlmodel import SQLModel

from conftest import add_attempt, add_request
from honeytrap.core.metrics import MetricsCollector
from honeytrap.core.stats import UNKNOWN_PATH_LABEL, StatsAggregator
from honeytrap.core.store import PersistenceStore

NOW = datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture
def aggregator(memory_store: PersistenceStore) -> StatsAggregator:
    return StatsAggregator(store=memory_store, clock=lambda: NOW)


class TestTimeline:
    def test_groups_by_date_ascending(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        add_attempt(memory_store, timestamp=NOW - timedelta(hours=1))
        add_attempt(memory_store, timestamp=NOW - timedelta(hours=2))
        add_attempt(memory_store, timestamp=NOW - timedelta(days=2))
        add_attempt(memory_store, timestamp=NOW - timedelta(days=18))

        timeline = aggregator.timeline(days=7)

        assert timeline.dates == ["2026-10-17", "2026-10-19"]
        assert timeline.counts == [1, 2]

    def test_days_parameter_widens_window(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        add_attempt(memory_store, timestamp=NOW - timedelta(days=18))

        assert aggregator.timeline(days=7).dates == []
        assert aggregator.timeline(days=30).dates == ["2026-10-01"]

    def test_empty_store(self, aggregator: StatsAggregator) -> None:
        timeline = aggregator.timeline()

        assert timeline.dates == []
        assert timeline.counts == []


class TestRankings:
    def test_top_ips_ordered_by_count(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        for _ in range(3):
            add_attempt(memory_store, ip_address="198.51.100.1")
        add_attempt(memory_store, ip_address="198.51.100.2")
        add_attempt(memory_store, ip_address="198.51.100.3")
        add_attempt(memory_store, ip_address="198.51.100.3")

        top = aggregator.top_ips(limit=2)

        assert top.ips == ["198.51.100.1", "198.51.100.3"]
        assert top.counts == [3, 2]

    def test_top_usernames_skip_null(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        add_attempt(memory_store, username="admin")
        add_attempt(memory_store, username="admin")
        add_attempt(memory_store, username="root")
        add_attempt(memory_store, username=None)

        top = aggregator.top_usernames()

        assert top.usernames == ["admin", "root"]
        assert top.counts == [2, 1]

    def test_distribution_labels_missing_path(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        add_request(memory_store, "/login")
        add_request(memory_store, "/login")
        add_request(memory_store, "/wp-admin")
        add_request(memory_store, None)

        dist = aggregator.request_distribution()

        assert dist.paths[0] == "/login"
        assert dist.counts[0] == 2
        assert UNKNOWN_PATH_LABEL in dist.paths
        assert sum(dist.counts) == 4


class TestOverview:
    def test_empty_store(self, aggregator: StatsAggregator) -> None:
        overview = aggregator.overview()

        assert overview.total_requests == 0
        assert overview.total_attempts == 0
        assert overview.unique_ips == 0
        assert overview.first_attempt is None
        assert overview.last_attempt is None

    def test_counts_and_range(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        add_request(memory_store, "/")
        add_request(memory_store, "/login")
        add_request(memory_store, "/login")
        first = NOW - timedelta(days=3)
        last = NOW - timedelta(minutes=5)
        add_attempt(memory_store, ip_address="198.51.100.1", timestamp=first)
        add_attempt(memory_store, ip_address="198.51.100.1", timestamp=NOW - timedelta(days=1))
        add_attempt(memory_store, ip_address="198.51.100.2", timestamp=last)

        overview = aggregator.overview()

        assert overview.total_requests == 3
        assert overview.total_attempts == 3
        assert overview.unique_ips == 2
        assert overview.first_attempt == first
        assert overview.last_attempt == last

    def test_serializes_with_camel_case_keys(self, aggregator: StatsAggregator) -> None:
        payload = aggregator.overview().model_dump(mode="json", by_alias=True)

        assert set(payload) == {"totalRequests", "totalAttempts", "uniqueIPs", "firstAttempt", "lastAttempt"}


class TestRecentAttempts:
    def test_newest_first_with_total(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        for n in range(5):
            add_attempt(memory_store, username=f"user{n}", timestamp=NOW - timedelta(minutes=10 - n))

        page = aggregator.recent_attempts(limit=2, offset=0)

        assert page.total == 5
        assert [a.username for a in page.attempts] == ["user4", "user3"]

    def test_offset(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        for n in range(5):
            add_attempt(memory_store, username=f"user{n}", timestamp=NOW - timedelta(minutes=10 - n))

        page = aggregator.recent_attempts(limit=2, offset=4)

        assert page.total == 5
        assert [a.username for a in page.attempts] == ["user0"]

    def test_exposes_length_not_password(self, memory_store: PersistenceStore, aggregator: StatsAggregator) -> None:
        add_attempt(memory_store, password="correct horse")

        payload = aggregator.recent_attempts().model_dump(mode="json", by_alias=True)
        attempt = payload["attempts"][0]

        assert attempt["passwordLength"] == 13
        assert "correct horse" not in str(payload)
        assert set(attempt) == {"id", "timestamp", "ipAddress", "username", "passwordLength", "userAgent"}


class TestQueryIsolation:
    """A failing query falls back to its default without affecting the others."""

    def test_missing_table_only_affects_its_queries(self, memory_store: PersistenceStore) -> None:
        registry = CollectorRegistry()
        aggregator = StatsAggregator(
            store=memory_store,
            metrics=MetricsCollector(registry=registry),
            clock=lambda: NOW,
        )
        add_attempt(memory_store, timestamp=NOW - timedelta(hours=1))
        SQLModel.metadata.tables["general_logs"].drop(memory_store.engine)

        overview = aggregator.overview()
        distribution = aggregator.request_distribution()

        assert overview.total_requests == 0
        assert overview.total_attempts == 1
        assert overview.unique_ips == 1
        assert distribution.paths == []
        assert aggregator.timeline().counts == [1]
        assert registry.get_sample_value(
            "honeytrap_query_failures_total", {"query": "overview_total_requests"}
        ) == 1.0

    def test_missing_tables_return_defaults(self, memory_store: PersistenceStore) -> None:
        SQLModel.metadata.drop_all(memory_store.engine)
        aggregator = StatsAggregator(store=memory_store, clock=lambda: NOW)

        assert aggregator.top_ips().ips == []
        assert aggregator.top_usernames().usernames == []
        assert aggregator.recent_attempts().total == 0
        assert aggregator.overview().total_attempts == 0
