"""
Read-side analytics over captured traffic.

Every query is isolated: a failure is logged, counted and replaced by the
query's empty default, so one broken chart never takes down the others.
This deliberately does not distinguish "no data" from "query failed" for
the caller; operators see the difference in logs and metrics.
"""

from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional, TypeVar

import structlog
from sqlalchemy import distinct, func
from sqlmodel import select

from ..models.records import CredentialAttempt, RequestLog, utcnow
from ..models.stats import (
    OverviewStats,
    RecentAttempt,
    RecentAttempts,
    RequestDistribution,
    TimelineSeries,
    TopIPs,
    TopUsernames,
)
from .metrics import MetricsCollector
from .store import PersistenceStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

UNKNOWN_PATH_LABEL = "Unknown"


def _date_label(value: Any) -> str:
    """DATE() yields a string on SQLite and a date on Postgres."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class StatsAggregator:
    """Timelines, top-N rankings and distributions for the admin console."""

    def __init__(
        self,
        store: PersistenceStore,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.metrics = metrics
        self.clock = clock

    def _isolated(self, name: str, query: Callable[[], T], default: Callable[[], T]) -> T:
        try:
            return query()
        except Exception as e:
            logger.error(
                "Analytics query failed",
                query=name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            if self.metrics:
                self.metrics.record_query_failure(name)
            return default()

    def timeline(self, days: int = 7) -> TimelineSeries:
        """Attempts per calendar date since now - days, ascending, sparse."""
        def query() -> TimelineSeries:
            since = self.clock() - timedelta(days=days)
            day = func.date(CredentialAttempt.timestamp)
            stmt = (
                select(day, func.count(CredentialAttempt.id))
                .where(CredentialAttempt.timestamp >= since)
                .group_by(day)
                .order_by(day.asc())
            )
            with self.store.session() as session:
                rows = session.exec(stmt).all()
            return TimelineSeries(
                dates=[_date_label(d) for d, _ in rows],
                counts=[int(c) for _, c in rows],
            )

        return self._isolated("timeline", query, TimelineSeries)

    def top_ips(self, limit: int = 10) -> TopIPs:
        def query() -> TopIPs:
            attempts = func.count(CredentialAttempt.id)
            stmt = (
                select(CredentialAttempt.ip_address, attempts)
                .group_by(CredentialAttempt.ip_address)
                .order_by(attempts.desc(), CredentialAttempt.ip_address.asc())
                .limit(limit)
            )
            with self.store.session() as session:
                rows = session.exec(stmt).all()
            return TopIPs(ips=[ip for ip, _ in rows], counts=[int(c) for _, c in rows])

        return self._isolated("top_ips", query, TopIPs)

    def top_usernames(self, limit: int = 20) -> TopUsernames:
        def query() -> TopUsernames:
            frequency = func.count(CredentialAttempt.id)
            stmt = (
                select(CredentialAttempt.username_attempted, frequency)
                .where(CredentialAttempt.username_attempted.is_not(None))
                .group_by(CredentialAttempt.username_attempted)
                .order_by(frequency.desc(), CredentialAttempt.username_attempted.asc())
                .limit(limit)
            )
            with self.store.session() as session:
                rows = session.exec(stmt).all()
            return TopUsernames(
                usernames=[u for u, _ in rows],
                counts=[int(c) for _, c in rows],
            )

        return self._isolated("top_usernames", query, TopUsernames)

    def request_distribution(self, limit: int = 10) -> RequestDistribution:
        def query() -> RequestDistribution:
            hits = func.count(RequestLog.id)
            stmt = (
                select(RequestLog.request_path, hits)
                .group_by(RequestLog.request_path)
                .order_by(hits.desc(), RequestLog.request_path.asc())
                .limit(limit)
            )
            with self.store.session() as session:
                rows = session.exec(stmt).all()
            return RequestDistribution(
                paths=[p if p is not None else UNKNOWN_PATH_LABEL for p, _ in rows],
                counts=[int(c) for _, c in rows],
            )

        return self._isolated("request_distribution", query, RequestDistribution)

    def overview(self) -> OverviewStats:
        """
        Dashboard summary cards.

        Each figure is computed on its own; a failing sub-query leaves its
        figure at zero/None and the rest intact.
        """
        def scalar(stmt: Any) -> Any:
            with self.store.session() as session:
                return session.exec(stmt).one()

        total_requests = self._isolated(
            "overview_total_requests",
            lambda: int(scalar(select(func.count(RequestLog.id))) or 0),
            lambda: 0,
        )
        total_attempts = self._isolated(
            "overview_total_attempts",
            lambda: int(scalar(select(func.count(CredentialAttempt.id))) or 0),
            lambda: 0,
        )
        unique_ips = self._isolated(
            "overview_unique_ips",
            lambda: int(scalar(select(func.count(distinct(CredentialAttempt.ip_address)))) or 0),
            lambda: 0,
        )
        first_attempt, last_attempt = self._isolated(
            "overview_date_range",
            lambda: tuple(scalar(select(
                func.min(CredentialAttempt.timestamp),
                func.max(CredentialAttempt.timestamp),
            ))),
            lambda: (None, None),
        )

        return OverviewStats(
            total_requests=total_requests,
            total_attempts=total_attempts,
            unique_ips=unique_ips,
            first_attempt=first_attempt,
            last_attempt=last_attempt,
        )

    def recent_attempts(self, limit: int = 25, offset: int = 0) -> RecentAttempts:
        """Newest attempts first, with the overall total for pagination."""
        def query() -> RecentAttempts:
            stmt = (
                select(CredentialAttempt)
                .order_by(CredentialAttempt.timestamp.desc(), CredentialAttempt.id.desc())
                .offset(offset)
                .limit(limit)
            )
            with self.store.session() as session:
                total = session.exec(select(func.count(CredentialAttempt.id))).one()
                rows = session.exec(stmt).all()
                attempts = [
                    RecentAttempt(
                        id=row.id,
                        timestamp=row.timestamp,
                        ip_address=row.ip_address,
                        username=row.username_attempted,
                        password_length=row.password_length,
                        user_agent=row.user_agent,
                    )
                    for row in rows
                ]
            return RecentAttempts(total=int(total or 0), attempts=attempts)

        return self._isolated("recent_attempts", query, RecentAttempts)
