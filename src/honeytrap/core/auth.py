"""
Admin PIN gate.

Validates a submitted PIN against the stored "admin_pin" entry, flips the
session into the authenticated state and records every submission. The
cookie transport belongs to the host framework. The gate keeps the set of
live session ids itself, so logging out revokes a session even when a
copy of its cookie is replayed.
"""

import asyncio
import hmac
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, MutableMapping, Optional

import structlog

from ..models.records import ADMIN_PIN_KEY, build_admin_access_record, utcnow
from .exceptions import ValidationError
from .ingestion import IngestionPipeline
from .metrics import MetricsCollector
from .store import PersistenceStore

logger = structlog.get_logger(__name__)

SESSION_ADMIN_FLAG = "is_admin"
SESSION_LOGIN_TIME = "login_time"
SESSION_ID = "session_id"

PIN_REQUIRED_MESSAGE = "PIN is required"

Session = MutableMapping[str, Any]


class PinOutcome(str, Enum):
    """Result of a PIN submission."""

    GRANTED = "granted"
    DENIED = "denied"
    SYSTEM_ERROR = "system_error"


@dataclass
class PinResult:
    outcome: PinOutcome
    session_id: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.outcome is PinOutcome.GRANTED


def constant_time_equals(provided: str, expected: str) -> bool:
    """
    Compare two secrets in time independent of their content.

    Equal-length inputs go through hmac.compare_digest directly. When the
    lengths differ a dummy comparison of the same size still runs, so the
    response time reveals neither the PIN length nor its prefix.
    """
    a = provided.encode("utf-8")
    b = expected.encode("utf-8")
    if len(a) != len(b):
        hmac.compare_digest(a, bytes(len(a)))
        return False
    return hmac.compare_digest(a, b)


def is_authenticated(session: Optional[Session]) -> bool:
    """An absent, expired or anonymous session all read the same: False."""
    return bool(session) and session.get(SESSION_ADMIN_FLAG) is True


class AdminGate:
    """
    PIN validation and session state for the analytics console.

    States: anonymous -> (PIN accepted) -> authenticated -> (logout or
    expiry) -> anonymous.
    """

    def __init__(
        self,
        store: PersistenceStore,
        pipeline: IngestionPipeline,
        metrics: Optional[MetricsCollector] = None,
        session_ttl_seconds: float = 900,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.store = store
        self.pipeline = pipeline
        self.metrics = metrics
        self.session_ttl = session_ttl_seconds
        self.clock = clock or time.monotonic
        # session_id -> expiry on self.clock
        self._live: Dict[str, float] = {}

    async def submit_pin(self, ip_address: str, pin: Optional[str], session: Session) -> PinResult:
        """
        Validate a PIN submission.

        The caller enforces the admin rate limit first. A missing PIN is a
        ValidationError and is not recorded; every other call writes
        exactly one admin access record.
        """
        if not pin:
            raise ValidationError(PIN_REQUIRED_MESSAGE)

        try:
            config = await asyncio.to_thread(self.store.get_config, ADMIN_PIN_KEY)
        except Exception as e:
            logger.error("Failed to load admin PIN", error=str(e), exc_info=True)
            config = None

        if config is None:
            logger.error("Admin PIN not found in configuration store", ip=ip_address)
            self._record(ip_address, pin, granted=False)
            self._count(PinOutcome.SYSTEM_ERROR)
            return PinResult(outcome=PinOutcome.SYSTEM_ERROR)

        if not constant_time_equals(pin, config.config_value):
            self._record(ip_address, pin, granted=False)
            self._count(PinOutcome.DENIED)
            logger.warning("Admin access denied", ip=ip_address)
            return PinResult(outcome=PinOutcome.DENIED)

        session_id = self.start_session(session)
        self._record(ip_address, pin, granted=True, session_id=session_id)
        self._count(PinOutcome.GRANTED)
        logger.info("Admin access granted", ip=ip_address)
        return PinResult(outcome=PinOutcome.GRANTED, session_id=session_id)

    def is_active(self, session: Optional[Session]) -> bool:
        """
        True only for an authenticated session whose id is still live.

        Each successful check slides the expiry forward, matching the
        cookie's own max age.
        """
        if not is_authenticated(session):
            return False
        session_id = session.get(SESSION_ID)
        expires_at = self._live.get(session_id) if session_id else None
        now = self.clock()
        if expires_at is None or expires_at <= now:
            self._live.pop(session_id, None)
            return False
        self._live[session_id] = now + self.session_ttl
        return True

    def start_session(self, session: Session) -> str:
        """Replace whatever the session held with a fresh authenticated state."""
        self._revoke(session)
        session.clear()
        self._prune()
        session_id = secrets.token_urlsafe(32)
        self._live[session_id] = self.clock() + self.session_ttl
        session[SESSION_ADMIN_FLAG] = True
        session[SESSION_LOGIN_TIME] = utcnow().isoformat()
        session[SESSION_ID] = session_id
        return session_id

    def logout(self, session: Optional[Session]) -> None:
        """Destroy the session. Safe to call on an anonymous session."""
        if session:
            logger.info("Admin session ended", session_id=session.get(SESSION_ID))
            self._revoke(session)
            session.clear()

    def _revoke(self, session: Optional[Session]) -> None:
        if session and session.get(SESSION_ID):
            self._live.pop(session[SESSION_ID], None)

    def _prune(self) -> None:
        now = self.clock()
        for session_id in [s for s, expires_at in self._live.items() if expires_at <= now]:
            del self._live[session_id]

    def _record(self, ip_address: str, pin: str, granted: bool, session_id: Optional[str] = None) -> None:
        try:
            self.pipeline.record(
                build_admin_access_record(
                    ip_address=ip_address,
                    pin_entered=pin,
                    access_granted=granted,
                    session_id=session_id,
                )
            )
        except Exception as e:
            logger.error("Failed to submit admin access record", error=str(e), exc_info=True)

    def _count(self, outcome: PinOutcome) -> None:
        if self.metrics:
            self.metrics.record_admin_attempt(outcome.value)
