"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func
from sqlmodel import SQLModel, select

from honeytrap.config import Settings, get_settings, reload_settings
from honeytrap.core.store import PersistenceStore
from honeytrap.main import create_app
from honeytrap.models.records import ADMIN_PIN_KEY, CredentialAttempt, RequestLog

TEST_PIN = "3591"
ATTACKER_IP = "203.0.113.10"


class FakeClock:
    """Deterministic monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingPipeline:
    """Stands in for the ingestion pipeline and keeps what it was handed."""

    def __init__(self, fail: bool = False) -> None:
        self.records: List[SQLModel] = []
        self.fail = fail

    def record(self, entry: SQLModel) -> bool:
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.records.append(entry)
        return True


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_pipeline() -> RecordingPipeline:
    return RecordingPipeline()


@pytest.fixture
def memory_store() -> Generator[PersistenceStore, None, None]:
    """Fresh in-memory database with all tables created."""
    store = PersistenceStore("sqlite:///:memory:")
    store.create_all()
    yield store
    store.dispose()


@pytest.fixture
def provisioned_store(memory_store: PersistenceStore) -> PersistenceStore:
    memory_store.set_config(ADMIN_PIN_KEY, TEST_PIN, "test PIN")
    return memory_store


@pytest.fixture
def test_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Dict[str, str]:
    """Environment for an isolated app: temp database, no trap delay, one trusted proxy."""
    env = {
        "HONEYTRAP_DATABASE_URL": f"sqlite:///{tmp_path / 'honeytrap-test.db'}",
        "HONEYTRAP_DATABASE_DEFAULT_ADMIN_PIN": TEST_PIN,
        "HONEYTRAP_TRAP_DELAY_MIN_MS": "0",
        "HONEYTRAP_TRAP_DELAY_MAX_MS": "0",
        "HONEYTRAP_SECURITY_SESSION_SECRET": "test-session-secret",
        "HONEYTRAP_LOG_LEVEL": "DEBUG",
        "HONEYTRAP_TRUST_PROXY": "true",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture
def test_settings(test_env: Dict[str, str]) -> Generator[Settings, None, None]:
    with patch("honeytrap.config.load_config_file", return_value={}):
        settings = reload_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def test_client(test_settings: Settings) -> Generator[TestClient, None, None]:
    """FastAPI test client around a freshly built app."""
    app = create_app(test_settings)
    with TestClient(
        app,
        headers={"X-Forwarded-For": ATTACKER_IP, "User-Agent": "pytest-agent/1.0"},
        follow_redirects=False,
    ) as client:
        yield client


def drain(client: TestClient) -> None:
    """Block until the ingestion pipeline has written everything queued."""
    client.portal.call(client.app.state.pipeline.drain)


def count_rows(store: PersistenceStore, model: Any, *criteria: Any) -> int:
    with store.session() as session:
        stmt = select(func.count()).select_from(model)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        return session.exec(stmt).one()


def add_attempt(
    store: PersistenceStore,
    ip_address: str = ATTACKER_IP,
    username: Optional[str] = "admin",
    password: str = "hunter2",
    timestamp: Optional[datetime] = None,
) -> CredentialAttempt:
    attempt = CredentialAttempt(
        ip_address=ip_address,
        user_agent="pytest-agent/1.0",
        username_attempted=username,
        password_attempted=password,
        password_length=len(password),
    )
    if timestamp is not None:
        attempt.timestamp = timestamp
    return store.add(attempt)


def add_request(store: PersistenceStore, path: Optional[str], ip_address: str = ATTACKER_IP) -> RequestLog:
    return store.add(RequestLog(ip_address=ip_address, request_method="GET", request_path=path))
