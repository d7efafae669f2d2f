"""
Health checker for the service's dependencies.

The database is the only hard dependency; the ingestion pipeline is
reported for operators but does not fail the check, since captures
degrade rather than break when writers are down.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from .ingestion import IngestionPipeline
from .store import PersistenceStore

logger = structlog.get_logger(__name__)


@dataclass
class HealthStatus:
    """Overall health status."""
    is_healthy: bool
    database: str  # "connected" or "disconnected"
    timestamp: str
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class HealthChecker:
    """Probes the persistence store and reports pipeline state."""

    def __init__(self, store: PersistenceStore, pipeline: Optional[IngestionPipeline] = None) -> None:
        self.store = store
        self.pipeline = pipeline

    async def check_all(self) -> HealthStatus:
        timestamp = datetime.now(timezone.utc).isoformat()
        details: Dict[str, Any] = {}
        if self.pipeline is not None:
            details["ingestion"] = {
                "running": self.pipeline.is_healthy(),
                "pending": self.pipeline.pending,
            }

        try:
            await asyncio.to_thread(self.store.ping)
        except Exception as e:
            logger.error("Health check failed", error=str(e), error_type=type(e).__name__)
            return HealthStatus(
                is_healthy=False,
                database="disconnected",
                timestamp=timestamp,
                error=str(e),
                details=details,
            )

        return HealthStatus(
            is_healthy=True,
            database="connected",
            timestamp=timestamp,
            details=details,
        )
