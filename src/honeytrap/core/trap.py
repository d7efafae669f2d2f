"""
Credential trap.

The fake login handler. Every well-formed submission is captured and
rejected after a randomized delay; the outcome never depends on the
submitted values or on whether the capture was stored.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

import structlog

from ..models.records import build_credential_attempt
from .exceptions import ValidationError
from .ingestion import IngestionPipeline
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"
MISSING_CREDENTIALS_MESSAGE = "Username and password are required"


@dataclass
class TrapResult:
    """The only answer the trap ever gives."""
    status_code: int = 401
    message: str = INVALID_CREDENTIALS_MESSAGE
    delay_seconds: float = 0.0


class CredentialTrap:
    """Captures login submissions and always rejects them."""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        metrics: Optional[MetricsCollector] = None,
        max_field_length: int = 255,
        delay_min_seconds: float = 0.5,
        delay_max_seconds: float = 1.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.pipeline = pipeline
        self.metrics = metrics
        self.max_field_length = max_field_length
        self.delay_min = delay_min_seconds
        self.delay_max = delay_max_seconds
        self._sleep = sleep
        self._rng = rng or random.Random()

    def sanitize(self, username: str, password: str) -> Tuple[str, str]:
        """Cap both fields; only the username is trimmed."""
        clean_username = username.strip()[: self.max_field_length]
        clean_password = password[: self.max_field_length]
        return clean_username, clean_password

    def sample_delay(self) -> float:
        """Uniform in [delay_min, delay_max)."""
        if self.delay_max <= self.delay_min:
            return self.delay_min
        return self.delay_min + self._rng.random() * (self.delay_max - self.delay_min)

    async def submit(
        self,
        ip_address: str,
        user_agent: Optional[str],
        username: Optional[str],
        password: Optional[str],
    ) -> TrapResult:
        """
        Capture one login submission.

        Raises ValidationError when either field is absent; otherwise
        always returns the authentication-failure result.
        """
        if not username or not password:
            raise ValidationError(MISSING_CREDENTIALS_MESSAGE)

        clean_username, clean_password = self.sanitize(username, password)

        try:
            attempt = build_credential_attempt(
                ip_address=ip_address,
                user_agent=user_agent,
                username=clean_username,
                password=clean_password,
            )
            self.pipeline.record(attempt)
        except Exception as e:
            logger.error(
                "Failed to submit credential attempt",
                ip=ip_address,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

        delay = self.sample_delay()
        logger.info(
            "Credential attempt captured",
            ip=ip_address,
            username_length=len(clean_username),
            password_length=len(clean_password),
            delay_ms=round(delay * 1000),
        )
        if self.metrics:
            self.metrics.record_credential_attempt(delay)

        await self._sleep(delay)

        return TrapResult(delay_seconds=delay)
