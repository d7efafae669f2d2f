"""
Data models package.

Contains:
- Persistence record schemas (SQLModel tables)
- Analytics response models
- Form submission models
"""

from .forms import LoginSubmission, PinSubmission
from .records import (
    ADMIN_PIN_KEY,
    AdminAccessRecord,
    ConfigEntry,
    CredentialAttempt,
    RequestLog,
    build_admin_access_record,
    build_credential_attempt,
    build_request_log,
    utcnow,
    validate_ip,
)
from .stats import (
    OverviewStats,
    RecentAttempt,
    RecentAttempts,
    RequestDistribution,
    StatsBundle,
    TimelineSeries,
    TopIPs,
    TopUsernames,
)

__all__ = [
    # Records
    "ADMIN_PIN_KEY",
    "AdminAccessRecord",
    "ConfigEntry",
    "CredentialAttempt",
    "RequestLog",
    "build_admin_access_record",
    "build_credential_attempt",
    "build_request_log",
    "utcnow",
    "validate_ip",

    # Forms
    "LoginSubmission",
    "PinSubmission",

    # Analytics
    "OverviewStats",
    "RecentAttempt",
    "RecentAttempts",
    "RequestDistribution",
    "StatsBundle",
    "TimelineSeries",
    "TopIPs",
    "TopUsernames",
]
