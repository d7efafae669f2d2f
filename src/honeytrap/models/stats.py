"""
Analytics response models.

Shapes consumed by the dashboard charts. Aliases are the camelCase keys
the front end reads; every model has an empty/zero default so a failed
query can still be rendered.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ChartModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TimelineSeries(_ChartModel):
    """Credential attempts per calendar date, ascending. Empty days are omitted."""

    dates: List[str] = Field(default_factory=list)
    counts: List[int] = Field(default_factory=list)


class TopIPs(_ChartModel):
    ips: List[str] = Field(default_factory=list)
    counts: List[int] = Field(default_factory=list)


class TopUsernames(_ChartModel):
    usernames: List[str] = Field(default_factory=list)
    counts: List[int] = Field(default_factory=list)


class RequestDistribution(_ChartModel):
    paths: List[str] = Field(default_factory=list)
    counts: List[int] = Field(default_factory=list)


class OverviewStats(_ChartModel):
    total_requests: int = Field(default=0, alias="totalRequests")
    total_attempts: int = Field(default=0, alias="totalAttempts")
    unique_ips: int = Field(default=0, alias="uniqueIPs")
    first_attempt: Optional[datetime] = Field(default=None, alias="firstAttempt")
    last_attempt: Optional[datetime] = Field(default=None, alias="lastAttempt")


class RecentAttempt(_ChartModel):
    id: int
    timestamp: datetime
    ip_address: str = Field(alias="ipAddress")
    username: Optional[str] = None
    password_length: Optional[int] = Field(default=None, alias="passwordLength")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")


class RecentAttempts(_ChartModel):
    total: int = 0
    attempts: List[RecentAttempt] = Field(default_factory=list)


class StatsBundle(_ChartModel):
    """Payload of the chart API."""

    timeline: TimelineSeries = Field(default_factory=TimelineSeries)
    top_ips: TopIPs = Field(default_factory=TopIPs, alias="topIPs")
    top_usernames: TopUsernames = Field(default_factory=TopUsernames, alias="topUsernames")
    distribution: RequestDistribution = Field(default_factory=RequestDistribution)
