"""
Persistence record schemas.

Four tables, all append-only except app_config. No record refers to
another; analytics correlate rows by IP address and timestamp only.
Column names follow the snake_case layout of the deployed database.
"""

import ipaddress
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

ADMIN_PIN_KEY = "admin_pin"
UNSPECIFIED_IP = "0.0.0.0"


def utcnow() -> datetime:
    """
    Capture-time timestamp in naive UTC.

    Every timestamp column is a plain DateTime without time zone, so
    SQLite and Postgres store and compare these values alike.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def validate_ip(value: Optional[str]) -> str:
    """
    Return the canonical form of an IPv4/IPv6 address.

    Raises ValueError for anything that is not an address. IPv4-mapped
    IPv6 addresses are reported as plain IPv4.
    """
    if not value:
        raise ValueError("IP address is required")
    address = ipaddress.ip_address(value.strip())
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return str(address)


def truncate(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return value[:limit]


class RequestLog(SQLModel, table=True):
    """One row per inbound HTTP request, including 404s."""

    __tablename__ = "general_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    ip_address: str = Field(max_length=45, index=True)
    user_agent: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow, sa_type=DateTime(), index=True)
    request_method: Optional[str] = Field(default=None, max_length=10)
    request_path: Optional[str] = Field(default=None, max_length=255, index=True)
    referer: Optional[str] = Field(default=None, max_length=500)


class CredentialAttempt(SQLModel, table=True):
    """One row per submission to the fake login form."""

    __tablename__ = "credential_capture"

    id: Optional[int] = Field(default=None, primary_key=True)
    ip_address: str = Field(max_length=45, index=True)
    user_agent: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow, sa_type=DateTime(), index=True)
    username_attempted: Optional[str] = Field(default=None, max_length=255, index=True)
    # Cleartext on purpose: captured secrets are kept for forensic analysis.
    password_attempted: Optional[str] = Field(default=None, max_length=255)
    password_length: Optional[int] = None


class AdminAccessRecord(SQLModel, table=True):
    """One row per PIN submission to the admin console."""

    __tablename__ = "admin_access_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    ip_address: str = Field(max_length=45, index=True)
    timestamp: datetime = Field(default_factory=utcnow, sa_type=DateTime(), index=True)
    pin_entered: Optional[str] = Field(default=None, max_length=255)
    access_granted: bool = Field(default=False)
    session_id: Optional[str] = Field(default=None, max_length=255)


class ConfigEntry(SQLModel, table=True):
    """Key/value configuration; "admin_pin" gates the admin console."""

    __tablename__ = "app_config"

    config_key: str = Field(primary_key=True, max_length=50)
    config_value: str = Field(max_length=255)
    description: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())


def build_request_log(
    ip_address: str,
    user_agent: Optional[str],
    method: Optional[str],
    path: Optional[str],
    referer: Optional[str],
) -> RequestLog:
    return RequestLog(
        ip_address=validate_ip(ip_address),
        user_agent=user_agent,
        request_method=truncate(method, 10),
        request_path=truncate(path, 255),
        referer=truncate(referer, 500),
    )


def build_credential_attempt(
    ip_address: str,
    user_agent: Optional[str],
    username: str,
    password: str,
) -> CredentialAttempt:
    """Construct an attempt from already-sanitized fields."""
    return CredentialAttempt(
        ip_address=validate_ip(ip_address),
        user_agent=user_agent,
        username_attempted=username,
        password_attempted=password,
        password_length=len(password),
    )


def build_admin_access_record(
    ip_address: str,
    pin_entered: Optional[str],
    access_granted: bool,
    session_id: Optional[str] = None,
) -> AdminAccessRecord:
    if access_granted and not session_id:
        raise ValueError("granted access requires a session id")
    return AdminAccessRecord(
        ip_address=validate_ip(ip_address),
        pin_entered=truncate(pin_entered, 255),
        access_granted=access_granted,
        session_id=session_id if access_granted else None,
    )
