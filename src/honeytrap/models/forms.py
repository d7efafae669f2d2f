"""
Form submission models.

Both the fake login form and the PIN form accept JSON or url-encoded
bodies. Fields are optional here; absence is reported by the handlers
with their own fixed messages instead of a 422.
"""

from typing import Any, Optional

from pydantic import BaseModel, field_validator


def _coerce_scalar(v: Any) -> Optional[str]:
    """
    Truthy scalars become strings. Falsy ones (false, 0) and containers
    are treated as missing, like an empty field.
    """
    if v is None:
        return None
    if isinstance(v, str):
        return v
    if isinstance(v, (int, float, bool)):
        return str(v) if v else None
    return None


class LoginSubmission(BaseModel):
    """Body of POST /login."""

    username: Optional[str] = None
    password: Optional[str] = None

    @field_validator("username", "password", mode="before")
    def coerce_fields(cls, v: Any) -> Optional[str]:
        return _coerce_scalar(v)


class PinSubmission(BaseModel):
    """Body of the admin PIN form."""

    pin: Optional[str] = None

    @field_validator("pin", mode="before")
    def coerce_pin(cls, v: Any) -> Optional[str]:
        return _coerce_scalar(v)
