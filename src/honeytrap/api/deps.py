"""
Shared request helpers and FastAPI dependencies.

Components live on app.state, created by the lifespan handler; these
accessors keep route handlers free of globals.
"""

import json
from pathlib import Path
from typing import Optional, Type, TypeVar

import structlog
from fastapi import Request
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.exceptions import RateLimitError, SessionRequiredError
from ..core.ratelimit import RateLimiter
from ..models.records import UNSPECIFIED_IP, validate_ip

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def get_client_ip(request: Request) -> str:
    """
    Resolve the client address.

    X-Forwarded-For is only read when trust_proxy is on, and then only
    the entry appended by the outermost trusted proxy is used; entries to
    its left are client-supplied. Candidates that are not valid IP
    addresses are skipped; the unspecified address is the last resort so
    every record carries an IP.
    """
    candidates = []
    if getattr(request.app.state, "trust_proxy", False):
        xff = request.headers.get("x-forwarded-for")
        hops = getattr(request.app.state, "trusted_proxy_hops", 1)
        entries = [e.strip() for e in xff.split(",") if e.strip()] if xff else []
        if len(entries) >= hops:
            candidates.append(entries[-hops])
    if request.client and request.client.host:
        candidates.append(request.client.host)

    for candidate in candidates:
        try:
            return validate_ip(candidate)
        except ValueError:
            continue
    return UNSPECIFIED_IP


async def read_submission(request: Request, model: Type[M]) -> M:
    """
    Parse a JSON or url-encoded body into `model`.

    Unparseable bodies, including multipart bodies the framework rejects,
    produce an empty model so the handler reports the missing field with
    its own fixed message.
    """
    content_type = request.headers.get("content-type", "")
    data: dict = {}
    try:
        if content_type.startswith("application/json"):
            payload = await request.json()
            if isinstance(payload, dict):
                data = payload
        else:
            form = await request.form()
            data = {k: v for k, v in form.items() if isinstance(v, str)}
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError, StarletteHTTPException) as e:
        logger.debug("Unparseable submission body", path=request.url.path, error=str(e))
    return model.model_validate(data)


def parse_int(value: Optional[str], default: int) -> int:
    """Lenient query parsing: anything non-numeric falls back to the default."""
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


async def enforce_rate_limit(request: Request, limiter: RateLimiter, key: str) -> None:
    """Run a surface's limiter; counts the rejection before re-raising."""
    try:
        await limiter.enforce(key)
    except RateLimitError:
        metrics = getattr(request.app.state, "metrics", None)
        if metrics:
            metrics.record_rate_limited(limiter.name)
        raise


def admin_path(request: Request) -> str:
    return request.app.state.admin_path


async def require_admin(request: Request) -> None:
    """Gate for analytics routes; anonymous, expired and revoked sessions all redirect."""
    if not request.app.state.gate.is_active(request.session):
        # Drop a stale or replayed cookie instead of re-signing it
        request.session.clear()
        raise SessionRequiredError(redirect_to=admin_path(request))
