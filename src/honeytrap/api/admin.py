"""
Admin console endpoints.

Mounted under the configured admin path (default /admin2430.html):
- GET/POST ""        PIN prompt and submission
- GET /dashboard     Overview page
- GET /api/stats     Chart data
- GET /api/recent    Paginated recent attempts
- POST /logout       End the session
"""

import asyncio
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from ..core.auth import SESSION_LOGIN_TIME, PinOutcome
from ..core.exceptions import AuthDeniedError, MisconfigurationError, ValidationError
from ..models.forms import PinSubmission
from ..models.stats import StatsBundle
from .deps import (
    admin_path,
    enforce_rate_limit,
    get_client_ip,
    parse_int,
    read_submission,
    require_admin,
    templates,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

ADMIN_LOGIN_TITLE = "Admin Access"
DASHBOARD_TITLE = "Admin Dashboard - Honeypot Monitor"


def _render_pin_page(request: Request, error: Optional[str] = None, status_code: int = 200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "admin_login.html",
        {"title": ADMIN_LOGIN_TITLE, "error": error, "action": admin_path(request)},
        status_code=status_code,
    )


@router.get("", response_class=HTMLResponse)
async def pin_page(request: Request) -> Response:
    """PIN entry page; an authenticated session goes straight to the dashboard."""
    if request.app.state.gate.is_active(request.session):
        return RedirectResponse(url=f"{admin_path(request)}/dashboard", status_code=302)
    return _render_pin_page(request)


@router.post("", response_class=HTMLResponse)
async def submit_pin(request: Request) -> Response:
    """
    Validate a PIN.

    302 to the dashboard on success, 401 on a wrong PIN, 500 when the PIN
    has not been provisioned, 400 when the PIN is missing. The admin rate
    limit runs first and applies regardless of PIN correctness.
    """
    ip_address = get_client_ip(request)
    await enforce_rate_limit(request, request.app.state.admin_limiter, ip_address)

    submission = await read_submission(request, PinSubmission)
    gate = request.app.state.gate

    try:
        result = await gate.submit_pin(ip_address, submission.pin, request.session)
    except ValidationError as e:
        return _render_pin_page(request, error=str(e), status_code=e.status_code)

    if result.outcome is PinOutcome.GRANTED:
        return RedirectResponse(url=f"{admin_path(request)}/dashboard", status_code=302)

    if result.outcome is PinOutcome.SYSTEM_ERROR:
        error = MisconfigurationError()
    else:
        error = AuthDeniedError()
    return _render_pin_page(request, error=str(error), status_code=error.status_code)


@router.get("/dashboard", response_class=HTMLResponse, dependencies=[Depends(require_admin)])
async def dashboard(request: Request) -> HTMLResponse:
    stats = await asyncio.to_thread(request.app.state.stats.overview)
    return templates.TemplateResponse(
        request,
        "admin_dashboard.html",
        {
            "title": DASHBOARD_TITLE,
            "stats": stats,
            "login_time": request.session.get(SESSION_LOGIN_TIME),
            "admin_path": admin_path(request),
        },
    )


@router.get("/api/stats", dependencies=[Depends(require_admin)])
async def chart_stats(request: Request, days: Optional[str] = None) -> JSONResponse:
    """Timeline, top IPs, top usernames and path distribution, computed concurrently."""
    settings = request.app.state.settings.admin
    aggregator = request.app.state.stats
    window = parse_int(days, settings.default_days)
    if window < 1:
        window = settings.default_days

    timeline, top_ips, top_usernames, distribution = await asyncio.gather(
        asyncio.to_thread(aggregator.timeline, window),
        asyncio.to_thread(aggregator.top_ips, settings.top_ips_limit),
        asyncio.to_thread(aggregator.top_usernames, settings.top_usernames_limit),
        asyncio.to_thread(aggregator.request_distribution, settings.distribution_limit),
    )

    bundle = StatsBundle(
        timeline=timeline,
        top_ips=top_ips,
        top_usernames=top_usernames,
        distribution=distribution,
    )
    return JSONResponse(bundle.model_dump(mode="json", by_alias=True))


@router.get("/api/recent", dependencies=[Depends(require_admin)])
async def recent_attempts(
    request: Request,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
) -> JSONResponse:
    settings = request.app.state.settings.admin
    page_size = parse_int(limit, settings.recent_default_limit)
    page_size = min(max(page_size, 1), settings.recent_max_limit)
    start = max(parse_int(offset, 0), 0)

    data = await asyncio.to_thread(request.app.state.stats.recent_attempts, page_size, start)
    payload: Dict[str, Any] = data.model_dump(mode="json", by_alias=True)
    return JSONResponse(payload)


@router.post("/logout")
async def logout(request: Request) -> RedirectResponse:
    """Always succeeds; logging out an anonymous session is a plain redirect."""
    request.app.state.gate.logout(request.session)
    return RedirectResponse(url=admin_path(request), status_code=302)
