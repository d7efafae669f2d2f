"""
Public surface: the fake login page and its credential trap.

POST /login never grants access. A well-formed submission always ends in
401 "Invalid username or password", whatever happened to its capture.
"""

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from ..core.exceptions import ValidationError
from ..core.trap import TrapResult
from ..models.forms import LoginSubmission
from .deps import enforce_rate_limit, get_client_ip, read_submission, templates

logger = structlog.get_logger(__name__)

router = APIRouter()

LOGIN_PAGE_TITLE = "SecureCorp Portal - Sign In"


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def login_page(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "login.html",
        {"title": LOGIN_PAGE_TITLE, "error": None},
    )


@router.post(
    "/login",
    status_code=401,
    responses={
        400: {"description": "Username or password missing"},
        401: {"description": "Always returned for a complete submission"},
        429: {"description": "Rate limit exceeded"},
    },
    include_in_schema=False,
)
async def submit_login(request: Request) -> JSONResponse:
    """
    Capture a login attempt.

    Rate limited per IP before anything else runs; a denied call is not
    captured as an attempt.
    """
    ip_address = get_client_ip(request)
    await enforce_rate_limit(request, request.app.state.login_limiter, ip_address)

    submission = await read_submission(request, LoginSubmission)
    trap = request.app.state.trap

    try:
        result = await trap.submit(
            ip_address=ip_address,
            user_agent=request.headers.get("user-agent"),
            username=submission.username,
            password=submission.password,
        )
    except ValidationError:
        raise
    except Exception as e:
        logger.error(
            "Credential trap failed",
            ip=ip_address,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        result = TrapResult()

    return JSONResponse(status_code=result.status_code, content={"error": result.message})
