"""
Prometheus metrics endpoint.

Exposes metrics in Prometheus text format for scraping.
"""

import structlog
from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="""
    Prometheus metrics endpoint in standard text format.

    **Key Metrics:**
    - honeytrap_requests_captured_total{method} - Requests submitted for logging
    - honeytrap_credential_attempts_total - Fake login submissions
    - honeytrap_admin_attempts_total{outcome} - PIN submissions
    - honeytrap_rate_limited_total{surface} - Rate limiter rejections
    - honeytrap_ingestion_writes_total{kind,outcome} - Background writes
    - honeytrap_query_failures_total{query} - Analytics fallbacks
    """,
    include_in_schema=False,
)
async def get_metrics(request: Request) -> Response:
    metrics_collector = getattr(request.app.state, "metrics", None)

    if not metrics_collector:
        logger.warning("Metrics collector not initialized")
        return Response(
            content="# Metrics collector not initialized\n",
            media_type=CONTENT_TYPE_LATEST,
        )

    metrics_collector.update_system_metrics()
    metrics_data = generate_latest(metrics_collector.registry)

    logger.debug("Metrics scraped successfully", size_bytes=len(metrics_data))

    return Response(
        content=metrics_data,
        media_type=CONTENT_TYPE_LATEST,
    )
