"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- / and /login - Fake login page and credential trap
- /admin2430.html/... - PIN gate and analytics console
- /health - Database health check
- /metrics - Prometheus metrics
"""
from .admin import router as admin_router
from .healthz import router as healthz_router
from .metrics import router as metrics_router
from .public import router as public_router

__all__ = ["admin_router", "healthz_router", "metrics_router", "public_router"]
