"""
Prometheus Metrics - Application Monitoring

Exposes metrics at /metrics endpoint for Prometheus scraping.
"""
import time

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from src.core.config import settings
from src.core.logging import bind_context, clear_context

# === Application Info ===
APP_INFO = Info("luna_app", "Luna application info")
APP_INFO.info({
    "version": settings.app_version,
    "environment": settings.environment,
})

# === Request Metrics ===
REQUEST_COUNT = Counter(
    "luna_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "luna_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# === Energy Metrics ===
ENERGY_SPENT = Counter(
    "luna_energy_spent_total",
    "Total energy spent on features",
    ["feature"],
)

ENERGY_CREDITED = Counter(
    "luna_energy_credited_total",
    "Total energy credited",
    ["reason"],
)

STREAK_BONUSES = Counter(
    "luna_energy_streak_bonus_total",
    "Streak bonuses credited",
)

INSUFFICIENT_ENERGY = Counter(
    "luna_energy_insufficient_total",
    "Spends rejected for insufficient balance",
    ["feature"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""

    async def dispatch(self, request: Request, call_next) -> StarletteResponse:
        if request.url.path == "/metrics":
            return await call_next(request)

        endpoint = request.url.path
        method = request.method
        clear_context()
        bind_context(method=method, path=endpoint)

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        REQUEST_COUNT.labels(
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        REQUEST_LATENCY.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# === Metrics Router ===
router = APIRouter(tags=["Health"])


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# === Helper Functions ===

def record_spend(feature: str, amount: int) -> None:
    """Record energy spent on a feature."""
    ENERGY_SPENT.labels(feature=feature).inc(amount)


def record_credit(reason: str, amount: int) -> None:
    """Record energy credited."""
    ENERGY_CREDITED.labels(reason=reason).inc(amount)


def record_streak_bonus() -> None:
    STREAK_BONUSES.inc()


def record_insufficient(feature: str) -> None:
    INSUFFICIENT_ENERGY.labels(feature=feature).inc()
