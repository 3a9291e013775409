from __future__ import annotations

from fastapi import APIRouter, Request, Response, status

from tablehold.infrastructure.cache.redis_client import ping_redis
from tablehold.infrastructure.config import AppSettings
from tablehold.infrastructure.db.session import ping_database

router = APIRouter()


@router.get("/health/live")
def live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
def ready(request: Request, response: Response) -> dict[str, object]:
    settings: AppSettings = request.app.state.settings
    checks = {
        "postgres": ping_database(timeout_seconds=1.0),
        "redis": ping_redis(timeout_seconds=1.0),
        "payments": bool(settings.stripe_secret_key) or settings.allow_unverified_payments,
    }

    if all(checks.values()):
        return {"status": "ok"}

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "unavailable", "checks": checks}
