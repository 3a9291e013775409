from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from tablehold.api.dependencies import Container, build_default_container
from tablehold.api.error_handling import register_exception_handlers
from tablehold.api.middleware.request_id import RequestIDMiddleware
from tablehold.api.routes.health import router as health_router
from tablehold.api.routes.metrics import router as metrics_router
from tablehold.api.routes.ops import router as ops_router
from tablehold.api.routes.orders import router as orders_router
from tablehold.api.routes.payments import router as payments_router
from tablehold.api.routes.reservations import router as reservations_router
from tablehold.api.routes.webhooks import router as webhooks_router
from tablehold.api.ws.manager import ConnectionManager
from tablehold.api.ws.routes import router as ws_router
from tablehold.infrastructure.config import AppSettings, load_settings
from tablehold.infrastructure.messaging.redis_event_listener import start_redis_fanout
from tablehold.infrastructure.observability.logging_config import configure_logging
from tablehold.infrastructure.observability.otel import configure_otel
from tablehold.infrastructure.scheduling.periodic import run_periodically

logger = logging.getLogger("tablehold.api.access")

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)


def _cors_allow_origins(settings: AppSettings) -> list[str]:
    if settings.app_env in {"dev", "test"}:
        return ["*"]
    return list(settings.cors_allow_origins)


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        path = request.url.path
        method = request.method
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - started) * 1000
            REQUEST_COUNT.labels(method=method, path=path, status_code="500").inc()
            REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000)
            logger.exception(
                "request_error",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": 500,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        REQUEST_COUNT.labels(method=method, path=path, status_code=str(response.status_code)).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000)
        logger.info(
            "request_complete",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response


def _background_tasks(app: FastAPI, container: Container) -> list[asyncio.Task]:
    settings = container.settings
    return [
        asyncio.create_task(start_redis_fanout(app.state, settings.redis_url)),
        asyncio.create_task(
            run_periodically(
                "expiration_sweeper",
                container.sweeper.interval_seconds,
                container.sweeper.run_once,
            )
        ),
        asyncio.create_task(
            run_periodically(
                "outbox_relay",
                settings.outbox_interval_seconds,
                container.outbox_relay.drain,
            )
        ),
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.ws_manager = ConnectionManager()
    tasks: list[asyncio.Task] = []
    if app.state.run_background_tasks:
        container = getattr(app.state, "container", None)
        if container is None:
            container = build_default_container(app.state.settings)
            app.state.container = container
        tasks = _background_tasks(app, container)
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task


def create_app(
    settings: AppSettings | None = None,
    container: Container | None = None,
    run_background_tasks: bool = True,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(app_env=settings.app_env)

    app = FastAPI(title="Tablehold", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.container = container
    app.state.run_background_tasks = run_background_tasks

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(reservations_router)
    app.include_router(payments_router)
    app.include_router(orders_router)
    app.include_router(webhooks_router)
    app.include_router(ops_router)
    app.include_router(ws_router)

    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_allow_origins(settings),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )

    configure_otel(app)
    return app


app = create_app()
