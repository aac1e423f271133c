from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from app.api.auth_routes import router as auth_router
from app.api.fitness_routes import router as fitness_router
from app.api.generate_routes import router as generate_router
from app.api.history_routes import router as history_router
from app.api.membership_routes import router as membership_router
from app.core.db import init_db
from app.core.settings import settings


# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path"],
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # Tables are created before the first request is served
    init_db()
    yield


def create_app() -> FastAPI:
    application = FastAPI(
        title="AI Content Studio Backend",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    # Configure structured logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger = logging.getLogger("app")

    allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]
    # Ensure backend origin itself is allowed so Swagger "Try it out" works
    if "http://localhost:8000" not in allowed_origins:
        allowed_origins.append("http://localhost:8000")

    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    @application.middleware("http")
    async def logging_and_metrics_middleware(request: Request, call_next: Callable):
        start_time = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            duration = time.perf_counter() - start_time
            path = request.url.path
            method = request.method
            status = getattr(response, "status_code", 500)
            REQUEST_COUNT.labels(method=method, path=path, status=str(status)).inc()
            REQUEST_LATENCY.labels(method=method, path=path).observe(duration)
            logger.info(f"{method} {path} -> {status} in {duration:.3f}s")
        return response

    @application.get("/health")
    def health_check() -> dict:
        return {"status": "ok"}

    @application.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    application.include_router(auth_router)
    application.include_router(membership_router)
    application.include_router(fitness_router)
    application.include_router(generate_router)
    application.include_router(history_router)
    return application


app = create_app()
