from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from grc_api.api.endpoints.health import healthz
from grc_api.api.router import router as api_router
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import register_exception_handlers
from grc_api.core.logging import configure_logging, get_logger
from grc_api.core.settings import get_settings
from grc_api.core.supabase_rest import SupabaseStore
from grc_api.middleware.rate_limit import RateLimitMiddleware
from grc_api.middleware.request_id import RequestIDMiddleware

configure_logging()
settings = get_settings()
logger = get_logger("api.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    store = SupabaseStore(settings, httpx.AsyncClient(timeout=settings.SUPABASE_TIMEOUT_SECONDS))
    app.state.store = store
    app.state.audit_emitter = AuditEmitter()
    logger.info(
        "app.startup",
        extra={"component": "api", "env": settings.GRC_ENV, "service_role": store.has_service_role},
    )
    try:
        yield
    finally:
        await store.aclose()
        logger.info("app.shutdown", extra={"component": "api"})


app = FastAPI(title="GRC Platform API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(
    RateLimitMiddleware,
    max_requests_per_minute=settings.API_RATE_LIMIT_PER_MINUTE,
    enabled=settings.API_RATE_LIMIT_ENABLED,
    settings=settings,
)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)
app.include_router(api_router, prefix="/api")
app.add_api_route("/healthz", healthz, methods=["GET"], tags=["health"])
