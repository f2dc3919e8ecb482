from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette_exporter import PrometheusMiddleware, handle_metrics

from app.api import auth, catalog, favorites
from app.core.cache import RedisCache, build_cache, enforce_rate_limit
from app.core.config import Settings
from app.core.database import Database
from app.core.errors import register_exception_handlers
from app.core.revocation import RedisRevocationStore, build_revocation_store
from app.core.security import TokenService, require_roles
from app.core.telemetry import (
    RequestLogMiddleware,
    configure_logging,
    configure_sentry,
    configure_tracing,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    db = Database(settings)
    store = build_revocation_store(settings)
    if isinstance(store, RedisRevocationStore):
        await store.ping()
    cache = build_cache(settings)
    if isinstance(cache, RedisCache):
        await cache.ping()
    await db.create_all()

    app.state.db = db
    app.state.revocation_store = store
    app.state.cache = cache
    app.state.token_service = TokenService(settings, store)
    logger.info("Server started", extra={"environment": settings.environment})
    try:
        yield
    finally:
        await cache.close()
        await store.close()
        await db.close()
        logger.info("Shutting down...")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings)
    configure_sentry(settings)

    app = FastAPI(title="Rah-e Ayandeh API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    configure_tracing(app, settings)
    register_exception_handlers(app, debug=settings.is_development)

    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {
            "message": "به API راه آینده خوش آمدید",
            "message_en": "Welcome to Rah-e Ayandeh API",
            "version": "1.0.0",
        }

    @app.get("/healthz", dependencies=[require_roles("admin")])
    def _ping():
        return {"status": "ok"}

    @app.get("/metrics", dependencies=[require_roles("admin")])
    async def metrics(request: Request):
        """
        Return the metrics in a format that can be scraped by Prometheus.
        """
        return handle_metrics(request)

    limited = [Depends(enforce_rate_limit)]
    app.include_router(
        auth.router,
        prefix=f"{API_PREFIX}/auth",
        tags=["Authentication"],
        dependencies=limited,
    )
    app.include_router(catalog.university_router, prefix=API_PREFIX, dependencies=limited)
    app.include_router(catalog.job_router, prefix=API_PREFIX, dependencies=limited)
    app.include_router(favorites.router, prefix=API_PREFIX, dependencies=limited)
    return app
