from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger

from levelup_api.core.settings import settings
from levelup_api.db.session import async_session, create_schema
from levelup_api.storage import PersistenceGateway, build_gateway
from .api.routes import api_router
from .core.logging import configure_logging


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    gateway: PersistenceGateway | None = getattr(app.state, "gateway", None)
    owns_gateway = gateway is None

    if owns_gateway:
        await create_schema()
        gateway = build_gateway(settings, async_session)
        app.state.gateway = gateway
        delivered = await gateway.recover()
        logger.info(
            "Persistence gateway ready",
            remote_enabled=gateway.remote_enabled,
            delivered_collections=delivered,
        )

    try:
        yield
    finally:
        if owns_gateway:
            await gateway.aclose()


def create_app(*, gateway: PersistenceGateway | None = None) -> FastAPI:
    """Application factory for the LevelUp loyalty API.

    Passing ``gateway`` skips the startup wiring so callers can provide their
    own storage backends.
    """
    configure_logging(
        service_name="levelup-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="LevelUp API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if gateway is not None:
        app.state.gateway = gateway

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check(request: Request) -> dict[str, str]:
        components = await request.app.state.gateway.status()
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
            "remote": components["remote"],
        }

    return app
