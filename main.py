import os
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from core.config import settings
from core.db import Base, engine
from core.errors import register_exception_handlers
from core.logging import configure_logging
from routes.auth import router as auth_router
from routes.payments import router as payments_router
from routes.webhooks import router as webhooks_router
from services.event_channel import RedisStreamChannel, create_redis_client
from services.event_publisher import PaymentEventPublisher
from services.token_store import TokenStore

load_dotenv()
configure_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create one client per collaborator for the lifetime of the app."""
    redis_client = create_redis_client(settings.REDIS_URL)
    app.state.redis = redis_client
    app.state.event_publisher = PaymentEventPublisher(
        RedisStreamChannel.from_settings(redis_client),
        use_celery=settings.EVENT_PUBLISH_VIA_CELERY,
    )
    app.state.token_store = TokenStore(redis_client, required=settings.REQUIRE_CACHE_COLLABORATOR)
    logger.info("service_started", version=settings.APP_VERSION)
    try:
        yield
    finally:
        redis_client.close()
        logger.info("service_stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        },
        "WebhookSignature": {
            "type": "apiKey",
            "in": "header",
            "name": "X-Webhook-Signature",
        },
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

# Ensure tables exist (for dev/test; in prod use migrations)
Base.metadata.create_all(bind=engine)

register_exception_handlers(app)
app.include_router(auth_router)
app.include_router(payments_router)
app.include_router(webhooks_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
    )
