"""
SmartZap - WhatsApp campaigns and inbox.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from smartzap.config import get_settings
from smartzap.api.router import api_router
from smartzap.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("smartzap")

APP_VERSION = "1.0.0"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


def _init_sentry(settings) -> None:
    if not settings.sentry_dsn:
        return
    try:
        import sentry_sdk
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=0.1,
            environment=settings.app_env,
        )
        logger.info("Sentry initialized")
    except Exception as e:
        logger.warning("Sentry initialization failed: %s", str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("SmartZap starting up (env=%s)", settings.app_env)

    if not settings.whatsapp_phone_number_id or not settings.whatsapp_access_token:
        logger.warning(
            "WhatsApp credentials not set - account limits cannot be fetched "
            "and campaign validation relies on the cached snapshot."
        )
    if settings.debug_low_limit:
        logger.warning("DEBUG_LOW_LIMIT is on - campaigns are validated against 5 users/day")

    _init_sentry(settings)

    yield

    # Close the shared Redis connection if one was opened
    from smartzap.utils import kv_store
    if kv_store._redis_client is not None:
        try:
            await kv_store._redis_client.aclose()
        except Exception as e:
            logger.warning("Failed to close Redis connection: %s", str(e))
        kv_store._redis_client = None
    logger.info("SmartZap shutdown complete")


def _cors_origins(settings) -> list[str]:
    origins = ["http://localhost:3000", settings.app_base_url]
    if settings.allowed_origins:
        origins.extend(o.strip() for o in settings.allowed_origins.split(",") if o.strip())
    return origins


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="SmartZap",
        description="WhatsApp campaigns and inbox",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Added after CORS so it wraps every request
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
