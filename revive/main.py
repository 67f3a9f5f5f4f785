"""
OutboundRevive - outbound SMS compliance and consent engine.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from revive.config import get_settings
from revive.api.router import api_router
from revive.schemas.policy_config import PolicyConfig
from revive.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("revive")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("OutboundRevive starting up (env=%s)", settings.app_env)

    # Fail fast on a bad policy (malformed clock, non-positive length)
    policy = PolicyConfig.from_settings(settings)
    logger.info(
        "Policy loaded: window %s-%s (strict %s for %s), footer every %s days",
        policy.quiet_hours_start, policy.quiet_hours_end, policy.quiet_hours_strict_end,
        ",".join(sorted(policy.strict_jurisdictions)), policy.footer_freshness_days,
    )

    if settings.twilio_validate_signatures and not settings.twilio_auth_token:
        logger.warning(
            "TWILIO_AUTH_TOKEN not set - inbound webhook signatures will not be verified. "
            "Set it for production."
        )

    yield

    logger.info("OutboundRevive shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="OutboundRevive",
        description="Outbound SMS compliance and consent policy engine",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            settings.app_base_url,
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
