"""
FastAPI application initialization and configuration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from database.engine import init_db, close_db
from api.routes import functions, health
from api.routes.v1 import (
    applications,
    candidates,
    evaluations,
    interviews,
    notifications,
    offers,
    users,
    webhooks,
)

from core.middleware import (
    ErrorHandlingMiddleware,
    setup_error_handlers,
    StructuredLoggingMiddleware,
    setup_logging,
    RateLimitMiddleware,
    default_rules,
    AuthenticationMiddleware,
)

# Setup structured logging (do this first, before anything else)
setup_logging(
    log_level=settings.log_level,
    json_logs=settings.json_logs,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info(f"Starting {settings.app_name} in {settings.app_env} environment")
    await init_db()

    yield

    logger.info(f"Shutting down {settings.app_name}")
    await close_db()


def create_app() -> FastAPI:
    """Build the application with routes and the middleware stack."""
    app = FastAPI(
        title=settings.app_name,
        description="Applicant tracking: candidate workflow, offer approval and notifications",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_error_handlers(app)

    # Starlette runs the last added middleware first.
    # 1. Rate limiting (innermost; needs the user set by authentication)
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            redis_url=str(settings.redis_url),
            rules=default_rules(
                per_minute=settings.rate_limit_per_minute,
                per_hour=settings.rate_limit_per_hour,
                per_second=settings.rate_limit_per_second,
                api_prefix=settings.api_v1_prefix,
            ),
            key_prefix="talent_ats:ratelimit",
            enable_headers=True,
        )

    # 2. Authentication (verifies the Bearer JWT, public routes excepted)
    app.add_middleware(
        AuthenticationMiddleware,
        jwt_secret=settings.jwt_secret_key,
        jwt_algorithm=settings.jwt_algorithm,
    )

    # 3. Structured request logging
    app.add_middleware(
        StructuredLoggingMiddleware,
        log_request_body=settings.log_request_body,
        log_response_body=settings.log_response_body,
        max_body_size=settings.log_max_body_size,
    )

    # 4. Error handling (catches everything below)
    app.add_middleware(ErrorHandlingMiddleware, debug=settings.debug)

    # 5. CORS (outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])

    for module in (
        applications,
        candidates,
        interviews,
        evaluations,
        offers,
        notifications,
        webhooks,
        users,
    ):
        app.include_router(module.router, prefix=settings.api_v1_prefix)

    app.include_router(functions.router, prefix=settings.functions_prefix)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
