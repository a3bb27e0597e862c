"""Carbon verification FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware

from carbon_avs.api.auth import request_logging_middleware
from carbon_avs.config import get_config
from carbon_avs.verification.coordinator import VerificationCoordinator

logger = logging.getLogger(__name__)


def create_app(coordinator: VerificationCoordinator | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    A prebuilt *coordinator* is used as-is; otherwise one is built from
    configuration at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle handler."""
        config = get_config()

        if not config.demo_mode and not config.api_key:
            logger.critical(
                "CARBON_AVS_API_KEY is not set. Set it in .env or export it. "
                "Use CARBON_AVS_DEMO_MODE=true to skip."
            )
            sys.exit(1)

        if coordinator is not None:
            app.state.coordinator = coordinator
        else:
            from carbon_avs.service import build_coordinator

            app.state.coordinator = build_coordinator(config)

        logger.info(
            "Carbon AVS API starting - registries=%s, ledger=%s",
            config.registry_backend, config.ledger_backend,
        )
        yield
        await app.state.coordinator.shutdown()
        logger.info("Carbon AVS API shutdown - in-flight waves cancelled")

    app = FastAPI(
        title="Carbon AVS API",
        description="Cross-registry carbon credit verification",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Request logging and X-Request-ID middleware
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_logging_middleware)

    from carbon_avs.api.routes.health import router as health_router
    from carbon_avs.api.routes.verification import router as verification_router

    app.include_router(health_router)
    app.include_router(verification_router)

    return app


app = create_app()
