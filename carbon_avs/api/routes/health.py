"""Health check endpoint."""

import logging

from fastapi import APIRouter, Request

from carbon_avs.api.models import HealthResponse, RegistryInfo
from carbon_avs.config import get_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Report configured registries, ledger backend and in-flight waves."""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        logger.warning("Health check before coordinator startup")
        return HealthResponse(status="offline", ledger_backend=get_config().ledger_backend)

    return HealthResponse(
        status="healthy",
        registries=[
            RegistryInfo(source=c.source.value, timeout=c.timeout) for c in coordinator.clients
        ],
        ledger_backend=get_config().ledger_backend,
        active_waves=coordinator.active_waves(),
    )
