"""Verification endpoints - request, inspect, republish, cancel."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from carbon_avs.api.auth import require_api_key, validate_credit_id
from carbon_avs.api.models import (
    VerificationListResponse,
    VerificationRequestBody,
    VerificationStateResponse,
)
from carbon_avs.utils import PublishFailure
from carbon_avs.verification.coordinator import VerificationCoordinator
from carbon_avs.verification.models import VerificationStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["verification"], dependencies=[Depends(require_api_key)])


def get_coordinator(request: Request) -> VerificationCoordinator:
    return request.app.state.coordinator


@router.post("/verifications", response_model=VerificationStateResponse)
async def request_verification(
    body: VerificationRequestBody,
    response: Response,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
) -> VerificationStateResponse:
    """Request verification of a credit.

    Returns 202 with the current state while the wave runs in the
    background, or the final state when ``wait`` is set.
    """
    if body.wait:
        try:
            state = await coordinator.request_verification(
                body.credit_id, body.requester, force=body.force
            )
        except PublishFailure as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return VerificationStateResponse.from_state(state)

    await coordinator.submit(body.credit_id, body.requester, force=body.force)
    response.status_code = 202
    return VerificationStateResponse.from_state(coordinator.get_state(body.credit_id))


@router.get("/verifications", response_model=VerificationListResponse)
async def list_verifications(
    status: VerificationStatus | None = None,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
) -> VerificationListResponse:
    """List every credit seen so far, optionally filtered by status."""
    states = coordinator.store.by_status(status) if status else list(coordinator.store)
    credits = [VerificationStateResponse.from_state(s.snapshot()) for s in states]
    return VerificationListResponse(count=len(credits), credits=credits)


@router.get("/verifications/{credit_id}", response_model=VerificationStateResponse)
async def get_verification(
    credit_id: str,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
) -> VerificationStateResponse:
    credit_id = validate_credit_id(credit_id)
    return VerificationStateResponse.from_state(coordinator.get_state(credit_id))


@router.post("/verifications/{credit_id}/republish", response_model=VerificationStateResponse)
async def republish_verification(
    credit_id: str,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
) -> VerificationStateResponse:
    """Retry delivery of a verdict stuck in ``publish_failed``."""
    credit_id = validate_credit_id(credit_id)
    try:
        state = await coordinator.republish(credit_id)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PublishFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return VerificationStateResponse.from_state(state)


@router.delete("/verifications/{credit_id}", response_model=VerificationStateResponse)
async def cancel_verification(
    credit_id: str,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
) -> VerificationStateResponse:
    """Abandon the in-flight wave for a credit.

    Waves that are already publishing cannot be cancelled (409).
    """
    credit_id = validate_credit_id(credit_id)
    try:
        cancelled = await coordinator.cancel(credit_id)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if not cancelled:
        raise HTTPException(
            status_code=404,
            detail=f"No verification in progress for credit '{credit_id}'",
        )
    logger.info("Verification of credit %s cancelled via API", credit_id)
    return VerificationStateResponse.from_state(coordinator.get_state(credit_id))
