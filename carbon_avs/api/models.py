"""Pydantic request/response models for the verification API."""

import re

from pydantic import BaseModel, Field, field_validator

from carbon_avs.verification.models import CreditVerificationState


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class VerificationRequestBody(BaseModel):
    credit_id: str = Field(..., min_length=1, max_length=78)
    requester: str = Field(default="api", min_length=1, max_length=100)
    force: bool = False
    wait: bool = False

    @field_validator("credit_id", mode="before")
    @classmethod
    def coerce_credit_id(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("credit_id")
    @classmethod
    def validate_credit_id(cls, v: str) -> str:
        if not re.match(r"^[A-Za-z0-9\-_.]+$", v):
            raise ValueError("Credit id may only contain letters, numbers, hyphens, underscores, and periods.")
        return v


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class VerdictModel(BaseModel):
    is_valid: bool
    quality_score: int = Field(..., ge=0, le=100)
    sources: list[str] = []


class VerificationStateResponse(BaseModel):
    credit_id: str
    status: str
    verdict: VerdictModel | None = None
    wave_id: int | None = None
    requesters: list[str] = []
    wave_count: int = 0
    last_error: str = ""
    updated_at: str = ""

    @classmethod
    def from_state(cls, state: CreditVerificationState) -> "VerificationStateResponse":
        return cls.model_validate(state.to_dict())


class VerificationListResponse(BaseModel):
    count: int
    credits: list[VerificationStateResponse] = []


class RegistryInfo(BaseModel):
    source: str
    timeout: float


class HealthResponse(BaseModel):
    status: str
    registries: list[RegistryInfo] = []
    ledger_backend: str = ""
    active_waves: int = 0
