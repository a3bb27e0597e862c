"""Registry records and query outcomes.

A registry query resolves in exactly one of three ways:

- ``Success``  - the registry returned a record for the credit
- ``NotFound`` - the registry answered and does not know the credit
- ``Failure``  - the registry could not be reached, answered garbage,
  or did not answer in time (``kind`` tells which)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


class RegistrySource(str, Enum):
    """External registries a credit can be checked against."""
    verra = "Verra"
    gold_standard = "Gold Standard"
    climate_action = "Climate Action Reserve"

    @classmethod
    def from_name(cls, name: str) -> "RegistrySource":
        """Look up by member name (``gold_standard``) or display value."""
        if name in cls.__members__:
            return cls[name]
        return cls(name)


class RegistryRecord(BaseModel):
    """One registry's view of one credit. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    source: RegistrySource
    exists: bool = True
    quality: float = Field(..., ge=0, le=100)
    retired: bool = False

    # Informational only - never part of scoring
    vintage: int | None = None
    project_type: str = ""
    methodology: str = ""
    location: str = ""
    status: str = ""
    extra: dict[str, Any] = Field(default_factory=dict)


class FailureKind(str, Enum):
    unavailable = "unavailable"
    timeout = "timeout"


@dataclass(frozen=True)
class Success:
    record: RegistryRecord

    @property
    def source(self) -> RegistrySource:
        return self.record.source

    def to_dict(self) -> dict:
        return {"outcome": "success", **self.record.model_dump(mode="json")}


@dataclass(frozen=True)
class NotFound:
    source: RegistrySource
    reason: str = "Credit not found in registry"

    def to_dict(self) -> dict:
        return {"outcome": "not_found", "source": self.source.value, "reason": self.reason}


@dataclass(frozen=True)
class Failure:
    source: RegistrySource
    reason: str
    kind: FailureKind = FailureKind.unavailable

    def to_dict(self) -> dict:
        data = asdict(self)
        data["source"] = self.source.value
        data["kind"] = self.kind.value
        return {"outcome": "failure", **data}


QueryOutcome = Union[Success, NotFound, Failure]
