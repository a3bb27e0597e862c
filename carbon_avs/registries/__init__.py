"""External registry access.

Provides the registry record/outcome models, credit key mapping, and one
async client per registry (plus a static stand-in for demo mode).
"""

from carbon_avs.registries.clients import (
    ClimateActionReserveClient,
    GoldStandardClient,
    RegistryClient,
    StaticRegistryClient,
    VerraClient,
    load_static_clients,
)
from carbon_avs.registries.mapping import CreditKeyMapper
from carbon_avs.registries.models import (
    Failure,
    FailureKind,
    NotFound,
    QueryOutcome,
    RegistryRecord,
    RegistrySource,
    Success,
)

__all__ = [
    "ClimateActionReserveClient",
    "CreditKeyMapper",
    "Failure",
    "FailureKind",
    "GoldStandardClient",
    "NotFound",
    "QueryOutcome",
    "RegistryClient",
    "RegistryRecord",
    "RegistrySource",
    "StaticRegistryClient",
    "Success",
    "VerraClient",
    "load_static_clients",
]
