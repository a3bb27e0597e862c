"""Async clients for external carbon credit registries.

Each client turns one registry lookup into a ``QueryOutcome``. Ordinary
not-found answers and network trouble are returned as data (``NotFound`` /
``Failure``), never raised, so one flaky registry cannot break a wave.
No real HTTP calls are made in tests - pass an ``httpx.MockTransport``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx
import yaml
from pydantic import ValidationError

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

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 5.0
_DEFAULT_MAX_RETRIES = 1
_DEFAULT_RETRY_DELAY = 0.25


class RegistryClient:
    """Shared HTTP plumbing for registry clients.

    Subclasses set ``source`` and may override ``parse_record`` for
    registry-specific field names.
    """

    source: RegistrySource

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = _DEFAULT_TIMEOUT,
        mapper: CreditKeyMapper | None = None,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_delay: float = _DEFAULT_RETRY_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.mapper = mapper or CreditKeyMapper()
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._transport = transport

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.base_url!r}, timeout={self.timeout})"

    async def query(self, credit_id: int | str) -> QueryOutcome:
        """Look the credit up in this registry."""
        key = self.mapper.key_for(credit_id, self.source)
        logger.debug("Querying %s for %s (credit %s)", self.source.value, key, credit_id)

        try:
            payload = await self._get(key)
        except httpx.TimeoutException as exc:
            logger.warning("%s timed out for %s: %s", self.source.value, key, exc)
            return Failure(self.source, f"Timed out after {self.timeout}s", FailureKind.timeout)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s lookup failed for %s: %s", self.source.value, key, exc)
            return Failure(self.source, str(exc) or type(exc).__name__)

        if payload is None or payload.get("exists") is False:
            return NotFound(self.source, f"Credit not found in {self.source.value} registry")

        try:
            record = self.parse_record(payload)
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Malformed %s record for %s: %s", self.source.value, key, exc)
            return Failure(self.source, f"Malformed registry record: {exc}")
        return Success(record)

    @classmethod
    def parse_record(cls, payload: dict[str, Any]) -> RegistryRecord:
        """Build a RegistryRecord from a registry JSON object."""
        status = str(payload.get("status") or "")
        retired = bool(payload.get("isRetired", payload.get("retired", False)))
        return RegistryRecord(
            source=cls.source,
            exists=payload.get("exists", True) is not False,
            quality=payload["quality"],
            retired=retired or status.lower() == "retired",
            vintage=payload.get("vintage"),
            project_type=payload.get("projectType") or payload.get("project_type") or "",
            methodology=cls._methodology(payload),
            location=payload.get("location") or "",
            status=status,
            extra=cls._extra(payload),
        )

    @classmethod
    def _methodology(cls, payload: dict[str, Any]) -> str:
        return payload.get("methodology") or ""

    @classmethod
    def _extra(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {}

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": "carbon-avs/0.1"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get(self, key: str) -> dict[str, Any] | None:
        """GET the record for *key*. Returns None on 404.

        Transport and 5xx errors are retried up to ``max_retries`` times;
        timeouts are not retried since the caller's budget is already spent.
        Other 4xx answers fail at once.
        """
        url = f"{self.base_url}/{key}"

        for attempt in range(1, self.max_retries + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    resp = await client.get(url, headers=self._headers())
                if resp.status_code >= 500:
                    resp.raise_for_status()
            except httpx.TimeoutException:
                raise
            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                if attempt == self.max_retries:
                    raise
                logger.warning(
                    "Request to %s failed (attempt %d/%d): %s",
                    url, attempt, self.max_retries, exc,
                )
                await asyncio.sleep(self.retry_delay * attempt)
                continue

            if resp.status_code == 404:
                return None
            # Other 4xx answers will not change on retry
            resp.raise_for_status()
            data = resp.json()
            if not isinstance(data, dict):
                raise ValueError(f"Expected a JSON object from {url}")
            return data


class VerraClient(RegistryClient):
    """Verra Verified Carbon Standard registry."""

    source = RegistrySource.verra

    def __init__(self, base_url: str = "https://registry.verra.org/app/search/VCS", **kwargs: Any) -> None:
        super().__init__(base_url=base_url, **kwargs)


class GoldStandardClient(RegistryClient):
    """Gold Standard impact registry. Records carry SDG impacts."""

    source = RegistrySource.gold_standard

    def __init__(self, base_url: str = "https://registry.goldstandard.org/projects", **kwargs: Any) -> None:
        super().__init__(base_url=base_url, **kwargs)

    @classmethod
    def _extra(cls, payload: dict[str, Any]) -> dict[str, Any]:
        impacts = payload.get("sdgImpacts") or []
        return {"sdg_impacts": list(impacts)} if impacts else {}


class ClimateActionReserveClient(RegistryClient):
    """Climate Action Reserve. Uses protocols rather than methodologies."""

    source = RegistrySource.climate_action

    def __init__(self, base_url: str = "https://thereserve.apx.com/mymodule/reg", **kwargs: Any) -> None:
        super().__init__(base_url=base_url, **kwargs)

    @classmethod
    def _methodology(cls, payload: dict[str, Any]) -> str:
        return payload.get("protocol") or payload.get("methodology") or ""

    @classmethod
    def _extra(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {"protocol": payload["protocol"]} if payload.get("protocol") else {}


CLIENT_CLASSES: dict[RegistrySource, type[RegistryClient]] = {
    RegistrySource.verra: VerraClient,
    RegistrySource.gold_standard: GoldStandardClient,
    RegistrySource.climate_action: ClimateActionReserveClient,
}


class StaticRegistryClient:
    """Registry stand-in serving records from an in-memory table.

    Used in demo mode and wherever a real registry endpoint is not available.
    Records are parsed with the same rules as the matching HTTP client.
    """

    def __init__(
        self,
        source: RegistrySource,
        records: dict[str, dict[str, Any]],
        mapper: CreditKeyMapper | None = None,
        latency: float = 0.0,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self.source = source
        self.mapper = mapper or CreditKeyMapper()
        self.latency = latency
        self.timeout = timeout
        self._records = dict(records)

    def __repr__(self) -> str:
        return f"StaticRegistryClient(source={self.source.value!r}, records={len(self._records)})"

    async def query(self, credit_id: int | str) -> QueryOutcome:
        key = self.mapper.key_for(credit_id, self.source)
        if self.latency:
            await asyncio.sleep(self.latency)

        payload = self._records.get(key)
        if not payload or payload.get("exists") is False:
            return NotFound(self.source, f"Credit not found in {self.source.value} registry")
        try:
            record = CLIENT_CLASSES[self.source].parse_record(payload)
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            return Failure(self.source, f"Malformed registry record: {exc}")
        return Success(record)


def load_static_clients(
    path: str | Path,
    mapper: CreditKeyMapper | None = None,
    latency: float = 0.0,
    timeout: float = _DEFAULT_TIMEOUT,
) -> list[StaticRegistryClient]:
    """Build one StaticRegistryClient per registry section of a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    clients = []
    for name, records in (data.get("registries") or {}).items():
        clients.append(
            StaticRegistryClient(
                source=RegistrySource.from_name(name),
                records=records or {},
                mapper=mapper,
                latency=latency,
                timeout=timeout,
            )
        )
    return clients
