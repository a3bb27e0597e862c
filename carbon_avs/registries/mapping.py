"""Credit id to registry key mapping.

Each registry names a credit differently (``VCS-12345`` at Verra, ``GS-001``
at Gold Standard). Known credits come from a static table, optionally
extended from YAML. Credits missing from the table still get a derived key
(``<prefix>-<credit id>``) so they remain queryable.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from carbon_avs.registries.models import RegistrySource
from carbon_avs.utils import normalize_credit_id

logger = logging.getLogger(__name__)

_KEY_PREFIXES: dict[RegistrySource, str] = {
    RegistrySource.verra: "VCS",
    RegistrySource.gold_standard: "GS",
    RegistrySource.climate_action: "CAR",
}


class CreditKeyMapper:
    """Resolve the registry-specific key for a credit."""

    def __init__(
        self,
        table: dict[str, dict[RegistrySource, str]] | None = None,
    ) -> None:
        self._table: dict[str, dict[RegistrySource, str]] = {}
        for credit_id, keys in (table or {}).items():
            self.register(credit_id, keys)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "CreditKeyMapper":
        """Load a mapping file of the form::

            credits:
              "1":
                verra: VCS-12345
                gold_standard: GS-001
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        mapper = cls()
        for credit_id, keys in (data.get("credits") or {}).items():
            mapper.register(
                credit_id,
                {RegistrySource.from_name(name): str(key) for name, key in keys.items()},
            )
        logger.info("Loaded registry keys for %d credits from %s", mapper.count(), path)
        return mapper

    def register(self, credit_id: int | str, keys: dict[RegistrySource, str]) -> None:
        """Add or replace the keys known for a credit."""
        self._table[normalize_credit_id(credit_id)] = dict(keys)

    def key_for(self, credit_id: int | str, source: RegistrySource) -> str:
        credit_key = normalize_credit_id(credit_id)
        mapped = self._table.get(credit_key, {}).get(source)
        if mapped:
            return mapped
        return self.derived_key(credit_key, source)

    def is_mapped(self, credit_id: int | str, source: RegistrySource) -> bool:
        return source in self._table.get(normalize_credit_id(credit_id), {})

    def items(self) -> list[tuple[str, dict[RegistrySource, str]]]:
        return [(credit_id, dict(keys)) for credit_id, keys in self._table.items()]

    def count(self) -> int:
        return len(self._table)

    @staticmethod
    def derived_key(credit_id: str, source: RegistrySource) -> str:
        return f"{_KEY_PREFIXES[source]}-{credit_id}"
