"""
Filter Registry – the startup-time table of filter definitions.
"""

import json
import sys
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from datafilter.config import (
    BASIS_TYPE_LOCATION,
    BYPASS_PRIVILEGE,
    DEFAULT_FILTER_PARAMETER,
    REGISTRATIONS_FILE,
)
from datafilter.errors import ConfigurationError
from datafilter.models import FilterDefinition

# Every clinical record type is scoped by the location it was captured at,
# and all of them read the grants made for patient access.
DEFAULT_REGISTRATIONS: List[Dict[str, str]] = [
    {
        "name": "datafilter_locationBasedPatientFilter",
        "entity_type": "patient",
        "table": "patients",
        "column": "location_id",
    },
    {
        "name": "datafilter_locationBasedEncounterFilter",
        "entity_type": "encounter",
        "grant_type": "patient",
        "table": "encounters",
        "column": "location_id",
    },
    {
        "name": "datafilter_locationBasedVisitFilter",
        "entity_type": "visit",
        "grant_type": "patient",
        "table": "visits",
        "column": "location_id",
    },
    {
        "name": "datafilter_locationBasedObsFilter",
        "entity_type": "obs",
        "grant_type": "patient",
        "table": "obs",
        "column": "location_id",
    },
]

_REQUIRED_KEYS = ("name", "entity_type", "table", "column")


def _to_definition(item: Mapping[str, str]) -> FilterDefinition:
    missing = [key for key in _REQUIRED_KEYS if not item.get(key)]
    if missing:
        raise ConfigurationError(f"Filter registration {dict(item)!r} is missing {', '.join(missing)}")
    return FilterDefinition(
        name=item["name"],
        entity_type=item["entity_type"].strip().lower(),
        basis_type=item.get("basis_type", BASIS_TYPE_LOCATION),
        table=item["table"],
        column=item["column"],
        parameter=item.get("parameter", DEFAULT_FILTER_PARAMETER),
        bypass_privilege=item.get("bypass_privilege", BYPASS_PRIVILEGE),
        grant_type=item.get("grant_type", item["entity_type"]).strip().lower(),
    )


class FilterRegistry:
    """Read-only lookup of filter definitions by entity type."""

    def __init__(self, definitions: Iterable[FilterDefinition] = ()):
        by_type: Dict[str, FilterDefinition] = {}
        ordered: List[FilterDefinition] = []
        for definition in definitions:
            current = by_type.get(definition.entity_type)
            if current is None:
                by_type[definition.entity_type] = definition
                ordered.append(definition)
            elif current.shape != definition.shape:
                raise ConfigurationError(
                    f"Conflicting filters for '{definition.entity_type}': "
                    f"{current.name} ({current.condition}) vs "
                    f"{definition.name} ({definition.condition})"
                )
            elif (current.name, current.bypass_privilege) != (definition.name, definition.bypass_privilege):
                print(f"[WARN] Filter '{definition.name}' repeats '{current.name}' for "
                      f"'{definition.entity_type}'; keeping the first registration", file=sys.stderr)
        self._by_type = by_type
        self._ordered: Tuple[FilterDefinition, ...] = tuple(ordered)

    @classmethod
    def from_registrations(cls, registrations: Iterable[Mapping[str, str]]) -> "FilterRegistry":
        return cls(_to_definition(item) for item in registrations)

    def registration_for(self, entity_type: str) -> Optional[FilterDefinition]:
        return self._by_type.get(entity_type.lower())

    def all_registrations(self) -> Tuple[FilterDefinition, ...]:
        return self._ordered

    def __len__(self) -> int:
        return len(self._ordered)


def load_registrations(path: Optional[str] = REGISTRATIONS_FILE) -> List[Dict[str, str]]:
    """Read registrations from a JSON list file, or fall back to the defaults."""
    if not path:
        return list(DEFAULT_REGISTRATIONS)
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not read filter registrations from {path}: {e}") from e
    if not isinstance(data, list):
        raise ConfigurationError(f"{path} must contain a JSON list of registrations")
    return data


def build_registry(registrations: Optional[Iterable[Mapping[str, str]]] = None) -> FilterRegistry:
    if registrations is None:
        registrations = load_registrations()
    registry = FilterRegistry.from_registrations(registrations)
    print(f"[init] Loaded {len(registry)} filter registration(s)")
    return registry


def bootstrap_filters(registry: FilterRegistry, query_engine) -> None:
    """Declare every registered filter on the query engine, in order."""
    for definition in registry.all_registrations():
        query_engine.declare_filter(definition)
        print(f"[init] Declared filter {definition.name}: {definition.condition}")
