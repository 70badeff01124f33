"""
Unit tests for the filter registry and filter bootstrap.
"""

import json

import pytest

from datafilter.config import BYPASS_PRIVILEGE
from datafilter.errors import ConfigurationError
from datafilter.filters import (
    DEFAULT_REGISTRATIONS,
    FilterRegistry,
    bootstrap_filters,
    build_registry,
    load_registrations,
)


class FakeQueryEngine:
    def __init__(self):
        self.declared = []

    def declare_filter(self, definition):
        self.declared.append(definition.name)


def _reg(entity_type="patient", table="patients", column="location_id", **extra):
    item = {"name": f"{entity_type}_{table}_{column}", "entity_type": entity_type,
            "table": table, "column": column}
    item.update(extra)
    return item


def test_default_registrations_cover_clinical_record_types():
    registry = build_registry(DEFAULT_REGISTRATIONS)
    assert [d.entity_type for d in registry.all_registrations()] == ["patient", "encounter", "visit", "obs"]
    for definition in registry.all_registrations():
        assert definition.basis_type == "location"
        assert definition.grant_type == "patient"
        assert definition.bypass_privilege == BYPASS_PRIVILEGE


def test_registration_lookup_and_absent_type():
    registry = FilterRegistry.from_registrations([_reg()])
    definition = registry.registration_for("PATIENT")
    assert definition.condition == "patients.location_id IN (:basis_ids)"
    assert registry.registration_for("concept") is None


def test_conflicting_shapes_for_same_type_fail_at_build_time():
    with pytest.raises(ConfigurationError, match="Conflicting filters for 'patient'"):
        FilterRegistry.from_registrations([_reg(), _reg(column="other_location_id")])


def test_identical_repeat_collapses_into_first():
    first = _reg()
    repeat = dict(first, name="patient_again")
    registry = FilterRegistry.from_registrations([first, _reg("visit", "visits"), repeat])
    assert len(registry) == 2
    assert registry.registration_for("patient").name == first["name"]


def test_merged_repeat_with_other_details_is_reported(capsys):
    first = _reg()
    repeat = dict(first, name="patient_again", bypass_privilege="View All Patients")
    registry = FilterRegistry.from_registrations([first, repeat])
    assert registry.registration_for("patient").bypass_privilege == BYPASS_PRIVILEGE
    assert "[WARN] Filter 'patient_again' repeats" in capsys.readouterr().err


def test_missing_keys_are_reported():
    with pytest.raises(ConfigurationError, match="missing table"):
        FilterRegistry.from_registrations([{"name": "x", "entity_type": "patient", "column": "c"}])


def test_bootstrap_declares_filters_in_registration_order():
    registry = FilterRegistry.from_registrations([_reg("visit", "visits"), _reg(), _reg("obs", "obs")])
    engine = FakeQueryEngine()
    bootstrap_filters(registry, engine)
    assert engine.declared == [d.name for d in registry.all_registrations()]
    assert engine.declared[0].startswith("visit")


def test_load_registrations_from_json_file(tmp_path):
    path = tmp_path / "filters.json"
    path.write_text(json.dumps([_reg(parameter="location_ids", bypass_privilege="See All")]))
    registry = build_registry(load_registrations(str(path)))
    definition = registry.registration_for("patient")
    assert definition.parameter == "location_ids"
    assert definition.bypass_privilege == "See All"


def test_load_registrations_rejects_bad_file(tmp_path):
    path = tmp_path / "filters.json"
    path.write_text('{"not": "a list"}')
    with pytest.raises(ConfigurationError):
        load_registrations(str(path))
    with pytest.raises(ConfigurationError):
        load_registrations(str(tmp_path / "absent.json"))


def test_load_registrations_defaults_without_path():
    assert load_registrations(None) == DEFAULT_REGISTRATIONS
