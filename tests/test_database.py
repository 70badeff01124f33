"""
Tests for the SQL adapter and the location directory, run against an
in-memory SQLite database.
"""

import pytest

from datafilter.config import BYPASS_PRIVILEGE
from datafilter.database import FilteredQueryEngine, missing_tables
from datafilter.directory import LocationDirectory
from datafilter.errors import ConfigurationError
from datafilter.filters import DEFAULT_REGISTRATIONS, FilterRegistry, bootstrap_filters
from datafilter.models import AccessSet, FilterDefinition


def _query_engine(engine):
    qe = FilteredQueryEngine(engine)
    bootstrap_filters(FilterRegistry.from_registrations(DEFAULT_REGISTRATIONS), qe)
    return qe


# ── Tests: FilteredQueryEngine ───────────────────────────────────────

def test_all_tables_created(engine):
    assert missing_tables(engine) == []


def test_restricted_access_returns_rows_at_granted_locations(seeded_engine):
    rows = _query_engine(seeded_engine).select_rows("patient", AccessSet.restricted({"1", "2"}))
    assert [r["id"] for r in rows] == [1001, 1501, 1503]


def test_granting_another_location_widens_results(seeded_engine):
    qe = _query_engine(seeded_engine)
    rows = qe.select_rows("patient", AccessSet.restricted({"1", "2", "4"}))
    assert [r["id"] for r in rows] == [1001, 1002, 1003, 1501, 1502, 1503]


def test_no_access_returns_nothing(seeded_engine):
    assert _query_engine(seeded_engine).select_rows("patient", AccessSet.no_access()) == []


def test_unrestricted_returns_everything_with_limit(seeded_engine):
    qe = _query_engine(seeded_engine)
    assert len(qe.select_rows("patient", AccessSet.unrestricted())) == 7
    assert len(qe.select_rows("patient", AccessSet.unrestricted(), limit=3)) == 3


def test_other_filtered_tables(seeded_engine):
    rows = _query_engine(seeded_engine).select_rows("encounter", AccessSet.restricted({"4"}))
    assert [r["id"] for r in rows] == [11]


def test_undeclared_entity_type(seeded_engine):
    with pytest.raises(ConfigurationError):
        FilteredQueryEngine(seeded_engine).select_rows("patient", AccessSet.unrestricted())


def test_declare_filter_checks_column_exists(engine):
    bad = FilterDefinition(name="bad", entity_type="patient", basis_type="location",
                           table="patients", column="clinic_id", parameter="basis_ids",
                           bypass_privilege=BYPASS_PRIVILEGE, grant_type="patient")
    with pytest.raises(ConfigurationError, match="patients.clinic_id"):
        FilteredQueryEngine(engine).declare_filter(bad)


# ── Tests: LocationDirectory ─────────────────────────────────────────

def test_resolve_location_by_name(seeded_engine):
    directory = LocationDirectory(seeded_engine)
    location = directory.resolve_by_name("Clinic 3")
    assert location.basis_id == 3
    assert location.identifier == "3"
    assert directory.resolve_by_name("Clinic 9") is None
    assert directory.resolve_by_name("  ") is None


def test_list_and_get_locations(seeded_engine):
    directory = LocationDirectory(seeded_engine)
    assert [loc.name for loc in directory.list_all()] == [f"Clinic {i}" for i in range(1, 6)]
    assert directory.get("2").name == "Clinic 2"
    assert directory.get("deleted") is None


def test_resolve_location_ignores_non_string_names(seeded_engine):
    directory = LocationDirectory(seeded_engine)
    assert directory.resolve_by_name(5) is None
    assert directory.resolve_by_name(None) is None


def test_select_rows_is_case_insensitive(seeded_engine):
    rows = _query_engine(seeded_engine).select_rows("Patient", AccessSet.restricted({"2"}))
    assert [r["id"] for r in rows] == [1503]
