"""
Shared fixtures: an in-memory SQLite database with a small clinic layout.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from datafilter.config import BYPASS_PRIVILEGE, reset_filtering_switches
from datafilter.database import (
    create_tables,
    encounters,
    locations,
    patients,
    principal_privileges,
    principals,
)

# location id -> name
LOCATIONS = {1: "Clinic 1", 2: "Clinic 2", 3: "Clinic 3", 4: "Clinic 4", 5: "Clinic 5"}

# username -> (id, uuid, api_key, is_super_user)
PRINCIPALS = {
    "admin": (1, "uuid-admin", "admin-key", True),
    "dyorke": (2, "uuid-dyorke", "dyorke-key", False),
    "dbeckham": (3, "uuid-dbeckham", "dbeckham-key", False),
    "auditor": (4, "uuid-auditor", "auditor-key", False),
}

# patient id -> location id
PATIENTS = {1001: 1, 1002: 4, 1003: 4, 1501: 1, 1502: 4, 1503: 2, 1504: 3}


@pytest.fixture(autouse=True)
def _reset_switches():
    reset_filtering_switches()
    yield
    reset_filtering_switches()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def seeded_engine(engine):
    with engine.begin() as conn:
        conn.execute(locations.insert(), [
            {"id": lid, "uuid": f"loc-{lid}", "name": name} for lid, name in LOCATIONS.items()
        ])
        conn.execute(principals.insert(), [
            {
                "id": pid, "uuid": uuid, "username": username, "display_name": username.title(),
                "api_key": key, "is_super_user": is_super, "is_active": True,
            }
            for username, (pid, uuid, key, is_super) in PRINCIPALS.items()
        ])
        conn.execute(principal_privileges.insert(), [
            {"principal_id": PRINCIPALS["auditor"][0], "privilege": BYPASS_PRIVILEGE},
        ])
        conn.execute(patients.insert(), [
            {"id": pid, "location_id": lid, "given_name": "Test", "family_name": f"P{pid}"}
            for pid, lid in PATIENTS.items()
        ])
        conn.execute(encounters.insert(), [
            {"id": 10, "patient_id": 1001, "location_id": 1, "encounter_type": "intake"},
            {"id": 11, "patient_id": 1002, "location_id": 4, "encounter_type": "consult"},
        ])
    return engine
