"""
Seed a development database with locations, users and location-scoped
clinical records. Reads DB_URI from the environment / .env file.
"""

import random
import uuid
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import create_engine, select

from datafilter.config import BYPASS_PRIVILEGE, get_env
from datafilter.database import (
    create_tables,
    encounters,
    locations,
    obs,
    patients,
    principal_privileges,
    principals,
    visits,
)
from datafilter.grants import GrantStore
from scripts.generate_api_key import generate_api_key

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
NUM_LOCATIONS = 6
NUM_CLINICIANS = 8
NUM_PATIENTS = 60

PER_PATIENT = {
    "encounters": (0, 4),   # min, max per patient
    "visits": (0, 3),
    "obs": (0, 5),
}

fake = Faker()
random.seed(42)
Faker.seed(42)


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def random_datetime_within(days_back=365):
    now = datetime.utcnow()
    delta = timedelta(days=random.randint(0, days_back), seconds=random.randint(0, 86400))
    return now - delta


def per_patient_count(table_name):
    lo, hi = PER_PATIENT.get(table_name, (0, 0))
    return random.randint(lo, hi) if hi > 0 else 0


# --------------------------------------------------------------------
# SEED FUNCTIONS
# --------------------------------------------------------------------
def seed_locations(conn, n=NUM_LOCATIONS):
    rows = [
        {"uuid": str(uuid.uuid4()), "name": f"{fake.city()} Clinic {i + 1}"}
        for i in range(n)
    ]
    conn.execute(locations.insert(), rows)
    return conn.execute(select(locations.c.id)).scalars().all()


def seed_principals(conn, n=NUM_CLINICIANS):
    """Create one admin, one auditor with the bypass privilege and *n* clinicians."""
    keys = {}
    users = [("admin", "System Admin", True)]
    users.append(("auditor", "Records Auditor", False))
    for _ in range(n):
        users.append((fake.unique.user_name(), fake.name(), False))

    for username, display_name, is_super in users:
        key = generate_api_key()
        conn.execute(principals.insert(), {
            "uuid": str(uuid.uuid4()),
            "username": username,
            "display_name": display_name,
            "api_key": key,
            "is_super_user": is_super,
            "is_active": True,
        })
        keys[username] = key

    auditor_id = conn.execute(
        select(principals.c.id).where(principals.c.username == "auditor")
    ).scalar_one()
    conn.execute(principal_privileges.insert(), {"principal_id": auditor_id, "privilege": BYPASS_PRIVILEGE})
    return keys


def seed_patients(conn, location_ids, n=NUM_PATIENTS):
    rows = [
        {
            "location_id": random.choice(location_ids),
            "given_name": fake.first_name(),
            "family_name": fake.last_name(),
        }
        for _ in range(n)
    ]
    conn.execute(patients.insert(), rows)
    return conn.execute(select(patients.c.id, patients.c.location_id)).all()


def seed_clinical_records(conn, patient_rows):
    encounter_rows, visit_rows, obs_rows = [], [], []
    for pid, location_id in patient_rows:
        for _ in range(per_patient_count("encounters")):
            encounter_rows.append({
                "patient_id": pid,
                "location_id": location_id,
                "encounter_type": random.choice(["intake", "consult", "follow-up"]),
                "encounter_datetime": random_datetime_within(365),
            })
        for _ in range(per_patient_count("visits")):
            visit_rows.append({
                "patient_id": pid,
                "location_id": location_id,
                "date_started": random_datetime_within(365),
            })
        for _ in range(per_patient_count("obs")):
            obs_rows.append({
                "patient_id": pid,
                "location_id": location_id,
                "concept": random.choice(["weight", "height", "blood pressure", "pulse"]),
                "value_text": str(random.randint(40, 180)),
            })
    for table, rows in ((encounters, encounter_rows), (visits, visit_rows), (obs, obs_rows)):
        if rows:
            conn.execute(table.insert(), rows)


def seed_grants(engine, location_ids):
    """Give every clinician access to one or two random locations."""
    store = GrantStore(engine)
    with engine.connect() as conn:
        clinicians = conn.execute(
            select(principals.c.id).where(principals.c.username.notin_(["admin", "auditor"]))
        ).scalars().all()
    for pid in clinicians:
        store.grant(pid, random.sample(list(location_ids), k=random.randint(1, 2)))


# --------------------------------------------------------------------
# MAIN
# --------------------------------------------------------------------
def main():
    engine = create_engine(get_env("DB_URI"), future=True)
    create_tables(engine)

    with engine.begin() as conn:
        location_ids = seed_locations(conn)
        keys = seed_principals(conn)
        patient_rows = seed_patients(conn, location_ids)
        seed_clinical_records(conn, patient_rows)

    seed_grants(engine, location_ids)

    print("[seed] Done. API keys:")
    for username, key in keys.items():
        print(f"  {username:<20} {key}")


if __name__ == "__main__":
    main()
