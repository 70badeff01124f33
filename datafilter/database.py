"""
Database engine initialisation, table metadata and the SQL query adapter
that applies registered filters.
"""

import sys
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    bindparam,
    cast,
    create_engine,
    inspect,
    select,
    text,
)
from sqlalchemy.exc import DBAPIError, IntegrityError

from datafilter.config import GRANTS_TABLE, get_env
from datafilter.errors import ConfigurationError, PersistenceError
from datafilter.models import AccessSet, FilterDefinition

metadata = MetaData()

# ── Identity / basis tables ──────────────────────────────────────────
principals = Table(
    "principals", metadata,
    Column("id", Integer, primary_key=True),
    Column("uuid", String(38), unique=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("display_name", String(255), nullable=False, default=""),
    Column("api_key", String(64), unique=True),
    Column("is_super_user", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

principal_privileges = Table(
    "principal_privileges", metadata,
    Column("principal_id", Integer, primary_key=True),
    Column("privilege", String(255), primary_key=True),
)

locations = Table(
    "locations", metadata,
    Column("id", Integer, primary_key=True),
    Column("uuid", String(38), unique=True),
    Column("name", String(255), nullable=False, unique=True),
)

# ── Filtered record tables ───────────────────────────────────────────
patients = Table(
    "patients", metadata,
    Column("id", Integer, primary_key=True),
    Column("location_id", Integer, nullable=False),
    Column("given_name", String(50)),
    Column("family_name", String(50)),
)

encounters = Table(
    "encounters", metadata,
    Column("id", Integer, primary_key=True),
    Column("patient_id", Integer, nullable=False),
    Column("location_id", Integer, nullable=False),
    Column("encounter_type", String(50)),
    Column("encounter_datetime", DateTime),
)

visits = Table(
    "visits", metadata,
    Column("id", Integer, primary_key=True),
    Column("patient_id", Integer, nullable=False),
    Column("location_id", Integer, nullable=False),
    Column("date_started", DateTime),
)

obs = Table(
    "obs", metadata,
    Column("id", Integer, primary_key=True),
    Column("patient_id", Integer, nullable=False),
    Column("location_id", Integer, nullable=False),
    Column("concept", String(255)),
    Column("value_text", String(1000)),
)

# ── Grants ───────────────────────────────────────────────────────────
entity_basis_map = Table(
    GRANTS_TABLE, metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("principal_id", Integer, nullable=False, index=True),
    Column("entity_type", String(50), nullable=False),
    Column("basis_type", String(50), nullable=False),
    Column("basis_identifier", String(127), nullable=False),
    Column("created_by", Integer),
    Column("date_created", DateTime, nullable=False),
    UniqueConstraint(
        "principal_id", "entity_type", "basis_identifier",
        name="uq_datafilter_principal_entity_basis",
    ),
)


def init_engine():
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = get_env("DB_URI")
    engine = create_engine(db_uri, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def create_tables(engine) -> None:
    """Create any missing tables known to this module."""
    metadata.create_all(engine)


def missing_tables(engine) -> List[str]:
    """Names of known tables that do not exist in the connected database."""
    existing = set(inspect(engine).get_table_names())
    return sorted(name for name in metadata.tables if name not in existing)


@contextmanager
def store_errors(action: str):
    """Translate driver failures into PersistenceError.

    Constraint violations pass through untouched so callers can treat a lost
    insert race as "already there".
    """
    try:
        yield
    except IntegrityError:
        raise
    except DBAPIError as e:
        raise PersistenceError(f"Could not {action}: {e.orig}") from e


class FilteredQueryEngine:
    """Executes selects on filtered tables with the bound access set.

    Filters must be declared (normally by ``bootstrap_filters``) before the
    entity type can be queried.
    """

    def __init__(self, engine, meta: MetaData = metadata):
        self.engine = engine
        self._metadata = meta
        self._filters: Dict[str, FilterDefinition] = {}

    def declare_filter(self, definition: FilterDefinition) -> None:
        table = self._metadata.tables.get(definition.table)
        if table is None or definition.column not in table.c:
            raise ConfigurationError(
                f"Filter '{definition.name}' references unknown column "
                f"{definition.table}.{definition.column}"
            )
        self._filters[definition.entity_type] = definition

    def declared_filters(self) -> List[FilterDefinition]:
        return list(self._filters.values())

    def select_rows(self, entity_type: str, access: AccessSet, limit: Optional[int] = None) -> List[dict]:
        definition = self._filters.get(entity_type.lower())
        if definition is None:
            raise ConfigurationError(f"No filter declared for entity type '{entity_type}'")

        table = self._metadata.tables[definition.table]
        stmt = select(table).order_by(*table.primary_key.columns)
        params = {}
        if not access.is_unrestricted:
            # an empty list renders as an always-false IN
            stmt = stmt.where(
                cast(table.c[definition.column], String).in_(
                    bindparam(definition.parameter, expanding=True)
                )
            )
            params[definition.parameter] = sorted(access.basis_ids)
        if limit is not None:
            stmt = stmt.limit(limit)

        with store_errors(f"query {definition.table}"):
            with self.engine.connect() as conn:
                rows = conn.execute(stmt, params).mappings().all()
        return [dict(row) for row in rows]
