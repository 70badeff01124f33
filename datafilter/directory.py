"""
Basis directory – location lookups by name or id.
"""

from typing import List, Optional

from sqlalchemy import select

from datafilter.database import locations, store_errors
from datafilter.models import BasisEntity


def _to_entity(row) -> BasisEntity:
    return BasisEntity(basis_id=int(row["id"]), name=str(row["name"]), uuid=row["uuid"])


class LocationDirectory:
    def __init__(self, engine):
        self.engine = engine

    def resolve_by_name(self, name: str) -> Optional[BasisEntity]:
        """Return the location called *name*, or None."""
        if not isinstance(name, str) or not name.strip():
            return None
        with store_errors("resolve location"):
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(locations).where(locations.c.name == name.strip())
                ).mappings().first()
        return _to_entity(row) if row else None

    def get(self, basis_id) -> Optional[BasisEntity]:
        try:
            lid = int(basis_id)
        except (TypeError, ValueError):
            return None
        with store_errors("load location"):
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(locations).where(locations.c.id == lid)
                ).mappings().first()
        return _to_entity(row) if row else None

    def list_all(self) -> List[BasisEntity]:
        with store_errors("list locations"):
            with self.engine.connect() as conn:
                rows = conn.execute(select(locations).order_by(locations.c.id)).mappings().all()
        return [_to_entity(row) for row in rows]
