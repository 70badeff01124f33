"""
Identity lookups – loading principals and checking their privileges.
"""

from typing import Optional

from sqlalchemy import select, true

from datafilter.database import principal_privileges, principals, store_errors
from datafilter.models import Principal


def _load(engine, *criteria) -> Optional[Principal]:
    with store_errors("load principal"):
        with engine.connect() as conn:
            row = conn.execute(
                select(principals).where(principals.c.is_active == true(), *criteria).limit(1)
            ).mappings().first()
            if not row:
                return None
            privileges = set(conn.execute(
                select(principal_privileges.c.privilege)
                .where(principal_privileges.c.principal_id == row["id"])
            ).scalars())

    return Principal(
        principal_id=int(row["id"]),
        username=str(row["username"]),
        uuid=row["uuid"],
        display_name=str(row["display_name"] or row["username"]),
        is_super_user=bool(row["is_super_user"]),
        privileges=privileges,
    )


def load_access_context(engine, api_key: str) -> Principal:
    """Look up an active principal by API key."""
    principal = _load(engine, principals.c.api_key == api_key)
    if principal is None:
        raise ValueError("Invalid key or user inactive (no match in principals).")
    return principal


def is_super_user(principal: Principal) -> bool:
    return bool(principal.is_super_user)


def has_privilege(principal: Principal, name: str) -> bool:
    return name in principal.privileges


class UserDirectory:
    """SQL-backed identity collaborator.

    Lookups return ``None`` for unknown or inactive principals and never
    raise for a malformed reference.
    """

    def __init__(self, engine):
        self.engine = engine

    def get_by_id(self, principal_id) -> Optional[Principal]:
        try:
            pid = int(str(principal_id).strip())
        except (TypeError, ValueError):
            return None
        return _load(self.engine, principals.c.id == pid)

    def get_by_uuid(self, uuid: str) -> Optional[Principal]:
        return _load(self.engine, principals.c.uuid == uuid)

    def get_by_username(self, username: str) -> Optional[Principal]:
        return _load(self.engine, principals.c.username == username)

    def is_super_user(self, principal: Principal) -> bool:
        return is_super_user(principal)

    def has_privilege(self, principal: Principal, name: str) -> bool:
        return has_privilege(principal, name)
