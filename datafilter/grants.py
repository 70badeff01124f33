"""
Grant Store – persistent principal <-> basis access grants.

Grants are keyed by (principal, filtered entity type, basis identifier).
The identifier is stored as text so that a grant keeps working, and can be
revoked, after its location has been deleted.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError

from datafilter.config import BASIS_TYPE_LOCATION, DEFAULT_ENTITY_TYPE
from datafilter.database import entity_basis_map, store_errors
from datafilter.errors import InvalidReferenceError, PersistenceError
from datafilter.models import BasisEntity, EntityBasisGrant, Principal

_SINGLE_BASIS = (BasisEntity, EntityBasisGrant, str, int)


def basis_identifier(basis) -> str:
    """Return the stored identifier for a basis entity, grant or raw id."""
    if isinstance(basis, BasisEntity):
        return basis.identifier
    if isinstance(basis, EntityBasisGrant):
        return basis.basis_identifier
    if isinstance(basis, (str, int)) and str(basis).strip():
        return str(basis).strip()
    raise InvalidReferenceError(f"Not a usable basis reference: {basis!r}")


def principal_id_of(principal) -> int:
    if principal is None:
        raise InvalidReferenceError("Principal is required")
    if isinstance(principal, int):
        return principal
    pid = getattr(principal, "principal_id", None)
    if pid is None:
        raise InvalidReferenceError(f"Principal {principal!r} has no identifier")
    return int(pid)


def _identifiers(bases) -> List[str]:
    """Distinct identifiers in first-seen order; accepts one basis or many."""
    if isinstance(bases, _SINGLE_BASIS):
        bases = [bases]
    seen: List[str] = []
    for basis in bases:
        ident = basis_identifier(basis)
        if ident not in seen:
            seen.append(ident)
    return seen


class GrantStore:
    """CRUD-style access to the entity-basis map table."""

    def __init__(self, engine, basis_type: str = BASIS_TYPE_LOCATION):
        self.engine = engine
        self.basis_type = basis_type

    # ── Mutations ────────────────────────────────────────────────────

    def grant(self, principal, bases, entity_type: str = DEFAULT_ENTITY_TYPE,
              created_by=None) -> Set[str]:
        """Grant *principal* access to *bases*; returns the newly stored identifiers.

        Already-granted bases are skipped. The uniqueness constraint settles
        concurrent duplicate grants: the losing call retries once and then
        finds the winner's row.
        """
        pid = principal_id_of(principal)
        wanted = _identifiers(bases)
        if not wanted:
            return set()
        creator = principal_id_of(created_by) if created_by is not None else None

        try:
            return self._insert_missing(pid, entity_type, wanted, creator)
        except IntegrityError:
            pass
        try:
            return self._insert_missing(pid, entity_type, wanted, creator)
        except IntegrityError as e:
            raise PersistenceError(f"Could not grant access: {e.orig}") from e

    def _insert_missing(self, pid: int, entity_type: str, wanted: List[str],
                        creator: Optional[int]) -> Set[str]:
        t = entity_basis_map
        with store_errors("grant access"):
            with self.engine.begin() as conn:
                existing = set(conn.execute(
                    select(t.c.basis_identifier).where(
                        t.c.principal_id == pid,
                        t.c.entity_type == entity_type,
                        t.c.basis_identifier.in_(wanted),
                    )
                ).scalars())
                missing = [ident for ident in wanted if ident not in existing]
                if missing:
                    now = datetime.now(timezone.utc)
                    conn.execute(insert(t), [
                        {
                            "principal_id": pid,
                            "entity_type": entity_type,
                            "basis_type": self.basis_type,
                            "basis_identifier": ident,
                            "created_by": creator,
                            "date_created": now,
                        }
                        for ident in missing
                    ])
        return set(missing)

    def revoke(self, principal, bases, entity_type: str = DEFAULT_ENTITY_TYPE) -> int:
        """Remove grants of *principal* to *bases*; returns the number removed."""
        pid = principal_id_of(principal)
        idents = _identifiers(bases)
        if not idents:
            return 0
        t = entity_basis_map
        with store_errors("revoke access"):
            with self.engine.begin() as conn:
                result = conn.execute(
                    delete(t).where(
                        t.c.principal_id == pid,
                        t.c.entity_type == entity_type,
                        t.c.basis_identifier.in_(idents),
                    )
                )
        return result.rowcount or 0

    # ── Queries ──────────────────────────────────────────────────────

    def list_grants(self, principal, entity_type: str = DEFAULT_ENTITY_TYPE) -> List[EntityBasisGrant]:
        pid = principal_id_of(principal)
        t = entity_basis_map
        with store_errors("list grants"):
            with self.engine.connect() as conn:
                rows = conn.execute(
                    select(t).where(
                        t.c.principal_id == pid,
                        t.c.entity_type == entity_type,
                    ).order_by(t.c.id)
                ).mappings().all()
        return [
            EntityBasisGrant(
                principal_id=row["principal_id"],
                entity_type=row["entity_type"],
                basis_type=row["basis_type"],
                basis_identifier=row["basis_identifier"],
                grant_id=row["id"],
                created_by=row["created_by"],
                date_created=row["date_created"],
            )
            for row in rows
        ]

    def principals_with_grants(self, entity_type: str = DEFAULT_ENTITY_TYPE) -> List[int]:
        t = entity_basis_map
        with store_errors("list granted principals"):
            with self.engine.connect() as conn:
                ids = conn.execute(
                    select(t.c.principal_id).where(t.c.entity_type == entity_type)
                    .distinct().order_by(t.c.principal_id)
                ).scalars().all()
        return list(ids)

    # ── Maintenance ──────────────────────────────────────────────────

    def purge_dangling(self, known_identifiers: Iterable[str],
                       entity_type: str = DEFAULT_ENTITY_TYPE) -> int:
        """Delete grants whose basis is not among *known_identifiers*.

        Operator-triggered only; evaluation and reconciliation never purge.
        """
        known = sorted({str(i) for i in known_identifiers})
        t = entity_basis_map
        with store_errors("purge dangling grants"):
            with self.engine.begin() as conn:
                result = conn.execute(
                    delete(t).where(
                        t.c.entity_type == entity_type,
                        t.c.basis_type == self.basis_type,
                        t.c.basis_identifier.notin_(known),
                    )
                )
        removed = result.rowcount or 0
        print(f"[datafilter] Purged {removed} dangling '{entity_type}' grant(s)")
        return removed
