"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional, Set


@dataclass
class Principal:
    """An authenticated user whose data visibility is being restricted."""
    principal_id: int
    username: str
    uuid: Optional[str] = None
    display_name: str = ""
    is_super_user: bool = False
    privileges: Set[str] = field(default_factory=set)


@dataclass
class BasisEntity:
    """A scoping object (a care location) that access is granted against."""
    basis_id: int
    name: str
    uuid: Optional[str] = None

    @property
    def identifier(self) -> str:
        return str(self.basis_id)


@dataclass
class EntityBasisGrant:
    """A stored (principal, basis, filtered entity type) authorization record."""
    principal_id: int
    entity_type: str           # filtered entity type, e.g. "patient"
    basis_type: str            # e.g. "location"
    basis_identifier: str      # kept as text so dangling grants stay listable
    grant_id: Optional[int] = None
    created_by: Optional[int] = None
    date_created: Optional[datetime] = None


@dataclass(frozen=True)
class FilterDefinition:
    """A registered, parameterised visibility predicate for one entity type."""
    name: str
    entity_type: str
    basis_type: str
    table: str
    column: str
    parameter: str
    bypass_privilege: str
    grant_type: str            # discriminator of the grants this filter reads

    @property
    def shape(self):
        return (self.basis_type, self.grant_type, self.table, self.column, self.parameter)

    @property
    def condition(self) -> str:
        return f"{self.table}.{self.column} IN (:{self.parameter})"


class AccessKind(str, Enum):
    UNRESTRICTED = "unrestricted"
    RESTRICTED = "restricted"
    NO_ACCESS = "no-access"


@dataclass(frozen=True)
class AccessSet:
    """Effective access of one principal to one filtered entity type."""
    kind: AccessKind
    basis_ids: FrozenSet[str] = frozenset()

    @classmethod
    def unrestricted(cls) -> "AccessSet":
        return cls(AccessKind.UNRESTRICTED)

    @classmethod
    def no_access(cls) -> "AccessSet":
        return cls(AccessKind.NO_ACCESS)

    @classmethod
    def restricted(cls, basis_ids) -> "AccessSet":
        ids = frozenset(basis_ids)
        if not ids:
            return cls.no_access()
        return cls(AccessKind.RESTRICTED, ids)

    @property
    def is_unrestricted(self) -> bool:
        return self.kind is AccessKind.UNRESTRICTED

    @property
    def is_denied(self) -> bool:
        return self.kind is AccessKind.NO_ACCESS


class ReconcileOutcome(str, Enum):
    NOOP = "no-op"
    RECONCILED = "reconciled"
    ABORTED = "aborted"


@dataclass
class ReconcileRequest:
    """A parsed user-form submission carrying desired basis names."""
    method: str
    basis_names: Optional[List[str]]
    user_id: Optional[str] = None      # direct identifier (form field)
    user_uuid: Optional[str] = None    # alternate identifier (header)
    username: Optional[str] = None
    response_status: int = 200


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    principal: Optional[Principal] = None
    granted: Set[str] = field(default_factory=set)
    revoked: Set[str] = field(default_factory=set)
    reason: str = ""
