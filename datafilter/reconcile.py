"""
Grant Reconciler – converges a principal's stored grants to the set of
location names submitted on the user form.
"""

from typing import Optional, Set

from datafilter.config import DEFAULT_ENTITY_TYPE, MUTATING_METHODS
from datafilter.grants import GrantStore
from datafilter.models import Principal, ReconcileOutcome, ReconcileRequest, ReconcileResult


def _aborted(reason: str) -> ReconcileResult:
    return ReconcileResult(outcome=ReconcileOutcome.ABORTED, reason=reason)


class GrantReconciler:
    """Diffs desired against current grants and applies only the difference.

    Unchanged memberships are never touched, so their creation metadata
    survives. Revokes are issued before grants. Nothing is rolled back if a
    later call fails; store errors propagate to the caller.
    """

    def __init__(self, store: GrantStore, users, bases, entity_type: str = DEFAULT_ENTITY_TYPE):
        self.store = store
        self.users = users
        self.bases = bases
        self.entity_type = entity_type

    def resolve_principal(self, request: ReconcileRequest) -> Optional[Principal]:
        """Try the direct id, then the uuid header, then the username."""
        lookups = (
            (request.user_id, self.users.get_by_id),
            (request.user_uuid, self.users.get_by_uuid),
            (request.username, self.users.get_by_username),
        )
        for ref, lookup in lookups:
            if ref is None or not str(ref).strip():
                continue
            principal = lookup(str(ref).strip())
            if principal is not None:
                return principal
        return None

    def desired_identifiers(self, names) -> Set[str]:
        # names that do not resolve are simply not part of the desired set
        desired = set()
        for name in names:
            basis = self.bases.resolve_by_name(name)
            if basis is not None:
                desired.add(basis.identifier)
        return desired

    def reconcile(self, request: ReconcileRequest, acting: Optional[Principal] = None) -> ReconcileResult:
        if (request.method or "").upper() not in MUTATING_METHODS:
            return _aborted(f"method {request.method} does not modify users")
        if request.response_status >= 400:
            return _aborted(f"upstream handler returned {request.response_status}")
        if request.basis_names is None:
            return _aborted("no location field submitted")

        principal = self.resolve_principal(request)
        if principal is None:
            return _aborted("user could not be resolved")

        desired = self.desired_identifiers(request.basis_names)
        current = {g.basis_identifier for g in self.store.list_grants(principal, self.entity_type)}

        to_revoke = current - desired
        to_grant = desired - current

        if to_revoke:
            self.store.revoke(principal, sorted(to_revoke), self.entity_type)
        if to_grant:
            self.store.grant(principal, sorted(to_grant), self.entity_type, created_by=acting)

        if not to_revoke and not to_grant:
            return ReconcileResult(outcome=ReconcileOutcome.NOOP, principal=principal)

        print(f"[datafilter] Reconciled '{self.entity_type}' grants for {principal.username}: "
              f"+{len(to_grant)} -{len(to_revoke)}")
        return ReconcileResult(
            outcome=ReconcileOutcome.RECONCILED,
            principal=principal,
            granted=to_grant,
            revoked=to_revoke,
        )
