"""
Access Evaluator – turns (principal, entity type) into the values bound to
the registered filter at query time.
"""

import sys
from typing import Dict, List, Optional

from datafilter.config import is_filtering_enabled
from datafilter.errors import ConfigurationError, PersistenceError
from datafilter.filters import FilterRegistry
from datafilter.grants import GrantStore, principal_id_of
from datafilter.models import AccessSet, FilterDefinition, Principal
from datafilter.rbac import UserDirectory


class AccessEvaluator:
    """Computes effective access from grants, privileges and the filtering switch.

    Nothing is cached: every call reads the switch and the grant store, so a
    grant, revoke or toggle is visible to the very next evaluation.
    """

    def __init__(self, store: GrantStore, registry: FilterRegistry, identity=None):
        self.store = store
        self.registry = registry
        self.identity = identity if identity is not None else UserDirectory(store.engine)

    def _definition(self, entity_type: str) -> FilterDefinition:
        definition = self.registry.registration_for(entity_type)
        if definition is None:
            raise ConfigurationError(f"Entity type '{entity_type}' has no registered filter")
        return definition

    def is_privileged(self, principal: Principal, definition: FilterDefinition) -> bool:
        return bool(
            self.identity.is_super_user(principal)
            or self.identity.has_privilege(principal, definition.bypass_privilege)
        )

    def effective_access(self, principal: Principal, entity_type: str) -> AccessSet:
        """Return unrestricted, no-access, or the granted basis identifiers.

        Privilege checks run before any store read. Grants to locations that
        no longer exist still count by their stored identifier.
        """
        principal_id_of(principal)
        definition = self._definition(entity_type)
        if not is_filtering_enabled(definition.entity_type):
            return AccessSet.unrestricted()
        if self.is_privileged(principal, definition):
            return AccessSet.unrestricted()

        grants = self.store.list_grants(principal, definition.grant_type)
        return AccessSet.restricted(g.basis_identifier for g in grants)

    def parameters_for(self, principal: Principal, entity_type: str) -> Optional[Dict[str, List[str]]]:
        """Bind values for the entity type's filter; None means do not filter."""
        definition = self._definition(entity_type)
        access = self.effective_access(principal, entity_type)
        return filter_parameters(definition, access)

    def guarded_access(self, principal: Principal, entity_type: str, fail_open: bool = False) -> AccessSet:
        """Like effective_access, but a store failure yields no-access.

        Only callers that pass ``fail_open=True`` (administrative tooling)
        get unrestricted access when the grant store is unavailable.
        """
        try:
            return self.effective_access(principal, entity_type)
        except PersistenceError as e:
            fallback = "unrestricted" if fail_open else "no-access"
            print(f"[WARN] Access evaluation for '{entity_type}' failed ({e}); using {fallback}",
                  file=sys.stderr)
            return AccessSet.unrestricted() if fail_open else AccessSet.no_access()


def filter_parameters(definition: FilterDefinition, access: AccessSet) -> Optional[Dict[str, List[str]]]:
    if access.is_unrestricted:
        return None
    return {definition.parameter: sorted(access.basis_ids)}
