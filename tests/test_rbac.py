"""
Unit tests for identity lookups – API key login, principal resolution and
privilege checks.
"""

import pytest

from datafilter.config import BYPASS_PRIVILEGE
from datafilter.models import Principal
from datafilter.rbac import UserDirectory, has_privilege, is_super_user, load_access_context


def test_privilege_helpers():
    nurse = Principal(principal_id=5, username="nurse", privileges={"View Patients"})
    assert has_privilege(nurse, "View Patients")
    assert not has_privilege(nurse, BYPASS_PRIVILEGE)
    assert not is_super_user(nurse)
    assert is_super_user(Principal(principal_id=1, username="admin", is_super_user=True))


# ── Tests: identity ──────────────────────────────────────────────────

def test_load_access_context_by_api_key(seeded_engine):
    principal = load_access_context(seeded_engine, "auditor-key")
    assert principal.username == "auditor"
    assert principal.privileges == {BYPASS_PRIVILEGE}
    assert not principal.is_super_user


def test_load_access_context_invalid_key(seeded_engine):
    with pytest.raises(ValueError, match="Invalid key"):
        load_access_context(seeded_engine, "bad")


def test_user_directory_lookups(seeded_engine):
    users = UserDirectory(seeded_engine)
    assert users.get_by_id("2").username == "dyorke"
    assert users.get_by_id("not-a-number") is None
    assert users.get_by_uuid("uuid-admin").is_super_user
    assert users.get_by_username("dbeckham").principal_id == 3
    assert users.get_by_username("nobody") is None


def test_user_directory_privilege_checks(seeded_engine):
    users = UserDirectory(seeded_engine)
    auditor = users.get_by_username("auditor")
    assert users.has_privilege(auditor, BYPASS_PRIVILEGE)
    assert not users.is_super_user(auditor)
