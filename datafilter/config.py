"""
Centralised configuration constants, environment helpers and the
process-wide filtering switch.
"""

import os
import sys
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()

# ── Filtering ────────────────────────────────────────────────────────
BASIS_TYPE_LOCATION = "location"
DEFAULT_ENTITY_TYPE = "patient"
DEFAULT_FILTER_PARAMETER = "basis_ids"

# Holders of this privilege see every row of the filtered entity types.
BYPASS_PRIVILEGE = os.getenv("DATAFILTER_BYPASS_PRIVILEGE", "Bypass Location Filter")

# Optional JSON file replacing the built-in filter registrations.
REGISTRATIONS_FILE = os.getenv("DATAFILTER_REGISTRATIONS_FILE")

GRANTS_TABLE = "datafilter_entity_basis_map"

# ── Reconciliation (user form) ───────────────────────────────────────
MUTATING_METHODS = {"POST", "PUT", "PATCH"}
USER_FORM_PATHS = {"/api/admin/users"}
FORM_FIELD_USER_ID = "userId"
FORM_FIELD_USERNAME = "username"
FORM_FIELD_BASIS_NAMES = "locationStrings"
HEADER_USER_UUID = "userUUID"

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 24
MAX_RESULTS_RETURN = 1000
MAX_PREVIEW_ROWS = 20


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


# ── Filtering switch ─────────────────────────────────────────────────
# Enabled unless listed in DATAFILTER_DISABLED_TYPES or switched off at
# runtime. Read on every evaluation, never cached by callers.

def _parse_disabled(raw: Optional[str]) -> Dict[str, bool]:
    if not raw:
        return {}
    return {name.strip().lower(): False for name in raw.split(",") if name.strip()}


_filtering_enabled: Dict[str, bool] = _parse_disabled(os.getenv("DATAFILTER_DISABLED_TYPES"))


def is_filtering_enabled(entity_type: str) -> bool:
    """Return whether row filtering applies to *entity_type* (default True)."""
    return _filtering_enabled.get(entity_type.lower(), True)


def set_filtering_enabled(entity_type: str, enabled: bool) -> None:
    """Switch row filtering for *entity_type* on or off for the whole process."""
    _filtering_enabled[entity_type.lower()] = bool(enabled)
    state = "enabled" if enabled else "disabled"
    print(f"[datafilter] Filtering {state} for '{entity_type}'")


def reset_filtering_switches() -> None:
    """Restore every entity type to the environment-derived default."""
    _filtering_enabled.clear()
    _filtering_enabled.update(_parse_disabled(os.getenv("DATAFILTER_DISABLED_TYPES")))
