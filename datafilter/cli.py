"""
Interactive operator console for the location data filter.
Inspect effective access, preview filtered records and manage grants.
"""

import pandas as pd

from datafilter.config import MAX_PREVIEW_ROWS
from datafilter.database import init_engine
from datafilter.errors import DataFilterError
from datafilter.filters import build_registry
from datafilter.models import ReconcileRequest
from datafilter.rbac import load_access_context, is_super_user
from datafilter.api.app import build_services

HELP = """Commands:
  filters                       list registered filters
  access <entity_type>          show your effective access
  records <entity_type>         preview rows you can see
  grants <username>             list a user's location grants      (admin)
  assign <username> <L1,L2,..>  replace a user's location grants   (admin)
  prune                         delete grants to deleted locations (admin)
  quit"""


def _print_access(entity_type, access):
    if access.is_unrestricted:
        print(f"[access] {entity_type}: unrestricted")
    elif access.is_denied:
        print(f"[access] {entity_type}: no access")
    else:
        print(f"[access] {entity_type}: locations {', '.join(sorted(access.basis_ids))}")


def run_command(services, principal, line: str) -> None:
    cmd, _, rest = line.partition(" ")
    args = rest.split()
    cmd = cmd.lower()
    admin_only = {"grants", "assign", "prune"}

    if cmd in admin_only and not is_super_user(principal):
        print("[denied] Administrator access required.")
        return

    if cmd == "filters":
        for d in services.registry.all_registrations():
            print(f"  {d.entity_type:<10} {d.name}  ({d.condition})")

    elif cmd == "access" and args:
        _print_access(args[0], services.evaluator.effective_access(principal, args[0]))

    elif cmd == "records" and args:
        access = services.evaluator.guarded_access(principal, args[0])
        rows = services.query_engine.select_rows(args[0], access, limit=MAX_PREVIEW_ROWS)
        df = pd.DataFrame(rows)
        print(f"\n[Preview of {args[0]} (up to {MAX_PREVIEW_ROWS} rows)]")
        print("(no rows returned)" if df.empty else df.to_string(index=False))

    elif cmd == "grants" and args:
        user = services.users.get_by_username(args[0])
        if user is None:
            print(f"[error] Unknown user '{args[0]}'")
            return
        for g in services.store.list_grants(user):
            basis = services.locations.get(g.basis_identifier)
            label = basis.name if basis else "(deleted location)"
            print(f"  {g.basis_identifier:>6}  {label}  granted {g.date_created}")

    elif cmd == "assign" and len(args) >= 1:
        names = [n.strip() for n in " ".join(args[1:]).split(",") if n.strip()]
        result = services.reconciler.reconcile(
            ReconcileRequest(method="POST", username=args[0], basis_names=names),
            acting=principal,
        )
        print(f"[assign] {result.outcome.value}"
              f"{': ' + result.reason if result.reason else ''}"
              f" (granted {sorted(result.granted)}, revoked {sorted(result.revoked)})")

    elif cmd == "prune":
        known = [b.identifier for b in services.locations.list_all()]
        for grant_type in sorted({d.grant_type for d in services.registry.all_registrations()}):
            services.store.purge_dangling(known, entity_type=grant_type)

    else:
        print(HELP)


def main():
    print("=== Location Data Filter: operator console ===\n")

    engine = init_engine()
    services = build_services(engine, build_registry())

    # ── Login ────────────────────────────────────────────────────────
    try:
        api_key = input("Enter access key (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not api_key or api_key.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        principal = load_access_context(engine, api_key)
    except Exception as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return

    print(f"\n[auth] Logged in as: {principal.display_name} (super user={principal.is_super_user})")
    print(HELP)

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\ndatafilter> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        if line.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break

        try:
            run_command(services, principal, line)
        except DataFilterError as e:
            print(f"\n[ERROR] {type(e).__name__}")
            print("Details:", e)


if __name__ == "__main__":
    main()
