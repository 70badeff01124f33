"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback
from dataclasses import dataclass
from typing import Any

from flask import Flask
from flask_cors import CORS

from datafilter.access import AccessEvaluator
from datafilter.config import TOKEN_EXPIRY_HOURS, USER_FORM_PATHS
from datafilter.database import FilteredQueryEngine, init_engine
from datafilter.directory import LocationDirectory
from datafilter.filters import FilterRegistry, bootstrap_filters, build_registry
from datafilter.grants import GrantStore
from datafilter.rbac import UserDirectory
from datafilter.reconcile import GrantReconciler
from datafilter.api.hooks import register_reconciliation_hook
from datafilter.api.routes import register_routes


@dataclass
class Services:
    engine: Any
    registry: FilterRegistry
    store: GrantStore
    users: UserDirectory
    locations: LocationDirectory
    evaluator: AccessEvaluator
    query_engine: FilteredQueryEngine
    reconciler: GrantReconciler


def build_services(engine, registry: FilterRegistry) -> Services:
    """Wire the grant store, evaluator, reconciler and query engine together."""
    store = GrantStore(engine)
    users = UserDirectory(engine)
    locations = LocationDirectory(engine)
    query_engine = FilteredQueryEngine(engine)
    bootstrap_filters(registry, query_engine)
    return Services(
        engine=engine,
        registry=registry,
        store=store,
        users=users,
        locations=locations,
        evaluator=AccessEvaluator(store, registry, identity=users),
        query_engine=query_engine,
        reconciler=GrantReconciler(store, users, locations),
    )


def create_app(engine=None, registrations=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    try:
        if engine is None:
            print("[init] Initializing database connection...")
            engine = init_engine()

        print("[init] Building filter registry...")
        registry = build_registry(registrations)

        services = build_services(engine, registry)
        print("[init] ✓ API server ready")
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, services)
    register_reconciliation_hook(app, services.reconciler, USER_FORM_PATHS)
    app.extensions["datafilter"] = services

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Location Data Filter – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Session expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - GET  http://{host}:{port}/api/access/<entity_type>")
    print(f"  - GET  http://{host}:{port}/api/records/<entity_type>")
    print(f"  - GET  http://{host}:{port}/api/filters")
    print(f"  - POST http://{host}:{port}/api/admin/users")
    print(f"  - GET  http://{host}:{port}/api/admin/users/<username>/grants")
    print(f"  - PUT  http://{host}:{port}/api/admin/filtering/<entity_type>")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
