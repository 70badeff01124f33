"""
Flask route handlers for the REST API.
"""

import sys
import traceback

from flask import request, jsonify

from datafilter.config import (
    FORM_FIELD_USER_ID,
    FORM_FIELD_USERNAME,
    HEADER_USER_UUID,
    MAX_RESULTS_RETURN,
    is_filtering_enabled,
    set_filtering_enabled,
)
from datafilter.database import missing_tables
from datafilter.errors import ConfigurationError
from datafilter.rbac import load_access_context
from datafilter.api.auth import (
    sessions,
    open_session,
    token_required,
    admin_required,
)


def _access_json(access):
    return {
        "kind": access.kind.value,
        "basis_ids": sorted(access.basis_ids),
    }


def register_routes(app, services):
    """Register all API routes on the Flask *app*.

    *services* bundles the engine, registry, grant store, evaluator,
    query engine and directories built by the application factory.
    """
    engine = services.engine
    registry = services.registry
    evaluator = services.evaluator
    query_engine = services.query_engine
    store = services.store
    users = services.users
    locations = services.locations

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Location Data Filter API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "auth": "/api/auth/login",
                "access": "/api/access/<entity_type>",
                "records": "/api/records/<entity_type>",
                "filters": "/api/filters",
                "users": "/api/admin/users",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False, "tables": False, "filters": len(registry) > 0}
        missing = []
        try:
            missing = missing_tables(engine)
            checks["database"] = True
            checks["tables"] = not missing
        except Exception as e:
            print(f"[WARN] Health check failed: {e}", file=sys.stderr)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "missing_tables": missing,
            "active_sessions": len(sessions),
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        api_key = (request.json.get("api_key") or "").strip()
        if not api_key:
            return jsonify({"error": "api_key is required"}), 400

        try:
            principal = load_access_context(engine, api_key)
        except ValueError as e:
            return jsonify({"error": f"Authentication failed: {str(e)}"}), 401

        token = open_session(principal)
        return jsonify({
            "success": True,
            "token": token,
            "user": {
                "id": principal.principal_id,
                "username": principal.username,
                "display_name": principal.display_name,
                "super_user": principal.is_super_user,
            },
        }), 200

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    def logout():
        sessions.pop(request.token, None)
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    # ── Filtered reads ───────────────────────────────────────────────

    @app.route("/api/filters", methods=["GET"])
    @token_required
    def list_filters():
        return jsonify({
            "success": True,
            "filters": [
                {
                    "name": d.name,
                    "entity_type": d.entity_type,
                    "basis_type": d.basis_type,
                    "grant_type": d.grant_type,
                    "condition": d.condition,
                    "enabled": is_filtering_enabled(d.entity_type),
                }
                for d in registry.all_registrations()
            ],
        }), 200

    @app.route("/api/access/<entity_type>", methods=["GET"])
    @token_required
    def get_access(entity_type):
        principal = request.session_data["principal"]
        try:
            access = evaluator.guarded_access(principal, entity_type)
        except ConfigurationError as e:
            return jsonify({"error": str(e)}), 404
        return jsonify({"success": True, "entity_type": entity_type, "access": _access_json(access)}), 200

    @app.route("/api/records/<entity_type>", methods=["GET"])
    @token_required
    def get_records(entity_type):
        principal = request.session_data["principal"]
        max_rows = min(request.args.get("max_rows", MAX_RESULTS_RETURN, type=int), MAX_RESULTS_RETURN)

        try:
            access = evaluator.guarded_access(principal, entity_type)
            rows = query_engine.select_rows(entity_type, access, limit=max_rows)
        except ConfigurationError as e:
            return jsonify({"error": str(e)}), 404

        return jsonify({
            "success": True,
            "entity_type": entity_type,
            "access": _access_json(access),
            "row_count": len(rows),
            "data": rows,
        }), 200

    # ── Administration ───────────────────────────────────────────────

    @app.route("/api/admin/users", methods=["POST"])
    @admin_required
    def save_user_form():
        # Location grants are reconciled by the after-request hook.
        data = (request.get_json(silent=True) or {}) if request.is_json else request.form
        user_id = data.get(FORM_FIELD_USER_ID)
        username = data.get(FORM_FIELD_USERNAME)

        principal = users.get_by_id(user_id) if user_id else None
        if principal is None and username:
            principal = users.get_by_username(username)
        if principal is None:
            return jsonify({"error": "User not found"}), 400

        response = jsonify({
            "success": True,
            "user": {"id": principal.principal_id, "username": principal.username},
        })
        if principal.uuid:
            response.headers[HEADER_USER_UUID] = principal.uuid
        return response, 200

    @app.route("/api/admin/users/<username>/grants", methods=["GET"])
    @admin_required
    def get_user_grants(username):
        principal = users.get_by_username(username)
        if principal is None:
            return jsonify({"error": "User not found"}), 404

        entity_type = request.args.get("entity_type", "patient")
        grants = store.list_grants(principal, entity_type)
        result = []
        for g in grants:
            basis = locations.get(g.basis_identifier)
            result.append({
                "basis_identifier": g.basis_identifier,
                "basis_type": g.basis_type,
                "name": basis.name if basis else None,
                "date_created": g.date_created.isoformat() if g.date_created else None,
            })
        return jsonify({"success": True, "username": username, "entity_type": entity_type,
                        "grants": result}), 200

    @app.route("/api/admin/filtering/<entity_type>", methods=["PUT"])
    @admin_required
    def toggle_filtering(entity_type):
        if registry.registration_for(entity_type) is None:
            return jsonify({"error": f"Entity type '{entity_type}' has no registered filter"}), 404
        if not request.is_json or "enabled" not in request.json:
            return jsonify({"error": "JSON body with 'enabled' is required"}), 400

        set_filtering_enabled(entity_type, bool(request.json["enabled"]))
        return jsonify({"success": True, "entity_type": entity_type,
                        "enabled": is_filtering_enabled(entity_type)}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        print(f"[ERROR] {e}", file=sys.stderr)
        traceback.print_exc()
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
