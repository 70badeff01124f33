"""
Reconciliation hook run after the user form handler.
"""

from flask import request

from datafilter.config import (
    FORM_FIELD_BASIS_NAMES,
    FORM_FIELD_USER_ID,
    FORM_FIELD_USERNAME,
    HEADER_USER_UUID,
)
from datafilter.models import ReconcileRequest


def request_from_form(req, response) -> ReconcileRequest:
    """Build a ReconcileRequest from a submitted form and its response.

    The uuid of a freshly saved user is only known after the upstream
    handler ran, so it is read from the response headers.
    """
    if req.is_json:
        data = req.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        names = data.get(FORM_FIELD_BASIS_NAMES)
        if isinstance(names, str):
            names = [names]
        elif isinstance(names, list):
            names = [n for n in names if isinstance(n, str)]
        else:
            names = None
        user_id, username = data.get(FORM_FIELD_USER_ID), data.get(FORM_FIELD_USERNAME)
    else:
        names = req.form.getlist(FORM_FIELD_BASIS_NAMES) if FORM_FIELD_BASIS_NAMES in req.form else None
        user_id, username = req.form.get(FORM_FIELD_USER_ID), req.form.get(FORM_FIELD_USERNAME)

    return ReconcileRequest(
        method=req.method,
        basis_names=list(names) if names is not None else None,
        user_id=user_id,
        user_uuid=response.headers.get(HEADER_USER_UUID),
        username=username,
        response_status=response.status_code,
    )


def register_reconciliation_hook(app, reconciler, paths):
    """Reconcile location grants after requests to *paths*.

    The response passes through unchanged; a store failure propagates and
    turns the request into a server error.
    """
    paths = set(paths)

    @app.after_request
    def reconcile_user_locations(response):
        if request.path not in paths:
            return response
        session_data = getattr(request, "session_data", None) or {}
        reconciler.reconcile(request_from_form(request, response), acting=session_data.get("principal"))
        return response

    return reconcile_user_locations
