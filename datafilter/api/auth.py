"""
Bearer-token sessions for the Flask API.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Dict, Any, Optional

import jwt
from flask import request, jsonify

from datafilter.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from datafilter.models import Principal
from datafilter.rbac import is_super_user

# token -> {"principal": Principal, "created_at": datetime, "last_activity": datetime}
sessions: Dict[str, Dict[str, Any]] = {}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token(principal: Principal) -> str:
    now = utcnow()
    payload = {
        "sub": str(principal.principal_id),
        "username": principal.username,
        "super_user": principal.is_super_user,
        "iat": now,
        "exp": now + timedelta(hours=TOKEN_EXPIRY_HOURS),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Decoded payload, or None for an expired or tampered token."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None


def open_session(principal: Principal) -> str:
    """Issue a token for *principal* and remember its session."""
    cleanup_expired_sessions()
    token = generate_token(principal)
    now = utcnow()
    sessions[token] = {"principal": principal, "created_at": now, "last_activity": now}
    return token


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header:
        scheme, _, value = header.partition(" ")
        return value.strip() if scheme.lower() == "bearer" and value.strip() else ""
    return request.args.get("token")


def token_required(f):
    """Reject the request unless it carries the token of a live session."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _bearer_token()
        if token == "":
            return jsonify({"error": "Invalid authorization header format"}), 401
        if not token:
            return jsonify({"error": "Authentication token is missing"}), 401

        payload = verify_token(token)
        if not payload:
            return jsonify({"error": "Invalid or expired token"}), 401

        session = sessions.get(token)
        if session is None or str(session["principal"].principal_id) != payload.get("sub"):
            return jsonify({"error": "Session not found. Please login again."}), 401

        session["last_activity"] = utcnow()
        request.session_data = session
        request.token = token
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Like token_required, but the caller must also be a super user."""
    @wraps(f)
    @token_required
    def decorated(*args, **kwargs):
        if not is_super_user(request.session_data["principal"]):
            return jsonify({"error": "Administrator access required"}), 403
        return f(*args, **kwargs)

    return decorated


def cleanup_expired_sessions() -> int:
    """Drop sessions idle for longer than TOKEN_EXPIRY_HOURS."""
    cutoff = utcnow() - timedelta(hours=TOKEN_EXPIRY_HOURS)
    expired = [tok for tok, data in sessions.items() if data["last_activity"] < cutoff]
    for tok in expired:
        del sessions[tok]
    if expired:
        print(f"[cleanup] Removed {len(expired)} expired sessions")
    return len(expired)
