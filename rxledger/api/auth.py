"""
JWT authentication helpers and middleware for the Flask API.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import jsonify, request

from rxledger.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from rxledger.models import Session

# In-memory session store, keyed by token.
# Structure: {token: {"session": Session, "created_at": datetime, "last_activity": datetime}}
sessions: Dict[str, Dict[str, Any]] = {}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_token(session: Session) -> str:
    """Generate a JWT token for an authenticated user."""
    payload = {
        "sub": session.username,
        "role": session.role.value,
        "iat": _now(),
        "exp": _now() + timedelta(hours=TOKEN_EXPIRY_HOURS),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def open_session(session: Session) -> str:
    token = generate_token(session)
    sessions[token] = {
        "session": session,
        "created_at": _now(),
        "last_activity": _now(),
    }
    return token


def token_required(f):
    """Decorator that protects endpoints with JWT authentication.

    The wrapped view receives the caller's Session via ``request.rx_session``.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            return jsonify({"error": "Authentication token is missing"}), 401
        parts = auth_header.split(" ")
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return jsonify({"error": "Invalid authorization header format"}), 401
        token = parts[1]

        if not verify_token(token):
            return jsonify({"error": "Invalid or expired token"}), 401

        data = sessions.get(token)
        if data is None:
            return jsonify({"error": "Session not found. Please login again."}), 401

        data["last_activity"] = _now()
        request.rx_session = data["session"]
        request.token = token
        return f(*args, **kwargs)

    return decorated


def cleanup_expired_sessions() -> int:
    """Remove sessions that have been inactive beyond TOKEN_EXPIRY_HOURS."""
    now = _now()
    expired = [
        tok for tok, data in sessions.items()
        if (now - data["last_activity"]).total_seconds() > TOKEN_EXPIRY_HOURS * 3600
    ]
    for tok in expired:
        del sessions[tok]
    if expired:
        print(f"[cleanup] Removed {len(expired)} expired sessions")
    return len(expired)
