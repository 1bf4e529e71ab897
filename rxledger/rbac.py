"""
Role-Based Access Control – loading sessions and gating privileged operations.
"""

from typing import Dict, FrozenSet

from sqlalchemy import text

from rxledger.audit import DENIED_ACCESS, AuditTrail
from rxledger.database import storage_errors
from rxledger.errors import Unauthorized
from rxledger.models import Operation, Role, Session

_ALL_ROLES = frozenset({Role.PHARMACIST, Role.ADMIN})

PERMISSIONS: Dict[Operation, FrozenSet[Role]] = {
    Operation.REGISTER_MEDICATION: _ALL_ROLES,
    Operation.UPDATE_MEDICATION: _ALL_ROLES,
    Operation.FILL_PRESCRIPTION: _ALL_ROLES,
    Operation.ADD_PATIENT: _ALL_ROLES,
    Operation.VIEW_AUDIT_LOG: frozenset({Role.ADMIN}),
}


def is_allowed(role: Role, operation: Operation) -> bool:
    """Single permission check for every (role, operation) pair."""
    return role in PERMISSIONS.get(operation, frozenset())


def load_session(engine, api_key: str) -> Session:
    """Look up a portal user by API key and return their Session."""
    sql = text("""
        SELECT username, role
        FROM portal_users
        WHERE api_key = :k AND is_active = 1
    """)
    with storage_errors("session lookup"):
        with engine.connect() as conn:
            row = conn.execute(sql, {"k": api_key}).mappings().first()

    if not row:
        raise ValueError("Invalid key or user inactive (no match in portal_users).")

    return Session(username=str(row["username"]), role=Role.parse(row["role"]))


class AccessGate:
    """Checks a session's role before privileged calls; denials are audited."""

    def __init__(self, audit: AuditTrail):
        self.audit = audit

    def check(self, session: Session, operation: Operation) -> None:
        if is_allowed(session.role, operation):
            return
        self.audit.append(
            session.username,
            DENIED_ACCESS,
            operation.value,
            f"role '{session.role.value}' may not {operation.value}",
        )
        raise Unauthorized(f"Role '{session.role.value}' is not permitted to {operation.value}.")
