"""
Unit tests for RBAC – session loading, the permission table and the gate.
"""

import pytest

from rxledger.config import get_env
from rxledger.errors import Unauthorized
from rxledger.models import Operation, Role, Session
from rxledger.rbac import PERMISSIONS, AccessGate, is_allowed, load_session


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeResult:
    """Mimic SQLAlchemy Result with .mappings().first()."""
    def __init__(self, row_dict_or_none):
        self._row = row_dict_or_none

    def mappings(self):
        return self

    def first(self):
        return self._row


class FakeConn:
    def __init__(self, row_dict_or_none=None):
        self._row = row_dict_or_none
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((sql, params))
        return FakeResult(self._row)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeEngine:
    """Mimic engine.connect() context manager."""
    def __init__(self, row_dict_or_none=None):
        self._row = row_dict_or_none
        self.connect_calls = 0

    def connect(self):
        self.connect_calls += 1
        return FakeConn(self._row)


class FakeAudit:
    def __init__(self):
        self.appended = []

    def append(self, username, action, subject, details, conn=None):
        self.appended.append((username, action, subject, details))


# ── Tests: get_env ───────────────────────────────────────────────────

def test_get_env_ok(monkeypatch):
    monkeypatch.setenv("X", "123")
    assert get_env("X") == "123"


def test_get_env_missing_exits(monkeypatch, capsys):
    monkeypatch.delenv("MISSING_ENV", raising=False)
    with pytest.raises(SystemExit) as e:
        get_env("MISSING_ENV")
    assert e.value.code == 1
    err = capsys.readouterr().err
    assert "ERROR: env var MISSING_ENV is not set" in err


# ── Tests: load_session ──────────────────────────────────────────────

def test_load_session_pharmacist_ok():
    engine = FakeEngine({"username": "pat.pharm", "role": "Pharmacist "})
    session = load_session(engine, api_key="k")
    assert session == Session(username="pat.pharm", role=Role.PHARMACIST)
    assert engine.connect_calls == 1


def test_load_session_invalid_key():
    engine = FakeEngine(None)
    with pytest.raises(ValueError, match="Invalid key"):
        load_session(engine, api_key="bad")


def test_load_session_unsupported_role():
    engine = FakeEngine({"username": "x", "role": "doctor"})
    with pytest.raises(ValueError, match="Unsupported role"):
        load_session(engine, api_key="k")


# ── Tests: permission table ─────────────────────────────────────────

def test_every_operation_has_a_permission_entry():
    assert set(PERMISSIONS) == set(Operation)


@pytest.mark.parametrize("operation", [
    Operation.REGISTER_MEDICATION,
    Operation.UPDATE_MEDICATION,
    Operation.FILL_PRESCRIPTION,
    Operation.ADD_PATIENT,
])
def test_both_roles_may_mutate(operation):
    assert is_allowed(Role.PHARMACIST, operation)
    assert is_allowed(Role.ADMIN, operation)


def test_only_admin_reads_audit_log():
    assert is_allowed(Role.ADMIN, Operation.VIEW_AUDIT_LOG)
    assert not is_allowed(Role.PHARMACIST, Operation.VIEW_AUDIT_LOG)


# ── Tests: AccessGate ────────────────────────────────────────────────

def test_gate_allows_without_auditing():
    audit = FakeAudit()
    AccessGate(audit).check(Session("ada", Role.ADMIN), Operation.VIEW_AUDIT_LOG)
    assert audit.appended == []


def test_gate_denial_is_audited_before_raising():
    audit = FakeAudit()
    with pytest.raises(Unauthorized):
        AccessGate(audit).check(Session("pat", Role.PHARMACIST), Operation.VIEW_AUDIT_LOG)
    assert audit.appended == [
        ("pat", "DeniedAccess", "view_audit_log", "role 'pharmacist' may not view_audit_log"),
    ]
