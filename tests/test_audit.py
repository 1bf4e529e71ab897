"""
Tests for the audit trail – ordering, access control and immutability.
"""

import threading

import pytest

from rxledger.audit import AuditTrail
from rxledger.errors import Unauthorized
from rxledger.models import Role, Session

PHARMACIST = Session(username="pat.pharm", role=Role.PHARMACIST)
ADMIN = Session(username="ada.admin", role=Role.ADMIN)


def test_admin_sees_all_entries_in_sequence_order(service):
    for i in range(5):
        service.audit.append("someone", "Test", f"subject:{i}", f"entry {i}")
    logs = service.audit_logs(ADMIN)
    assert [e.subject for e in logs] == [f"subject:{i}" for i in range(5)]
    assert [e.id for e in logs] == sorted(e.id for e in logs)


def test_pharmacist_is_denied_and_the_denial_is_logged(service):
    with pytest.raises(Unauthorized):
        service.audit_logs(PHARMACIST)
    last = service.audit_logs(ADMIN)[-1]
    assert last.action == "DeniedAccess"
    assert last.username == "pat.pharm"


def test_mutations_are_attributed(service, patient_id, medication_id):
    service.update_medication(PHARMACIST, medication_id, {"description": "Shelf Z9"})
    actions = [(e.username, e.action) for e in service.audit_logs(ADMIN)]
    assert ("ada.admin", "AddPatient") in actions
    assert ("ada.admin", "RegisterMedication") in actions
    assert ("pat.pharm", "UpdateMedication") in actions


def test_entries_have_utc_timestamps(service):
    entry = service.audit.append("u", "Test", "s", "d")
    assert entry.timestamp.endswith("+00:00")


def test_append_inside_caller_transaction_logs_only_standalone_entries(service, capsys):
    capsys.readouterr()

    class Abort(Exception):
        pass

    with pytest.raises(Abort):
        with service.engine.begin() as conn:
            service.audit.append("u", "Test", "s", "inside", conn=conn)
            raise Abort()
    assert capsys.readouterr().out == ""
    assert service.audit.entries() == []

    entry = service.audit.append("u", "Test", "s", "standalone")
    assert capsys.readouterr().out == f"[audit] #{entry.id} u Test s\n"


def test_concurrent_appends_get_distinct_sequence_numbers(service):
    def writer(n):
        for i in range(10):
            service.audit.append(f"t{n}", "Test", f"{n}:{i}", "")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    ids = [e.id for e in service.audit.entries()]
    assert len(ids) == 40
    assert len(set(ids)) == 40
    assert ids == sorted(ids)


def test_trail_exposes_no_update_or_delete():
    assert not any(hasattr(AuditTrail, name) for name in ("update", "delete", "remove", "edit"))
