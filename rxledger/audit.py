"""
AuditTrail – append-only record of every privileged or mutating action.
"""

from datetime import datetime, timezone
from typing import List

from sqlalchemy import insert, text

from rxledger.database import audit_logs, storage_errors, transaction
from rxledger.models import AuditLogEntry, Operation

# Action kinds
FILL_PRESCRIPTION = "FillPrescription"
DENIED_ACCESS = "DeniedAccess"
REGISTER_MEDICATION = "RegisterMedication"
UPDATE_MEDICATION = "UpdateMedication"
ADD_PATIENT = "AddPatient"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def log_entry(entry: AuditLogEntry) -> None:
    print(f"[audit] #{entry.id} {entry.username} {entry.action} {entry.subject}")


class AuditTrail:
    """Entries are ordered by the sequence number the database assigns on insert.

    There is no update or delete method.
    """

    def __init__(self, engine):
        self.engine = engine

    def append(self, username: str, action: str, subject: str, details: str, conn=None) -> AuditLogEntry:
        timestamp = utc_timestamp()
        with storage_errors("audit append"):
            with transaction(self.engine, conn) as c:
                result = c.execute(insert(audit_logs).values(
                    username=username,
                    action=action,
                    subject=subject,
                    details=details,
                    timestamp=timestamp,
                ))
                seq = int(result.inserted_primary_key[0])
        entry = AuditLogEntry(seq, username, action, subject, details, timestamp)
        if conn is None:
            # callers passing conn own the transaction and log after commit
            log_entry(entry)
        return entry

    def entries(self) -> List[AuditLogEntry]:
        """Every entry in ascending sequence order. Callers gate access."""
        with storage_errors("audit list"):
            with self.engine.connect() as conn:
                rows = conn.execute(text("""
                    SELECT id, username, action, subject, details, timestamp
                    FROM audit_logs
                    ORDER BY id ASC
                """)).mappings().all()
        return [
            AuditLogEntry(
                id=int(r["id"]), username=r["username"], action=r["action"],
                subject=r["subject"], details=r["details"], timestamp=r["timestamp"],
            )
            for r in rows
        ]

    def list(self, session, gate) -> List[AuditLogEntry]:
        """Entries for ``session``; ``gate`` rejects (and logs) non-admin requesters."""
        gate.check(session, Operation.VIEW_AUDIT_LOG)
        return self.entries()
