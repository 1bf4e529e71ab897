"""
PrescriptionRecordStore – append-only log of dispensing events.

The store has no knowledge of stock; callers validate and reserve stock
before appending.
"""

from typing import List

from sqlalchemy import insert, text

from rxledger.database import as_date, prescriptions, storage_errors, transaction
from rxledger.errors import NotFound
from rxledger.models import PrescriptionRecord

_SELECT_RECORD = """
    SELECT rx.id, rx.patient_id, rx.medication_id, rx.prescriber, rx.sig,
           rx.quantity, rx.days_supply, rx.refills_remaining, rx.date_filled,
           rx.filled_by, p.name AS patient_name, m.name AS drug_name
    FROM prescriptions rx
    JOIN patients p ON p.id = rx.patient_id
    JOIN medications m ON m.id = rx.medication_id
"""


def record_from_row(row) -> PrescriptionRecord:
    return PrescriptionRecord(
        id=int(row["id"]),
        patient_id=int(row["patient_id"]),
        medication_id=int(row["medication_id"]),
        prescriber=row["prescriber"],
        sig=row["sig"],
        quantity=int(row["quantity"]),
        days_supply=int(row["days_supply"]),
        refills_remaining=int(row["refills_remaining"]),
        date_filled=as_date(row["date_filled"]),
        filled_by=row["filled_by"],
        patient_name=row["patient_name"],
        drug_name=row["drug_name"],
    )


class PrescriptionRecordStore:
    """Insert and query only. There is no update or delete."""

    def __init__(self, engine):
        self.engine = engine

    def append(self, record: PrescriptionRecord, conn=None) -> int:
        with transaction(self.engine, conn) as c:
            result = c.execute(insert(prescriptions).values(
                patient_id=record.patient_id,
                medication_id=record.medication_id,
                prescriber=record.prescriber,
                sig=record.sig,
                quantity=record.quantity,
                days_supply=record.days_supply,
                refills_remaining=record.refills_remaining,
                date_filled=record.date_filled,
                next_refill_date=record.next_refill_date,
                filled_by=record.filled_by,
            ))
            return int(result.inserted_primary_key[0])

    def get(self, record_id: int) -> PrescriptionRecord:
        row = self._fetch(_SELECT_RECORD + " WHERE rx.id = :id", {"id": record_id})
        if not row:
            raise NotFound(f"Prescription {record_id} not found.")
        return record_from_row(row[0])

    def query_by_patient(self, patient_id: int) -> List[PrescriptionRecord]:
        rows = self._fetch(
            _SELECT_RECORD + " WHERE rx.patient_id = :pid ORDER BY rx.date_filled DESC, rx.id DESC",
            {"pid": patient_id},
        )
        return [record_from_row(r) for r in rows]

    def query_all(self) -> List[PrescriptionRecord]:
        rows = self._fetch(_SELECT_RECORD + " ORDER BY rx.id", {})
        return [record_from_row(r) for r in rows]

    def _fetch(self, sql: str, params):
        with storage_errors("prescription query"):
            with self.engine.connect() as conn:
                return conn.execute(text(sql), params).mappings().all()
