"""
PharmacyService – the command surface used by the CLI and the REST API.

Every mutating call takes the caller's Session explicitly and passes the
AccessGate before touching a store.
"""

import threading
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from rxledger.audit import ADD_PATIENT, REGISTER_MEDICATION, UPDATE_MEDICATION, AuditTrail, log_entry
from rxledger.config import UPCOMING_LIMIT
from rxledger.database import storage_errors
from rxledger.fulfillment import FillProcessor
from rxledger.handoff import HandoffSlot
from rxledger.ledger import MedicationLedger
from rxledger.models import (
    AuditLogEntry, FillRequest, Medication, MedicationIdentity, Operation, Patient,
    PrescriptionRecord, RefillHandoff, Session,
)
from rxledger.patients import PatientDirectory
from rxledger.prescriptions import PrescriptionRecordStore
from rxledger.rbac import AccessGate
from rxledger.reports import dispensing_summary, inventory_report
from rxledger.scheduler import RefillScheduler
from rxledger.search import SearchIndex


class PharmacyService:

    def __init__(self, engine):
        self.engine = engine
        self.audit = AuditTrail(engine)
        self.gate = AccessGate(self.audit)
        self.ledger = MedicationLedger(engine)
        self.patients = PatientDirectory(engine)
        self.records = PrescriptionRecordStore(engine)
        self.scheduler = RefillScheduler(self.records, self.ledger)
        self.fills = FillProcessor(engine, self.ledger, self.records, self.audit, self.patients)
        self.index = SearchIndex(engine, self.patients)
        self._handoffs: Dict[str, HandoffSlot] = {}
        self._handoffs_lock = threading.Lock()

    # ── Inventory ────────────────────────────────────────────────────

    def register_medication(
        self,
        session: Session,
        identity: MedicationIdentity,
        stock: int,
        price,
        expiration: date,
        description: Optional[str] = None,
    ) -> int:
        self.gate.check(session, Operation.REGISTER_MEDICATION)
        with storage_errors("register medication"):
            with self.engine.begin() as conn:
                medication_id = self.ledger.register(
                    identity, stock, price, expiration, description=description, conn=conn,
                )
                entry = self.audit.append(
                    session.username,
                    REGISTER_MEDICATION,
                    f"medication:{medication_id}",
                    f"Registered {identity.name} (DIN {identity.din}) with stock {stock}",
                    conn=conn,
                )
        log_entry(entry)
        return medication_id

    def update_medication(self, session: Session, medication_id: int, changes: Dict[str, Any]) -> None:
        self.gate.check(session, Operation.UPDATE_MEDICATION)
        with storage_errors("update medication"):
            with self.engine.begin() as conn:
                applied = self.ledger.update_mutable_fields(medication_id, changes, conn=conn)
                detail = ", ".join(f"{k}={v}" for k, v in sorted(applied.items()))
                entry = self.audit.append(
                    session.username,
                    UPDATE_MEDICATION,
                    f"medication:{medication_id}",
                    f"Updated {detail}",
                    conn=conn,
                )
        log_entry(entry)

    def list_medications(self, filter: Optional[str] = None) -> List[Medication]:
        return self.ledger.list(filter)

    def get_medication(self, medication_id: int) -> Medication:
        return self.ledger.get(medication_id)

    # ── Fulfillment ──────────────────────────────────────────────────

    def fill_prescription(self, session: Session, request: FillRequest) -> int:
        self.gate.check(session, Operation.FILL_PRESCRIPTION)
        return self.fills.fill(session, request)

    def queue_refill(self, session: Session, record_id: int) -> RefillHandoff:
        """Stage a refill of ``record_id`` for this session's next fill form."""
        handoff = RefillHandoff.from_record(self.records.get(record_id))
        self._slot(session).offer(handoff)
        return handoff

    def take_refill(self, session: Session) -> Optional[RefillHandoff]:
        return self._slot(session).take()

    def _slot(self, session: Session) -> HandoffSlot:
        with self._handoffs_lock:
            return self._handoffs.setdefault(session.username, HandoffSlot())

    # ── Refill schedule ──────────────────────────────────────────────

    def dashboard_stats(self, today: Optional[date] = None) -> Dict[str, int]:
        return self.scheduler.dashboard_stats(today)

    def upcoming_refills(self, limit: int = UPCOMING_LIMIT, today: Optional[date] = None) -> List[PrescriptionRecord]:
        return self.scheduler.upcoming(limit, today)

    def due_prescriptions(self, filter: str, today: Optional[date] = None) -> List[PrescriptionRecord]:
        return self.scheduler.due(filter, today)

    # ── Patients ─────────────────────────────────────────────────────

    def add_patient(self, session: Session, data: Dict[str, Any]) -> int:
        self.gate.check(session, Operation.ADD_PATIENT)
        with storage_errors("add patient"):
            with self.engine.begin() as conn:
                patient_id = self.patients.add(data, conn=conn)
                entry = self.audit.append(
                    session.username,
                    ADD_PATIENT,
                    f"patient:{patient_id}",
                    f"Added patient {data['name'].strip()}",
                    conn=conn,
                )
        log_entry(entry)
        return patient_id

    def get_patient(self, patient_id: int) -> Patient:
        return self.patients.get(patient_id)

    def patient_history(self, patient_id: int) -> List[PrescriptionRecord]:
        self.patients.get(patient_id)
        return self.records.query_by_patient(patient_id)

    def search_patients(self, query: str = "") -> List[Patient]:
        return self.index.search(query)

    # ── Audit / reports ──────────────────────────────────────────────

    def audit_logs(self, session: Session) -> List[AuditLogEntry]:
        return self.audit.list(session, self.gate)

    def inventory_report(self, today: Optional[date] = None) -> Dict[str, Any]:
        return inventory_report(self.ledger.list(), today or date.today())

    def dispensing_summary(self) -> pd.DataFrame:
        return dispensing_summary(self.records.query_all())
