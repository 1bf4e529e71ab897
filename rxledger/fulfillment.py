"""
FillProcessor – commits one dispensing event as a single unit of work.

Protocol:
  1. Validate (read-only). Unknown patient/medication -> NotFound,
     quantity above stock -> InsufficientStock. Nothing is written.
  2. Inside one database transaction: decrement stock with a conditional
     update, append the prescription record, append the audit entry.
     A lost race on the decrement re-validates once and then reports Conflict.
  3. Any failure after the decrement rolls the whole transaction back, which
     restores the stock.

Failed fills are not audited; they leave stock, records and audit untouched.
"""

from rxledger.audit import FILL_PRESCRIPTION, log_entry
from rxledger.config import FILL_RETRY_LIMIT
from rxledger.database import as_date, storage_errors
from rxledger.errors import Conflict, InsufficientStock, ValidationError
from rxledger.models import FillRequest, PrescriptionRecord, Session


def _positive_int(name: str, value, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        qualifier = "positive" if minimum > 0 else "non-negative"
        raise ValidationError(f"{name} must be a {qualifier} integer")
    return value


def validate_request(request: FillRequest) -> None:
    """Field-level checks; raises ValidationError."""
    _positive_int("quantity", request.quantity, 1)
    _positive_int("days_supply", request.days_supply, 1)
    _positive_int("refills_remaining", request.refills_remaining, 0)
    if not (request.prescriber or "").strip():
        raise ValidationError("prescriber is required")
    if not (request.sig or "").strip():
        raise ValidationError("sig (instructions) is required")
    try:
        request.date_filled = as_date(request.date_filled)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid date_filled: {request.date_filled!r}") from None


class FillProcessor:

    def __init__(self, engine, ledger, records, audit, patients):
        self.engine = engine
        self.ledger = ledger
        self.records = records
        self.audit = audit
        self.patients = patients

    def fill(self, session: Session, request: FillRequest) -> int:
        """Dispense ``request`` on behalf of ``session``; returns the new record id."""
        validate_request(request)
        patient = self.patients.get(request.patient_id)
        medication = self.ledger.get(request.medication_id)
        if request.quantity > medication.stock:
            raise InsufficientStock(
                f"Insufficient stock for {medication.name}: "
                f"{medication.stock} on hand, {request.quantity} requested.",
                available=medication.stock,
                requested=request.quantity,
            )

        retries = 0
        while True:
            try:
                record_id = self._commit(session, request, patient, medication)
            except InsufficientStock:
                # Stock moved between validation and commit.
                if retries >= FILL_RETRY_LIMIT:
                    raise Conflict(
                        f"Stock for {medication.name} changed during the fill; please resubmit."
                    ) from None
                retries += 1
                medication = self.ledger.get(request.medication_id)
                if request.quantity > medication.stock:
                    raise Conflict(
                        f"Stock for {medication.name} changed during the fill: "
                        f"{medication.stock} on hand, {request.quantity} requested."
                    ) from None
                continue
            print(
                f"[fill] #{record_id} {session.username}: {request.quantity} x {medication.name} "
                f"for patient {patient.id}"
            )
            return record_id

    def _commit(self, session, request, patient, medication) -> int:
        record = PrescriptionRecord(
            patient_id=patient.id,
            medication_id=medication.id,
            prescriber=request.prescriber.strip(),
            sig=request.sig.strip(),
            quantity=request.quantity,
            days_supply=request.days_supply,
            refills_remaining=request.refills_remaining,
            date_filled=request.date_filled,
            filled_by=session.username,
        )
        with storage_errors("prescription fill"):
            with self.engine.begin() as conn:
                self.ledger.adjust_stock(medication.id, -request.quantity, conn=conn)
                record_id = self.records.append(record, conn=conn)
                entry = self.audit.append(
                    session.username,
                    FILL_PRESCRIPTION,
                    f"medication:{medication.id} patient:{patient.id}",
                    f"Dispensed {request.quantity} x {medication.name} ({medication.din}) "
                    f"to {patient.name}; next refill {record.next_refill_date.isoformat()}",
                    conn=conn,
                )
        log_entry(entry)
        return record_id
