"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Closed set of session roles. Fixed for the lifetime of a session."""
    PHARMACIST = "pharmacist"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str) -> "Role":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported role '{value}'.") from None


class Operation(str, Enum):
    """Operations checked by the access gate."""
    REGISTER_MEDICATION = "register_medication"
    UPDATE_MEDICATION = "update_medication"
    FILL_PRESCRIPTION = "fill_prescription"
    ADD_PATIENT = "add_patient"
    VIEW_AUDIT_LOG = "view_audit_log"


@dataclass(frozen=True)
class Session:
    """Authenticated actor passed explicitly to every mutating call."""
    username: str
    role: Role


@dataclass(frozen=True)
class MedicationIdentity:
    """Registration-time identity. Never changes after creation."""
    din: str                   # unique identifier code
    name: str
    ndc: Optional[str] = None  # secondary barcode


@dataclass
class Medication:
    id: int
    name: str
    din: str
    ndc: Optional[str]
    description: Optional[str]
    stock: int
    price: Decimal
    expiration: date


@dataclass
class Patient:
    id: int
    name: str
    birth_date: date
    phone: str
    health_card_num: str
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    allergies: Optional[str] = None
    insurance_provider: Optional[str] = None
    insurance_id: Optional[str] = None


@dataclass
class PrescriptionRecord:
    """One completed dispensing event. Never mutated after creation."""
    patient_id: int
    medication_id: int
    prescriber: str
    sig: str
    quantity: int
    days_supply: int
    refills_remaining: int
    date_filled: date
    filled_by: str
    id: Optional[int] = None
    patient_name: Optional[str] = None  # joined for display
    drug_name: Optional[str] = None     # joined for display

    @property
    def next_refill_date(self) -> date:
        return compute_next_refill(self.date_filled, self.days_supply)


@dataclass(frozen=True)
class AuditLogEntry:
    id: int  # sequence number
    username: str
    action: str
    subject: str
    details: str
    timestamp: str


@dataclass
class FillRequest:
    """Input to a single fulfillment transaction."""
    patient_id: int
    medication_id: int
    prescriber: str
    sig: str
    quantity: int
    days_supply: int
    refills_remaining: int
    date_filled: date = field(default_factory=date.today)


@dataclass(frozen=True)
class RefillHandoff:
    """Short-lived "process this refill" command handed from the dashboard
    to the fulfillment form. Refills are already decremented for the next fill.
    """
    patient_id: int
    patient_name: str
    medication_id: int
    prescriber: str
    sig: str
    quantity: int
    days_supply: int
    refills_remaining: int

    @classmethod
    def from_record(cls, record: PrescriptionRecord) -> "RefillHandoff":
        return cls(
            patient_id=record.patient_id,
            patient_name=record.patient_name or "",
            medication_id=record.medication_id,
            prescriber=record.prescriber,
            sig=record.sig,
            quantity=record.quantity,
            days_supply=record.days_supply,
            refills_remaining=max(record.refills_remaining - 1, 0),
        )

    def to_fill_request(self, date_filled: Optional[date] = None) -> FillRequest:
        return FillRequest(
            patient_id=self.patient_id,
            medication_id=self.medication_id,
            prescriber=self.prescriber,
            sig=self.sig,
            quantity=self.quantity,
            days_supply=self.days_supply,
            refills_remaining=self.refills_remaining,
            date_filled=date_filled or date.today(),
        )


def compute_next_refill(date_filled: date, days_supply: int) -> date:
    return date_filled + timedelta(days=days_supply)
