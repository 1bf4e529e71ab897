"""
PatientDirectory – patient identity records.

Profile editing lives outside the core; this store only supports the intake
insert and the lookups the core needs (existence checks and display names).
"""

from typing import Any, Dict, List

from sqlalchemy import insert, text
from sqlalchemy.exc import IntegrityError

from rxledger.database import as_date, patients, storage_errors, transaction
from rxledger.errors import DuplicateIdentifier, NotFound, ValidationError
from rxledger.models import Patient

REQUIRED_FIELDS = ("name", "birth_date", "phone", "health_card_num")
OPTIONAL_FIELDS = (
    "email", "address", "city", "state", "postal_code",
    "allergies", "insurance_provider", "insurance_id",
)

_SELECT_PATIENT = """
    SELECT id, name, birth_date, phone, email, address, city, state, postal_code,
           health_card_num, allergies, insurance_provider, insurance_id
    FROM patients
"""


def patient_from_row(row) -> Patient:
    data = dict(row)
    data["id"] = int(data["id"])
    data["birth_date"] = as_date(data["birth_date"])
    return Patient(**data)


class PatientDirectory:

    def __init__(self, engine):
        self.engine = engine

    def add(self, data: Dict[str, Any], conn=None) -> int:
        missing = [f for f in REQUIRED_FIELDS if not str(data.get(f) or "").strip()]
        if missing:
            raise ValidationError(f"missing required fields: {', '.join(missing)}")
        unknown = sorted(set(data) - set(REQUIRED_FIELDS) - set(OPTIONAL_FIELDS))
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(unknown)}")
        not_text = [
            f for f in ("name", "phone", "health_card_num") + OPTIONAL_FIELDS
            if data.get(f) is not None and not isinstance(data[f], str)
        ]
        if not_text:
            raise ValidationError(f"fields must be text: {', '.join(not_text)}")
        try:
            birth_date = as_date(data["birth_date"])
        except ValueError:
            raise ValidationError(f"invalid birth_date: {data['birth_date']!r}") from None

        values = {f: (data.get(f) or None) for f in OPTIONAL_FIELDS}
        values.update(
            name=data["name"].strip(),
            birth_date=birth_date,
            phone=data["phone"].strip(),
            health_card_num=data["health_card_num"].strip(),
        )
        with transaction(self.engine, conn) as c:
            try:
                result = c.execute(insert(patients).values(**values))
            except IntegrityError as e:
                raise DuplicateIdentifier(
                    f"Patient with health card {values['health_card_num']} already exists."
                ) from e
            return int(result.inserted_primary_key[0])

    def get(self, patient_id: int, conn=None) -> Patient:
        sql = text(_SELECT_PATIENT + " WHERE id = :id")
        if conn is not None:
            row = conn.execute(sql, {"id": patient_id}).mappings().first()
        else:
            with storage_errors("patient lookup"):
                with self.engine.connect() as c:
                    row = c.execute(sql, {"id": patient_id}).mappings().first()
        if not row:
            raise NotFound(f"Patient {patient_id} not found.")
        return patient_from_row(row)

    def list(self) -> List[Patient]:
        with storage_errors("patient list"):
            with self.engine.connect() as conn:
                rows = conn.execute(text(_SELECT_PATIENT + " ORDER BY name, id")).mappings().all()
        return [patient_from_row(r) for r in rows]
