"""
MedicationLedger – authoritative stock quantities and drug identity records.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, text
from sqlalchemy.exc import IntegrityError

from rxledger.database import as_date, as_price, medications, storage_errors, transaction
from rxledger.errors import DuplicateIdentifier, InsufficientStock, NotFound, ValidationError
from rxledger.models import Medication, MedicationIdentity

IDENTITY_FIELDS = {"id", "din", "ndc", "name"}
MUTABLE_FIELDS = {"stock", "price", "description", "expiration"}

_SELECT_MEDICATION = """
    SELECT id, name, din, ndc, description, stock, price, expiration
    FROM medications
"""


def medication_from_row(row) -> Medication:
    return Medication(
        id=int(row["id"]),
        name=row["name"],
        din=row["din"],
        ndc=row["ndc"],
        description=row["description"],
        stock=int(row["stock"]),
        price=as_price(row["price"]),
        expiration=as_date(row["expiration"]),
    )


def _check_price(price) -> Decimal:
    try:
        value = as_price(price)
    except ValueError as e:
        raise ValidationError(str(e)) from None
    if value < 0:
        raise ValidationError("price must be non-negative")
    return value


def _check_stock(stock) -> int:
    if isinstance(stock, bool) or not isinstance(stock, int):
        raise ValidationError("stock must be an integer")
    if stock < 0:
        raise ValidationError("stock must be non-negative")
    return stock


def _check_expiration(expiration) -> date:
    try:
        return as_date(expiration)
    except ValueError:
        raise ValidationError(f"invalid expiration date: {expiration!r}") from None


def _check_text(field, value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text")
    return value


class MedicationLedger:
    """Stock and identity store. ``adjust_stock`` is the only stock decrement path."""

    def __init__(self, engine):
        self.engine = engine

    def register(
        self,
        identity: MedicationIdentity,
        initial_stock: int,
        price,
        expiration: date,
        description: Optional[str] = None,
        conn=None,
    ) -> int:
        din = (_check_text("DIN", identity.din) or "").strip()
        name = (_check_text("name", identity.name) or "").strip()
        if not din:
            raise ValidationError("identifier code (DIN) is required")
        if not name:
            raise ValidationError("medication name is required")
        stock = _check_stock(initial_stock)
        unit_price = _check_price(price)
        expires = _check_expiration(expiration)
        description = _check_text("description", description)

        with transaction(self.engine, conn) as c:
            exists = c.execute(
                text("SELECT 1 FROM medications WHERE din = :din"), {"din": din}
            ).first()
            if exists:
                raise DuplicateIdentifier(f"Medication with DIN {din} already exists.")
            try:
                result = c.execute(insert(medications).values(
                    name=name,
                    din=din,
                    ndc=(identity.ndc or None),
                    description=description,
                    stock=stock,
                    price=str(unit_price),
                    expiration=expires,
                ))
            except IntegrityError as e:
                raise DuplicateIdentifier(f"Medication with DIN {din} already exists.") from e
            return int(result.inserted_primary_key[0])

    def get(self, medication_id: int, conn=None) -> Medication:
        sql = text(_SELECT_MEDICATION + " WHERE id = :id")
        if conn is not None:
            row = conn.execute(sql, {"id": medication_id}).mappings().first()
        else:
            with storage_errors("medication lookup"):
                with self.engine.connect() as c:
                    row = c.execute(sql, {"id": medication_id}).mappings().first()
        if not row:
            raise NotFound(f"Medication {medication_id} not found.")
        return medication_from_row(row)

    def adjust_stock(self, medication_id: int, delta: int, conn=None) -> int:
        """Apply ``delta`` to stock in a single conditional update.

        Fails with InsufficientStock, leaving stock untouched, if the result
        would be negative.
        """
        with transaction(self.engine, conn) as c:
            result = c.execute(
                text("""
                    UPDATE medications
                    SET stock = stock + :delta
                    WHERE id = :id AND stock + :delta >= 0
                """),
                {"id": medication_id, "delta": delta},
            )
            row = c.execute(
                text("SELECT stock FROM medications WHERE id = :id"), {"id": medication_id}
            ).first()
            if row is None:
                raise NotFound(f"Medication {medication_id} not found.")
            if result.rowcount == 0:
                raise InsufficientStock(
                    f"Insufficient stock: {row[0]} on hand, {-delta} requested.",
                    available=int(row[0]),
                    requested=-delta,
                )
            return int(row[0])

    def update_mutable_fields(self, medication_id: int, changes: Dict[str, Any], conn=None) -> Dict[str, Any]:
        """Partial update of stock/price/description/expiration.

        Returns the applied changes. Identity fields are rejected outright.
        """
        if not changes:
            raise ValidationError("no fields to update")
        identity = sorted(IDENTITY_FIELDS & set(changes))
        if identity:
            raise ValidationError(f"identity fields cannot be changed: {', '.join(identity)}")
        unknown = sorted(set(changes) - MUTABLE_FIELDS)
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        if "stock" in changes:
            values["stock"] = _check_stock(changes["stock"])
        if "price" in changes:
            values["price"] = str(_check_price(changes["price"]))
        if "description" in changes:
            values["description"] = _check_text("description", changes["description"])
        if "expiration" in changes:
            values["expiration"] = _check_expiration(changes["expiration"]).isoformat()

        assignments = ", ".join(f"{col} = :{col}" for col in sorted(values))
        with transaction(self.engine, conn) as c:
            result = c.execute(
                text(f"UPDATE medications SET {assignments} WHERE id = :id"),
                {**values, "id": medication_id},
            )
            if result.rowcount == 0:
                raise NotFound(f"Medication {medication_id} not found.")
        return values

    def list(self, filter: Optional[str] = None) -> List[Medication]:
        with storage_errors("medication list"):
            with self.engine.connect() as conn:
                rows = conn.execute(text(_SELECT_MEDICATION + " ORDER BY id")).mappings().all()
        meds = [medication_from_row(r) for r in rows]
        needle = (filter or "").strip().lower()
        if needle:
            meds = [m for m in meds if needle in m.name.lower() or needle in m.din.lower()]
        return meds

    def count_below(self, threshold: int) -> int:
        with storage_errors("low stock count"):
            with self.engine.connect() as conn:
                return int(conn.execute(
                    text("SELECT COUNT(*) FROM medications WHERE stock < :t"), {"t": threshold}
                ).scalar_one())
