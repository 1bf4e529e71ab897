"""
Database engine initialisation, schema definition and row coercion helpers.
"""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import (
    CheckConstraint, Column, Date, ForeignKey, Integer, MetaData, String, Table, Text,
    create_engine, event, text,
)
from sqlalchemy.exc import SQLAlchemyError

from rxledger.config import SQLITE_BUSY_TIMEOUT, get_db_uri
from rxledger.errors import StorageError

metadata = MetaData()

portal_users = Table(
    "portal_users", metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String(80), nullable=False, unique=True),
    Column("role", String(20), nullable=False),
    Column("api_key", String(128), nullable=False, unique=True),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

patients = Table(
    "patients", metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False),
    Column("birth_date", Date, nullable=False),
    Column("phone", String(40), nullable=False),
    Column("email", String(200)),
    Column("address", String(200)),
    Column("city", String(100)),
    Column("state", String(50)),
    Column("postal_code", String(20)),
    Column("health_card_num", String(40), nullable=False, unique=True),
    Column("allergies", Text),
    Column("insurance_provider", String(100)),
    Column("insurance_id", String(100)),
    sqlite_autoincrement=True,
)

medications = Table(
    "medications", metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False),
    Column("din", String(40), nullable=False, unique=True),
    Column("ndc", String(40)),
    Column("description", Text),
    Column("stock", Integer, nullable=False),
    Column("price", String(20), nullable=False),  # decimal string, exact
    Column("expiration", Date, nullable=False),
    CheckConstraint("stock >= 0", name="ck_medications_stock_non_negative"),
    sqlite_autoincrement=True,
)

prescriptions = Table(
    "prescriptions", metadata,
    Column("id", Integer, primary_key=True),
    Column("patient_id", Integer, ForeignKey("patients.id"), nullable=False),
    Column("medication_id", Integer, ForeignKey("medications.id"), nullable=False),
    Column("prescriber", String(200), nullable=False),
    Column("sig", Text, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("days_supply", Integer, nullable=False),
    Column("refills_remaining", Integer, nullable=False),
    Column("date_filled", Date, nullable=False),
    Column("next_refill_date", Date, nullable=False),
    Column("filled_by", String(80), nullable=False),
    CheckConstraint("quantity > 0", name="ck_prescriptions_quantity_positive"),
    CheckConstraint("days_supply > 0", name="ck_prescriptions_days_supply_positive"),
    CheckConstraint("refills_remaining >= 0", name="ck_prescriptions_refills_non_negative"),
    sqlite_autoincrement=True,
)

audit_logs = Table(
    "audit_logs", metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String(80), nullable=False),
    Column("action", String(50), nullable=False),
    Column("subject", String(200), nullable=False),
    Column("details", Text, nullable=False),
    Column("timestamp", String(40), nullable=False),
    sqlite_autoincrement=True,
)


def init_engine(db_uri: Optional[str] = None):
    """Create a SQLAlchemy engine, create missing tables and verify the connection."""
    db_uri = db_uri or get_db_uri()
    connect_args = {}
    if db_uri.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}

    engine = create_engine(db_uri, echo=False, future=True, connect_args=connect_args)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        metadata.create_all(engine)
    except SQLAlchemyError as e:
        raise StorageError(f"could not connect to DB: {e}") from e
    print(f"[init] Connected to DB ({engine.dialect.name}).")
    return engine


@contextmanager
def storage_errors(action: str):
    """Translate driver failures into StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise StorageError(f"{action} failed: {e}") from e


# ── Row coercion ─────────────────────────────────────────────────────

def as_date(value) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def as_price(value) -> Decimal:
    try:
        price = Decimal(str(value))
        if not price.is_finite():
            raise InvalidOperation
        return price.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValueError(f"Invalid price: {value!r}") from None


@contextmanager
def transaction(engine, conn=None):
    """Join the caller's transaction if one is given, otherwise open a new one."""
    if conn is not None:
        yield conn
        return
    with storage_errors("transaction"):
        with engine.begin() as own:
            yield own
