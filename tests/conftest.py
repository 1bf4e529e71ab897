"""
Shared fixtures: a file-backed SQLite database per test plus a wired service.
"""

from datetime import date
from decimal import Decimal

import pytest

from rxledger.database import init_engine
from rxledger.models import MedicationIdentity, Role, Session
from rxledger.service import PharmacyService

ADMIN = Session(username="ada.admin", role=Role.ADMIN)


@pytest.fixture
def engine(tmp_path):
    eng = init_engine(f"sqlite:///{tmp_path / 'pharmacy.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def service(engine):
    return PharmacyService(engine)


@pytest.fixture
def patient_id(service):
    return service.add_patient(ADMIN, {
        "name": "John Smith",
        "birth_date": "1985-04-12",
        "phone": "416-555-0199",
        "health_card_num": "123-456-789-AB",
    })


@pytest.fixture
def medication_id(service):
    return service.register_medication(
        ADMIN,
        MedicationIdentity(din="02238888", name="Amoxicillin 500mg", ndc="00000-111-22"),
        500,
        Decimal("12.99"),
        date(2027, 12, 31),
        description="Shelf A1",
    )
