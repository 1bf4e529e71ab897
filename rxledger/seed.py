"""
Demo data: portal users, a starter formulary, Faker patients and a few
historical fills. Each table is seeded only when it is empty.
"""

import random
import secrets
import string
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Optional

from faker import Faker
from sqlalchemy import insert, text

from rxledger.database import portal_users, storage_errors
from rxledger.models import FillRequest, MedicationIdentity, Role, Session
from rxledger.service import PharmacyService

# (name, DIN, NDC, description, stock, price, expiration)
FORMULARY = [
    ("Amoxicillin 500mg", "02238888", "00000-111-22", "Shelf A1", 500, "12.99", "2027-12-31"),
    ("Atorvastatin 20mg", "02245555", "55555-333-44", "Shelf B3", 200, "45.50", "2027-06-15"),
    ("Metformin 500mg", "02111222", "12345-678-90", "Shelf A2", 1000, "8.25", "2027-11-30"),
    ("Lisinopril 10mg", "02333444", "98765-432-10", "Shelf C1", 30, "15.00", "2026-10-01"),
    ("Escitalopram 10mg", "02444555", "11223-344-55", "Shelf B2", 150, "22.75", "2027-05-20"),
]

SIGS = [
    "Take 1 tablet by mouth daily",
    "Take 1 tablet by mouth twice daily with food",
    "Take 1 capsule by mouth three times daily until finished",
    "Take 1 tablet by mouth at bedtime",
]

SYSTEM_SESSION = Session(username="system", role=Role.ADMIN)


def generate_api_key(prefix: str = "rx", length: int = 32) -> str:
    """Generate a secure random API key."""
    chars = string.ascii_letters + string.digits
    return f"{prefix}_" + "".join(secrets.choice(chars) for _ in range(length))


def create_portal_user(engine, username: str, role: Role, api_key: Optional[str] = None) -> str:
    """Insert a portal user and return their API key."""
    api_key = api_key or generate_api_key()
    with storage_errors("create portal user"):
        with engine.begin() as conn:
            conn.execute(insert(portal_users).values(
                username=username, role=role.value, api_key=api_key, is_active=1,
            ))
    return api_key


def _count(engine, table: str) -> int:
    with engine.connect() as conn:
        return int(conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one())


def seed_demo_data(engine, num_patients: int = 5, num_fills: int = 8, seed: int = 42) -> Dict[str, str]:
    """Populate empty tables. Returns API keys of any users created."""
    fake = Faker()
    Faker.seed(seed)
    rng = random.Random(seed)
    service = PharmacyService(engine)
    keys: Dict[str, str] = {}

    if _count(engine, "portal_users") == 0:
        print("[seed] Creating portal users...")
        keys["pharmacist"] = create_portal_user(engine, "pharmacist", Role.PHARMACIST)
        keys["admin"] = create_portal_user(engine, "admin", Role.ADMIN)

    if _count(engine, "medications") == 0:
        print("[seed] Seeding formulary...")
        for name, din, ndc, desc, stock, price, expiration in FORMULARY:
            service.register_medication(
                SYSTEM_SESSION,
                MedicationIdentity(din=din, name=name, ndc=ndc),
                stock,
                Decimal(price),
                date.fromisoformat(expiration),
                description=desc,
            )

    if _count(engine, "patients") == 0:
        print(f"[seed] Seeding {num_patients} patients...")
        for _ in range(num_patients):
            service.add_patient(SYSTEM_SESSION, {
                "name": fake.name(),
                "birth_date": fake.date_of_birth(minimum_age=18, maximum_age=90),
                "phone": fake.numerify("###-555-####"),
                "email": fake.email(),
                "address": fake.street_address(),
                "city": fake.city(),
                "state": fake.state_abbr(),
                "postal_code": fake.postcode(),
                "health_card_num": fake.unique.bothify("###-###-###-??").upper(),
                "allergies": rng.choice([None, "Penicillin", "Sulfa Drugs", "Latex"]),
                "insurance_provider": rng.choice([None, "SunLife", "Manulife", "BlueCross"]),
                "insurance_id": fake.bothify("??-######").upper(),
            })

    if _count(engine, "prescriptions") == 0:
        patients = service.patients.list()
        meds = [m for m in service.ledger.list() if m.stock >= num_fills * 30]
        if patients and meds:
            print(f"[seed] Recording {num_fills} historical fills...")
            for _ in range(num_fills):
                med = rng.choice(meds)
                days_supply = rng.choice([7, 14, 30])
                service.fill_prescription(SYSTEM_SESSION, FillRequest(
                    patient_id=rng.choice(patients).id,
                    medication_id=med.id,
                    prescriber=f"Dr. {fake.last_name()}",
                    sig=rng.choice(SIGS),
                    quantity=rng.choice([10, 20, 30]),
                    days_supply=days_supply,
                    refills_remaining=rng.randint(0, 3),
                    date_filled=date.today() - timedelta(days=rng.randint(0, days_supply + 3)),
                ))

    return keys
