"""
Tests for demo data seeding.
"""

from rxledger.rbac import load_session
from rxledger.seed import FORMULARY, generate_api_key, seed_demo_data
from rxledger.service import PharmacyService


def test_generate_api_key_format():
    key = generate_api_key(prefix="rx", length=16)
    assert key.startswith("rx_")
    assert len(key) == 19


def test_seed_populates_consistent_data_once(engine):
    keys = seed_demo_data(engine, num_patients=4, num_fills=6)
    service = PharmacyService(engine)

    assert load_session(engine, keys["pharmacist"]).role.value == "pharmacist"
    assert load_session(engine, keys["admin"]).role.value == "admin"
    assert len(service.search_patients("")) == 4

    initial = {din: stock for _, din, _, _, stock, _, _ in FORMULARY}
    dispensed = {}
    for record in service.records.query_all():
        dispensed[record.medication_id] = dispensed.get(record.medication_id, 0) + record.quantity
    for med in service.list_medications():
        assert med.stock == initial[med.din] - dispensed.get(med.id, 0)
    assert len(service.records.query_all()) == 6

    assert seed_demo_data(engine) == {}
    assert len(service.records.query_all()) == 6
