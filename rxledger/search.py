"""
SearchIndex – case-insensitive substring lookup over the patient directory.
"""

from collections import defaultdict
from typing import Dict, List, Set

from sqlalchemy import text

from rxledger.database import storage_errors
from rxledger.models import Patient


class SearchIndex:
    """Matches patient names, or names of drugs dispensed to the patient."""

    def __init__(self, engine, patients):
        self.engine = engine
        self.patients = patients

    def search(self, query: str = "") -> List[Patient]:
        everyone = self.patients.list()
        needle = (query or "").strip().lower()
        if not needle:
            return everyone
        drugs = self._drugs_by_patient()
        return [
            p for p in everyone
            if needle in p.name.lower()
            or any(needle in d for d in drugs.get(p.id, ()))
        ]

    def _drugs_by_patient(self) -> Dict[int, Set[str]]:
        with storage_errors("patient search"):
            with self.engine.connect() as conn:
                rows = conn.execute(text("""
                    SELECT DISTINCT rx.patient_id, m.name
                    FROM prescriptions rx
                    JOIN medications m ON m.id = rx.medication_id
                """)).all()
        drugs: Dict[int, Set[str]] = defaultdict(set)
        for patient_id, drug_name in rows:
            drugs[int(patient_id)].add(drug_name.lower())
        return drugs
