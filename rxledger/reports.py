"""
Inventory and dispensing reports built on pandas.
"""

from datetime import date, timedelta
from typing import Any, Dict, List

import pandas as pd

from rxledger.config import EXPIRY_WARNING_DAYS, LOW_STOCK_THRESHOLD
from rxledger.models import Medication, PrescriptionRecord

MEDICATION_COLUMNS = ["id", "din", "name", "stock", "price", "expiration"]
DISPENSING_COLUMNS = ["drug_name", "fills", "units_dispensed", "patients", "last_filled"]


def medications_frame(meds: List[Medication]) -> pd.DataFrame:
    if not meds:
        return pd.DataFrame(columns=MEDICATION_COLUMNS)
    df = pd.DataFrame([{
        "id": m.id,
        "din": m.din,
        "name": m.name,
        "stock": m.stock,
        "price": float(m.price),
        "expiration": pd.Timestamp(m.expiration),
    } for m in meds])
    return df[MEDICATION_COLUMNS]


def inventory_report(meds: List[Medication], today: date) -> Dict[str, Any]:
    """Stock valuation plus low-stock, expiring and expired listings."""
    df = medications_frame(meds)
    if df.empty:
        return {
            "total_skus": 0, "total_units": 0, "inventory_value": 0.0,
            "low_stock": [], "expiring_soon": [], "expired": [],
        }

    df["value"] = df["stock"] * df["price"]
    now = pd.Timestamp(today)
    horizon = pd.Timestamp(today + timedelta(days=EXPIRY_WARNING_DAYS))

    low = df[df["stock"] < LOW_STOCK_THRESHOLD].sort_values(["stock", "id"])
    expired = df[df["expiration"] < now].sort_values(["expiration", "id"])
    expiring = df[(df["expiration"] >= now) & (df["expiration"] <= horizon)].sort_values(["expiration", "id"])

    def rows(frame: pd.DataFrame) -> List[Dict[str, Any]]:
        return [{
            "id": int(r.id),
            "din": r.din,
            "name": r.name,
            "stock": int(r.stock),
            "expiration": r.expiration.date().isoformat(),
        } for r in frame.itertuples(index=False)]

    return {
        "total_skus": int(len(df)),
        "total_units": int(df["stock"].sum()),
        "inventory_value": round(float(df["value"].sum()), 2),
        "low_stock": rows(low),
        "expiring_soon": rows(expiring),
        "expired": rows(expired),
    }


def dispensing_summary(records: List[PrescriptionRecord]) -> pd.DataFrame:
    """Fills, units and distinct patients per drug, busiest first."""
    if not records:
        return pd.DataFrame(columns=DISPENSING_COLUMNS)
    df = pd.DataFrame([{
        "drug_name": r.drug_name or f"medication {r.medication_id}",
        "patient_id": r.patient_id,
        "quantity": r.quantity,
        "date_filled": pd.Timestamp(r.date_filled),
    } for r in records])
    summary = df.groupby("drug_name").agg(
        fills=("quantity", "size"),
        units_dispensed=("quantity", "sum"),
        patients=("patient_id", "nunique"),
        last_filled=("date_filled", "max"),
    ).reset_index()
    summary = summary.sort_values(["units_dispensed", "drug_name"], ascending=[False, True])
    summary["last_filled"] = summary["last_filled"].dt.date.map(date.isoformat)
    return summary[DISPENSING_COLUMNS].reset_index(drop=True)


def format_report(report: Dict[str, Any], dispensing: pd.DataFrame) -> str:
    """Plain-text rendering for the terminal client."""
    lines = [
        f"SKUs: {report['total_skus']}  Units on hand: {report['total_units']}  "
        f"Value: ${report['inventory_value']:,.2f}",
    ]
    for title, key in (("Low stock", "low_stock"), ("Expiring soon", "expiring_soon"), ("Expired", "expired")):
        lines.append(f"\n{title}:")
        if report[key]:
            lines.append(pd.DataFrame(report[key]).to_markdown(index=False))
        else:
            lines.append("(none)")
    lines.append("\nDispensing by drug:")
    lines.append(dispensing.to_markdown(index=False) if not dispensing.empty else "(no fills yet)")
    return "\n".join(lines)


def dispensing_rows(summary: pd.DataFrame) -> List[Dict[str, Any]]:
    """JSON-safe records (plain ints) for the REST layer."""
    return [{
        "drug_name": r.drug_name,
        "fills": int(r.fills),
        "units_dispensed": int(r.units_dispensed),
        "patients": int(r.patients),
        "last_filled": r.last_filled,
    } for r in summary.itertuples(index=False)]
