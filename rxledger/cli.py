"""
Interactive terminal client for the pharmacy fulfillment engine.
Log in with a portal API key, then run dashboard, fill and lookup commands.
"""

import argparse
from datetime import date

import pandas as pd

from rxledger.config import MAX_PREVIEW_ROWS
from rxledger.database import init_engine
from rxledger.errors import PharmacyError
from rxledger.models import FillRequest
from rxledger.rbac import load_session
from rxledger.reports import format_report
from rxledger.seed import seed_demo_data
from rxledger.service import PharmacyService

HELP = """Commands:
  dashboard              counts + upcoming refills
  due today|soon         prescriptions due for refill
  meds [text]            list medications (optional name/DIN filter)
  find [text]            search patients by name or dispensed drug
  history <patient_id>   dispensing history, newest first
  refill <record_id>     stage a refill for the next 'fill'
  fill                   dispense a prescription
  logs                   audit trail (admin only)
  report                 inventory + dispensing report
  quit"""


def _table(rows) -> str:
    if not rows:
        return "(no rows)"
    return pd.DataFrame(rows).head(MAX_PREVIEW_ROWS).to_string(index=False)


def _record_rows(records):
    return [{
        "id": r.id,
        "patient": r.patient_name,
        "drug": r.drug_name,
        "qty": r.quantity,
        "filled": r.date_filled.isoformat(),
        "next_refill": r.next_refill_date.isoformat(),
        "refills": r.refills_remaining,
    } for r in records]


def _ask(prompt: str, default=None) -> str:
    suffix = f" [{default}]" if default not in (None, "") else ""
    value = input(f"  {prompt}{suffix}: ").strip()
    return value if value else ("" if default is None else str(default))


def _prompt_fill(service, session) -> FillRequest:
    staged = service.take_refill(session)
    if staged:
        print(f"[fill] Loaded refill data for {staged.patient_name}")
    return FillRequest(
        patient_id=int(_ask("Patient id", staged and staged.patient_id)),
        medication_id=int(_ask("Medication id", staged and staged.medication_id)),
        prescriber=_ask("Prescriber", staged and staged.prescriber),
        sig=_ask("Sig", staged and staged.sig),
        quantity=int(_ask("Quantity", staged and staged.quantity)),
        days_supply=int(_ask("Days supply", staged and staged.days_supply)),
        refills_remaining=int(_ask("Refills remaining", staged.refills_remaining if staged else 0)),
        date_filled=date.today(),
    )


def run_command(service, session, line: str) -> None:
    cmd, _, arg = line.partition(" ")
    cmd, arg = cmd.lower(), arg.strip()

    if cmd == "dashboard":
        stats = service.dashboard_stats()
        print(f"\nDue today: {stats['dueToday']}   Due soon: {stats['dueSoon']}   "
              f"Stock warnings: {stats['lowStock']}")
        print("\n[Upcoming refills]")
        print(_table(_record_rows(service.upcoming_refills())))
    elif cmd == "due":
        print(_table(_record_rows(service.due_prescriptions(arg or "today"))))
    elif cmd == "meds":
        print(_table([{
            "id": m.id, "din": m.din, "name": m.name, "stock": m.stock,
            "price": f"{m.price:.2f}", "expires": m.expiration.isoformat(),
        } for m in service.list_medications(arg)]))
    elif cmd == "find":
        print(_table([{"id": p.id, "name": p.name, "birth_date": p.birth_date.isoformat(), "phone": p.phone}
                      for p in service.search_patients(arg)]))
    elif cmd == "history":
        print(_table(_record_rows(service.patient_history(int(arg)))))
    elif cmd == "refill":
        staged = service.queue_refill(session, int(arg))
        print(f"[refill] Staged refill for {staged.patient_name}; run 'fill' to dispense.")
    elif cmd == "fill":
        record_id = service.fill_prescription(session, _prompt_fill(service, session))
        print(f"✓ Prescription #{record_id} filled & inventory updated")
    elif cmd == "logs":
        print(_table([{"#": e.id, "time": e.timestamp, "user": e.username, "action": e.action,
                       "details": e.details} for e in service.audit_logs(session)]))
    elif cmd == "report":
        print(format_report(service.inventory_report(), service.dispensing_summary()))
    else:
        print(HELP)


def main():
    parser = argparse.ArgumentParser(description="Pharmacy fulfillment terminal")
    parser.add_argument("--db", help="database URI (defaults to DB_URI or sqlite:///pharmacy.db)")
    parser.add_argument("--seed", action="store_true", help="seed demo data into empty tables")
    args = parser.parse_args()

    print("=== rxledger: Prescription Fulfillment & Inventory ===\n")

    engine = init_engine(args.db)
    if args.seed:
        for role, key in seed_demo_data(engine).items():
            print(f"[seed] {role} API key: {key}")
    service = PharmacyService(engine)

    # ── Login ────────────────────────────────────────────────────────
    try:
        api_key = input("Enter access key (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not api_key or api_key.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        session = load_session(engine, api_key)
    except Exception as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return

    print(f"\n[auth] Logged in as: {session.username} (role={session.role.value})")
    print(HELP)

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\nrx> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        if line.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break

        try:
            run_command(service, session, line)
        except PharmacyError as e:
            print(f"\n[{e.kind}] {e}")
        except ValueError as e:
            print("\n[ERROR] Invalid input.")
            print("Details:", e)


if __name__ == "__main__":
    main()
