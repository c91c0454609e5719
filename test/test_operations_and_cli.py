import json
import logging
from datetime import datetime
from pathlib import Path

from conftest import FixedClock, add_stocked_medicine, new_repo
from openpyxl import Workbook

from pms.application.container import build_container
from pms.config import get_app_paths, get_log_level
from pms.logging_config import AREA_LOGS, setup_logging
from pms.main import main
from pms.services.operations_service import OperationsService


def test_health_check_reports_clean_ledger(tmp_path: Path):
    repo = new_repo(tmp_path, "ops.db")
    add_stocked_medicine(repo, "Paracetamol", 12)

    ops = OperationsService(repo, db_path=tmp_path / "ops.db", clock=FixedClock(datetime(2026, 1, 1, 12, 0, 0)))
    report = ops.run_health_check()

    assert report.sqlite_integrity == "ok"
    assert report.db_size_bytes > 0
    assert report.ledger_mismatches == []
    assert report.generated_at == "2026-01-01T12:00:00"
    assert report.ok


def test_health_check_flags_balance_that_bypassed_the_ledger(tmp_path: Path):
    repo = new_repo(tmp_path, "drift.db")
    mid = add_stocked_medicine(repo, "Tampered", 5)
    conn = repo._conn()
    conn.execute("UPDATE stock SET current_quantity = 9 WHERE medicine_id = ?", (mid,))
    conn.commit()
    conn.close()

    report = OperationsService(repo, db_path=tmp_path / "drift.db").run_health_check()

    assert not report.ok
    assert len(report.ledger_mismatches) == 1
    mismatch = report.ledger_mismatches[0]
    assert (mismatch.medicine_id, mismatch.stock_quantity, mismatch.ledger_quantity) == (mid, 9, 5)


def test_container_wires_shared_services(tmp_path: Path):
    container = build_container(tmp_path / "container.db", clock=FixedClock(datetime(2026, 9, 9, 9, 9, 9)))

    med = container.medicines.add_medicine("Wired", unit_price_sell=100, opening_stock=3)
    bill = container.billing.create_bill([{"medicine_id": med.id, "quantity": 1, "unit_price": 100}], payment_mode="card")

    assert bill.bill.bill_number == "BILL-20260909-0001"
    assert container.inventory.ledger_balance(med.id) == 2
    assert container.billing.stock is container.voids.stock


def test_cli_commands(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setenv("PMS_HOME", str(tmp_path / "home"))
    db = tmp_path / "cli.db"

    assert main(["--db", str(db), "init"]) == 0
    assert db.exists()

    assert main(["--db", str(db), "health"]) == 0
    assert "integrity: ok" in capsys.readouterr().out

    wb = Workbook()
    ws = wb.active
    ws.append(["name", "batch_no", "expiry_date", "unit_price_buy", "unit_price_sell", "opening_stock", "min_stock_level"])
    ws.append(["Cli Med", "B1", None, "1", "2", 4, 0])
    xlsx = tmp_path / "cli.xlsx"
    wb.save(xlsx)
    assert main(["--db", str(db), "import-medicines", str(xlsx)]) == 0
    assert "imported: 1, skipped: 0" in capsys.readouterr().out

    assert main(["--db", str(db), "daily-summary", "--date", "2026-01-01"]) == 0
    assert "2026-01-01: 0 bills, Rs. 0.00" in capsys.readouterr().out

    assert main(["--db", str(db), "daily-summary", "--date", "not-a-date"]) == 1
    assert "error:" in capsys.readouterr().err


def test_app_paths_and_log_level_from_environment(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("PMS_HOME", str(tmp_path / "pharmacy-home"))
    monkeypatch.setenv("PMS_LOG_LEVEL", "debug")

    paths = get_app_paths()
    assert paths.base_dir == tmp_path / "pharmacy-home"
    assert paths.db_path.name == "pharmacy.db"
    assert paths.logs_dir.is_dir()
    assert get_log_level() == logging.DEBUG

    monkeypatch.setenv("PMS_LOG_LEVEL", "chatty")
    assert get_log_level() == logging.INFO


def test_billing_events_go_to_their_own_json_log(tmp_path: Path):
    areas = [logging.getLogger(name) for name in AREA_LOGS]
    saved = [(a, a.handlers[:], a.level) for a in areas]
    for a in areas:
        a.handlers.clear()
    try:
        setup_logging(tmp_path / "logs")
        logging.getLogger("pms.billing").info("bill_created bill_id=%s", 7)
        for a in areas:
            for h in a.handlers:
                h.flush()

        lines = (tmp_path / "logs" / "billing.log").read_text(encoding="utf-8").splitlines()
        payload = json.loads(lines[-1])
        assert payload["logger"] == "pms.billing"
        assert payload["message"] == "bill_created bill_id=7"
    finally:
        for a, handlers, level in saved:
            for h in a.handlers:
                h.close()
            a.handlers[:] = handlers
            a.setLevel(level)
