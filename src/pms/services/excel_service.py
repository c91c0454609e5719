from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from openpyxl import load_workbook

from pms.domain.errors import ValidationError
from pms.domain.money import Paisa

log = logging.getLogger(__name__)

REQUIRED_HEADERS = (
    "name",
    "batch_no",
    "expiry_date",
    "unit_price_buy",
    "unit_price_sell",
    "opening_stock",
    "min_stock_level",
)


def _rupees(value: object) -> Paisa:
    if value is None or str(value).strip() == "":
        return Paisa(0)
    return Paisa.from_rupees(str(value))


def _count(value: object) -> int:
    if value is None or str(value).strip() == "":
        return 0
    number = float(value) if isinstance(value, (int, float)) else float(str(value).strip())
    if number != int(number):
        raise ValueError(f"Expected a whole number, got {value!r}")
    return int(number)


def _cell_date(value: object) -> Optional[str]:
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    text = str(value).strip() if value is not None else ""
    return text or None


class ExcelService:
    def __init__(self, repo, medicine_service, inventory_service):
        self.repo = repo
        self.medicines = medicine_service
        self.inventory = inventory_service

    def import_medicines_excel(self, path: str, performed_by: Optional[int] = None) -> tuple[int, int]:
        """
        Rows are catalog entries; prices are in rupees.
        Headers:
          name | batch_no | expiry_date | unit_price_buy | unit_price_sell | opening_stock | min_stock_level

        A row matching an existing medicine (same name and batch) updates its
        catalog fields and books opening_stock as a stock-in.
        """
        wb = load_workbook(path, data_only=True)
        ws = wb.active

        headers = {}
        for col in range(1, ws.max_column + 1):
            v = ws.cell(row=1, column=col).value
            if isinstance(v, str):
                headers[v.strip().lower()] = col

        for r in REQUIRED_HEADERS:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        ok = 0
        skipped = 0

        for row in range(2, ws.max_row + 1):
            values = {h: ws.cell(row=row, column=headers[h]).value for h in REQUIRED_HEADERS}
            if all(v is None or str(v).strip() == "" for v in values.values()):
                continue
            try:
                name = str(values["name"] or "").strip()
                if not name:
                    skipped += 1
                    continue
                batch_no = str(values["batch_no"]).strip() if values["batch_no"] is not None else None
                quantity = _count(values["opening_stock"])
                if quantity < 0:
                    skipped += 1
                    continue
                fields = {
                    "expiry_date": _cell_date(values["expiry_date"]),
                    "unit_price_buy": _rupees(values["unit_price_buy"]),
                    "min_stock_level": _count(values["min_stock_level"]),
                }
                price_sell = _rupees(values["unit_price_sell"])

                existing = self.repo.find_medicine(name, batch_no)
                if existing:
                    self.medicines.update_medicine(existing.id, unit_price_sell=price_sell, **fields)
                    if quantity > 0:
                        self.inventory.record_transaction(
                            existing.id,
                            "in",
                            quantity,
                            reason="Excel import",
                            performed_by=performed_by,
                        )
                else:
                    self.medicines.add_medicine(
                        name,
                        unit_price_sell=price_sell,
                        opening_stock=quantity,
                        performed_by=performed_by,
                        batch_no=batch_no,
                        **fields,
                    )
                ok += 1
            except Exception as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        log.info("medicines_imported path=%s ok=%s skipped=%s", path, ok, skipped)
        return ok, skipped
