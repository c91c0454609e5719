from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from pms.domain.errors import MedicineNotFoundError, ValidationError
from pms.domain.models import Category, Medicine, TransactionType
from pms.domain.validation import (
    clean_text,
    optional_iso_date,
    page_window,
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from pms.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from pms.services.stock_mutator import StockMutator

log = logging.getLogger("pms.inventory")

TEXT_FIELDS = ("batch_no", "barcode", "firm_name", "shelf_location", "notes")
DATE_FIELDS = {"mfg_date": "Manufacturing date", "expiry_date": "Expiry date", "received_date": "Received date"}
AMOUNT_FIELDS = {"unit_price_buy": "Buy price", "unit_price_sell": "Sell price", "min_stock_level": "Minimum stock level"}
STOCK_FIELDS = {"current_quantity", "opening_stock", "quantity", "stock"}
STOCK_STATUSES = {"low", "out"}


class MedicineService:
    def __init__(
        self,
        repo,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        stock: StockMutator | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.stock = stock or StockMutator()
        self.clock = clock or datetime.now

    def _clean(self, fields: dict) -> dict:
        out: dict = {}
        for key, value in fields.items():
            if key == "name":
                out[key] = require_text(value, "Medicine name")
            elif key == "category_id":
                if value is None:
                    out[key] = None
                else:
                    category_id = require_positive_int(value, "Category")
                    if self.repo.get_category(category_id) is None:
                        raise ValidationError(f"Category #{category_id} does not exist.")
                    out[key] = category_id
            elif key in TEXT_FIELDS:
                out[key] = clean_text(value)
            elif key in DATE_FIELDS:
                out[key] = optional_iso_date(value, DATE_FIELDS[key])
            elif key in AMOUNT_FIELDS:
                out[key] = require_non_negative_int(value, AMOUNT_FIELDS[key])
            elif key in STOCK_FIELDS:
                raise ValidationError("Stock can only change through stock transactions.")
            else:
                raise ValidationError(f"Unknown medicine field: {key}.")
        return out

    @staticmethod
    def _check_dates(mfg_date: Optional[str], expiry_date: Optional[str]) -> None:
        if mfg_date and expiry_date and expiry_date < mfg_date:
            raise ValidationError("Expiry date cannot be before the manufacturing date.")

    def add_medicine(
        self,
        name: str,
        unit_price_sell: int,
        unit_price_buy: int = 0,
        opening_stock: int = 0,
        performed_by: Optional[int] = None,
        **fields,
    ) -> Medicine:
        data = self._clean({"name": name, "unit_price_sell": unit_price_sell, "unit_price_buy": unit_price_buy, **fields})
        self._check_dates(data.get("mfg_date"), data.get("expiry_date"))
        opening = require_non_negative_int(opening_stock, "Opening stock")
        ts = self.clock().replace(microsecond=0).isoformat(sep=" ")

        with self.uow_factory() as uow:
            medicine_id = uow.insert_medicine(data, ts)
            uow.set_stock_quantity(medicine_id, 0, ts)
            if opening > 0:
                self.stock.apply_delta(
                    uow,
                    medicine_id,
                    opening,
                    TransactionType.IN,
                    reason="Opening Stock",
                    performed_by=performed_by,
                    timestamp=ts,
                )
            medicine = uow.get_medicine(medicine_id)

        log.info("medicine_added medicine_id=%s name=%s opening=%s", medicine_id, data["name"], opening)
        return medicine

    def update_medicine(self, medicine_id: int, **fields) -> Medicine:
        current = self.get_medicine(medicine_id)
        data = self._clean(fields)
        self._check_dates(
            data.get("mfg_date", current.mfg_date),
            data.get("expiry_date", current.expiry_date),
        )
        if not self.repo.update_medicine(current.id, data):
            raise MedicineNotFoundError(f"Medicine #{medicine_id} not found.")
        return self.get_medicine(current.id)

    def delete_medicine(self, medicine_id: int) -> None:
        """Soft delete; bills and ledger rows keep referencing the medicine."""
        if not self.repo.soft_delete_medicine(int(medicine_id)):
            raise MedicineNotFoundError(f"Medicine #{medicine_id} not found.")
        log.info("medicine_deleted medicine_id=%s", medicine_id)

    def get_medicine(self, medicine_id: int) -> Medicine:
        medicine = self.repo.get_medicine(int(medicine_id))
        if not medicine:
            raise MedicineNotFoundError(f"Medicine #{medicine_id} not found.")
        return medicine

    def list_medicines(
        self,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        stock_status: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Medicine], int]:
        if stock_status and stock_status not in STOCK_STATUSES:
            raise ValidationError("Stock status filter must be 'low' or 'out'.")
        limit, offset = page_window(page, page_size)
        return self.repo.list_medicines(
            search=clean_text(search),
            category_id=category_id,
            stock_status=stock_status,
            limit=limit,
            offset=offset,
        )

    def search(self, term: str, limit: int = 10) -> list[Medicine]:
        term = (term or "").strip()
        if not term:
            return []
        return self.repo.search_medicines(term, limit=limit)

    def list_categories(self) -> list[Category]:
        return self.repo.list_categories()

    def create_category(self, name: str, description: Optional[str] = None) -> Category:
        name = require_text(name, "Category name")
        if self.repo.get_category_by_name(name):
            raise ValidationError(f"Category '{name}' already exists.")
        category_id = self.repo.create_category(name, clean_text(description))
        return self.repo.get_category(category_id)
