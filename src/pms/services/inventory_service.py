from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from pms.domain.errors import MedicineNotFoundError, ValidationError
from pms.domain.models import Medicine, StockTransaction, TransactionType
from pms.domain.validation import (
    clean_text,
    optional_iso_date,
    page_window,
    require_positive_int,
)
from pms.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from pms.services.stock_mutator import StockMutator

log = logging.getLogger("pms.inventory")

MANUAL_TYPES = (TransactionType.IN, TransactionType.OUT, TransactionType.ADJUST)
DEFAULT_REASONS = {
    TransactionType.IN: "Manual stock in",
    TransactionType.OUT: "Manual stock out",
    TransactionType.ADJUST: "Stock adjustment",
}


@dataclass(frozen=True)
class InventorySummary:
    total_medicines: int
    total_stock_units: int
    low_stock: int
    expiring_within_30_days: int
    expired: int


@dataclass(frozen=True)
class ExpiryRow:
    medicine: Medicine
    days_left: Optional[int]
    status: str


@dataclass(frozen=True)
class ExpiryReport:
    expired: list[ExpiryRow] = field(default_factory=list)
    warning30: list[ExpiryRow] = field(default_factory=list)
    warning90: list[ExpiryRow] = field(default_factory=list)
    ok: list[ExpiryRow] = field(default_factory=list)


def _expiry_key(m: Medicine) -> str:
    return m.expiry_date or "9999-12-31"


class InventoryService:
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

    def _today(self) -> date:
        return self.clock().date()

    def record_transaction(
        self,
        medicine_id: int,
        txn_type: str,
        quantity: int,
        reason: Optional[str] = None,
        txn_date: object = None,
        performed_by: Optional[int] = None,
    ) -> int:
        """Manual stock movement. ``in`` adds; ``out`` and ``adjust`` subtract."""
        if isinstance(txn_type, TransactionType):
            kind = txn_type
        else:
            try:
                kind = TransactionType(str(txn_type).strip().lower())
            except ValueError:
                kind = None
        if kind not in MANUAL_TYPES:
            raise ValidationError("Transaction type must be one of in, out, adjust.")
        medicine_id = require_positive_int(medicine_id, "Medicine id")
        quantity = require_positive_int(quantity, "Quantity")
        if performed_by is not None:
            performed_by = require_positive_int(performed_by, "Performed by")

        now = self.clock().replace(microsecond=0)
        day = optional_iso_date(txn_date, "Transaction date")
        ts = f"{day} {now.time().isoformat()}" if day else now.isoformat(sep=" ")

        with self.uow_factory() as uow:
            if performed_by is not None:
                user = uow.get_user(performed_by)
                if user is None or not user.is_active:
                    raise ValidationError(f"User #{performed_by} is not an active user.")
            med = uow.get_medicine(medicine_id, include_deleted=True)
            if med is None:
                raise MedicineNotFoundError(f"Medicine #{medicine_id} not found.")
            if med.is_deleted:
                raise MedicineNotFoundError(f"Cannot move stock of a deleted medicine: {med.label}.")
            txn_id = self.stock.apply_delta(
                uow,
                medicine_id,
                kind.sign * quantity,
                kind,
                reason=clean_text(reason) or DEFAULT_REASONS[kind],
                performed_by=performed_by,
                timestamp=ts,
            )
        log.info("manual_transaction txn_id=%s medicine_id=%s type=%s qty=%s", txn_id, medicine_id, kind.value, quantity)
        return txn_id

    def list_transactions(
        self,
        medicine_id: Optional[int] = None,
        start_date: object = None,
        end_date: object = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[StockTransaction], int]:
        limit, offset = page_window(page, page_size)
        return self.repo.list_transactions(
            medicine_id=medicine_id,
            start_date=optional_iso_date(start_date, "Start date"),
            end_date=optional_iso_date(end_date, "End date"),
            limit=limit,
            offset=offset,
        )

    def summary(self) -> InventorySummary:
        today = self._today().isoformat()
        cutoff = (self._today() + timedelta(days=30)).isoformat()
        meds = self.repo.list_active_medicines()
        return InventorySummary(
            total_medicines=len(meds),
            total_stock_units=sum(m.current_quantity for m in meds),
            low_stock=sum(1 for m in meds if m.current_quantity < m.min_stock_level),
            expiring_within_30_days=sum(1 for m in meds if m.expiry_date and today <= m.expiry_date <= cutoff),
            expired=sum(1 for m in meds if m.expiry_date and m.expiry_date < today),
        )

    def low_stock(self, limit: int = 10) -> list[Medicine]:
        low = [m for m in self.repo.list_active_medicines() if m.current_quantity < m.min_stock_level]
        low.sort(key=lambda m: (m.current_quantity - m.min_stock_level, m.name))
        return low[:limit]

    def expiring_soon(self, days: int = 90, limit: int = 10, include_expired: bool = True) -> list[Medicine]:
        today = self._today().isoformat()
        end = (self._today() + timedelta(days=max(int(days), 0))).isoformat()
        rows = []
        for m in self.repo.list_active_medicines():
            if not m.expiry_date:
                continue
            if m.expiry_date < today:
                if include_expired:
                    rows.append(m)
            elif m.expiry_date <= end:
                rows.append(m)
        rows.sort(key=_expiry_key)
        return rows[:limit]

    def expiry_report(self) -> ExpiryReport:
        today = self._today()
        report = ExpiryReport()
        for m in sorted(self.repo.list_active_medicines(), key=_expiry_key):
            if not m.expiry_date:
                report.ok.append(ExpiryRow(m, None, "ok"))
                continue
            days_left = (date.fromisoformat(m.expiry_date) - today).days
            if days_left < 0:
                report.expired.append(ExpiryRow(m, days_left, "expired"))
            elif days_left <= 30:
                report.warning30.append(ExpiryRow(m, days_left, "warning30"))
            elif days_left <= 90:
                report.warning90.append(ExpiryRow(m, days_left, "warning90"))
            else:
                report.ok.append(ExpiryRow(m, days_left, "ok"))
        return report

    def ledger_balance(self, medicine_id: int) -> int:
        return self.repo.ledger_balance(int(medicine_id))
