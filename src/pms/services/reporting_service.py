from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from pms.domain.models import BillListRow, Medicine, OrderStatus, PurchaseOrder
from pms.domain.money import Paisa, average
from pms.domain.validation import date_range, iso_date


@dataclass(frozen=True)
class SalesSummary:
    total_bills: int
    total_revenue: Paisa
    average_bill: Paisa
    top_medicine: Optional[str]
    top_medicine_quantity: int = 0


@dataclass(frozen=True)
class SalesReport:
    start_date: str
    end_date: str
    bills: list[BillListRow]
    summary: SalesSummary


@dataclass(frozen=True)
class StockBalanceRow:
    medicine: Medicine
    opening: int
    received: int
    issued: int
    closing: int
    value: Paisa


@dataclass(frozen=True)
class PurchasesReport:
    orders: list[PurchaseOrder]
    total_ordered: Paisa
    total_paid: Paisa
    total_outstanding: Paisa


@dataclass(frozen=True)
class MedicineIssueRow:
    created_at: str
    medicine_id: int
    medicine_name: Optional[str]
    quantity: int
    kind: str
    reason: Optional[str]
    reference_id: Optional[int]


OPEN_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.PARTIAL)


class ReportingService:
    """Read-only aggregations over bills, the stock ledger and purchase orders."""

    def __init__(self, repo, clock: Callable[[], datetime] | None = None):
        self.repo = repo
        self.clock = clock or datetime.now

    def sales_report(self, start: object, end: object) -> SalesReport:
        start_iso, end_iso = date_range(start, end)
        bills, _ = self.repo.list_bills(
            start_date=start_iso,
            end_date=end_iso,
            include_voided=False,
            limit=None,
        )
        revenue = Paisa(sum(int(b.total_amount) for b in bills))
        top = self.repo.top_selling_medicine(start_iso, end_iso)
        summary = SalesSummary(
            total_bills=len(bills),
            total_revenue=revenue,
            average_bill=average(revenue, len(bills)),
            top_medicine=top[0] if top else None,
            top_medicine_quantity=top[1] if top else 0,
        )
        return SalesReport(start_date=start_iso, end_date=end_iso, bills=bills, summary=summary)

    def stock_balance(self, as_of: object = None, category_id: Optional[int] = None) -> list[StockBalanceRow]:
        day = iso_date(as_of if as_of is not None else self.clock().date(), "Report date")
        rows = []
        for medicine, opening, received, issued in self.repo.stock_movements_for_day(day, category_id):
            closing = opening + received - issued
            rows.append(
                StockBalanceRow(
                    medicine=medicine,
                    opening=opening,
                    received=received,
                    issued=issued,
                    closing=closing,
                    value=medicine.unit_price_sell * closing,
                )
            )
        return rows

    def purchases_report(self, start: object, end: object, supplier_id: Optional[int] = None) -> PurchasesReport:
        start_iso, end_iso = date_range(start, end)
        rows, _ = self.repo.list_purchase_orders(
            supplier_id=supplier_id,
            start_date=start_iso,
            end_date=end_iso,
            limit=None,
        )
        orders = [order for order, _ in rows]
        outstanding = sum(int(o.balance) for o in orders if o.status in OPEN_ORDER_STATUSES)
        return PurchasesReport(
            orders=orders,
            total_ordered=Paisa(sum(int(o.total_amount) for o in orders)),
            total_paid=Paisa(sum(int(o.paid_amount) for o in orders)),
            total_outstanding=Paisa(outstanding),
        )

    def medicine_issues(self, start: object, end: object, medicine_id: Optional[int] = None) -> list[MedicineIssueRow]:
        start_iso, end_iso = date_range(start, end)
        txns, _ = self.repo.list_transactions(
            medicine_id=medicine_id,
            start_date=start_iso,
            end_date=end_iso,
            txn_type="out",
            limit=None,
        )
        return [
            MedicineIssueRow(
                created_at=t.created_at,
                medicine_id=t.medicine_id,
                medicine_name=t.medicine_name,
                quantity=t.quantity,
                kind="Sale" if t.reference_type == "bill" else "Manual",
                reason=t.reason,
                reference_id=t.reference_id,
            )
            for t in txns
        ]
