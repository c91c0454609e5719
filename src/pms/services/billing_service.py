from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from pms.domain.errors import (
    InsufficientPaymentError,
    InsufficientStockError,
    MedicineNotFoundError,
    NotFoundError,
    ValidationError,
)
from pms.domain.models import (
    BillDetail,
    BillLine,
    BillListRow,
    DailySummary,
    PaymentMode,
    TransactionType,
)
from pms.domain.money import Paisa, clamp_percent, compute_bill_totals
from pms.domain.validation import (
    clean_text,
    iso_date,
    optional_iso_date,
    page_window,
    require_non_negative_int,
    require_positive_int,
)
from pms.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from pms.services.sequence_service import SequenceService
from pms.services.settings_service import SettingsService
from pms.services.stock_mutator import StockMutator

log = logging.getLogger("pms.billing")


def _coerce_line(item: BillLine | Mapping) -> BillLine:
    if isinstance(item, BillLine):
        medicine_id, quantity, unit_price = item.medicine_id, item.quantity, item.unit_price
    elif isinstance(item, Mapping):
        try:
            medicine_id, quantity, unit_price = item["medicine_id"], item["quantity"], item["unit_price"]
        except KeyError as exc:
            raise ValidationError(f"Bill line is missing '{exc.args[0]}'.") from exc
    else:
        raise ValidationError("Bill lines must be BillLine records or mappings.")
    return BillLine(
        medicine_id=require_positive_int(medicine_id, "Medicine id"),
        quantity=require_positive_int(quantity, "Quantity"),
        unit_price=require_non_negative_int(unit_price, "Unit price"),
    )


def _percent(value: object, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number.")
    try:
        return clamp_percent(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a number.") from exc


def _payment_mode(value: object) -> PaymentMode:
    if isinstance(value, PaymentMode):
        return value
    try:
        return PaymentMode(str(value or "").strip().lower())
    except ValueError as exc:
        raise ValidationError("Payment mode must be one of cash, card, credit.") from exc


class BillingService:
    def __init__(
        self,
        repo,
        settings: SettingsService | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        stock: StockMutator | None = None,
        sequences: SequenceService | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repo = repo
        self.settings = settings or SettingsService(repo)
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.stock = stock or StockMutator()
        self.sequences = sequences or SequenceService()
        self.clock = clock or datetime.now

    def create_bill(
        self,
        items: Iterable[BillLine | Mapping],
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        discount_percent: object = 0,
        tax_percent: object = None,
        payment_mode: str | PaymentMode = PaymentMode.CASH,
        amount_received: Optional[int] = None,
        created_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> BillDetail:
        lines = [_coerce_line(it) for it in items]
        if not lines:
            raise ValidationError("Bill must have at least one item.")

        mode = _payment_mode(payment_mode)
        discount = _percent(discount_percent, "Discount percent")
        tax = self.settings.gst_percent() if tax_percent is None else _percent(tax_percent, "Tax percent")

        subtotal = Paisa(sum(line.quantity * line.unit_price for line in lines))
        totals = compute_bill_totals(subtotal, discount, tax)

        if mode is PaymentMode.CASH:
            received = Paisa(require_non_negative_int(0 if amount_received is None else amount_received, "Amount received"))
            if received < totals.total:
                raise InsufficientPaymentError(
                    f"Amount received {received.format_rupees()} is less than bill total {totals.total.format_rupees()}."
                )
            change = received - totals.total
        else:
            received = totals.total
            change = Paisa(0)

        if created_by is not None:
            created_by = require_positive_int(created_by, "Created by")

        required: Counter[int] = Counter()
        for line in lines:
            required[line.medicine_id] += line.quantity

        now = self.clock().replace(microsecond=0)
        ts = now.isoformat(sep=" ")

        with self.uow_factory() as uow:
            if created_by is not None:
                user = uow.get_user(created_by)
                if user is None or not user.is_active:
                    raise ValidationError(f"User #{created_by} is not an active user.")

            for medicine_id, qty in required.items():
                med = uow.get_medicine(medicine_id, include_deleted=True)
                if med is None:
                    raise MedicineNotFoundError(f"Medicine #{medicine_id} not found.")
                if med.is_deleted:
                    raise MedicineNotFoundError(f"Cannot bill a deleted medicine: {med.label}.")
                if med.current_quantity < qty:
                    raise InsufficientStockError(
                        f"Not enough stock for {med.label}. Available: {med.current_quantity}, requested: {qty}."
                    )

            bill_number = self.sequences.next_bill_number(uow, now.date())
            bill_id = uow.insert_bill(
                bill_number=bill_number,
                customer_name=clean_text(customer_name),
                customer_phone=clean_text(customer_phone),
                subtotal=totals.subtotal,
                discount_percent=discount,
                tax_percent=tax,
                total_amount=totals.total,
                payment_mode=mode.value,
                amount_received=received,
                change_due=change,
                notes=clean_text(notes),
                created_by=created_by,
                created_at=ts,
            )
            for line in lines:
                uow.insert_bill_item(bill_id, line.medicine_id, line.quantity, line.unit_price)
                self.stock.apply_delta(
                    uow,
                    line.medicine_id,
                    -line.quantity,
                    TransactionType.OUT,
                    reason=f"Bill {bill_number}",
                    reference_id=bill_id,
                    reference_type="bill",
                    performed_by=created_by,
                    timestamp=ts,
                )
            detail = BillDetail(bill=uow.get_bill(bill_id), items=uow.bill_items(bill_id))

        log.info(
            "bill_created bill_id=%s number=%s items=%s total=%s mode=%s actor=%s",
            bill_id,
            bill_number,
            len(lines),
            int(totals.total),
            mode.value,
            created_by,
        )
        return detail

    def get_bill(self, bill_id: int) -> BillDetail:
        bill = self.repo.get_bill(int(bill_id))
        if not bill:
            raise NotFoundError(f"Bill #{bill_id} not found.")
        return BillDetail(bill=bill, items=self.repo.bill_items(bill.id))

    def list_bills(
        self,
        start_date: object = None,
        end_date: object = None,
        search: Optional[str] = None,
        payment_mode: Optional[str] = None,
        include_voided: bool = True,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[BillListRow], int]:
        limit, offset = page_window(page, page_size)
        mode = _payment_mode(payment_mode).value if payment_mode else None
        return self.repo.list_bills(
            start_date=optional_iso_date(start_date, "Start date"),
            end_date=optional_iso_date(end_date, "End date"),
            search=clean_text(search),
            payment_mode=mode,
            include_voided=include_voided,
            limit=limit,
            offset=offset,
        )

    def daily_summary(self, day: date | str | None = None) -> DailySummary:
        return self.repo.daily_summary(iso_date(day if day is not None else self.clock().date(), "Date"))
