from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Callable, Iterable, Optional

from pms.domain.errors import InvalidStateError, MedicineNotFoundError, NotFoundError, ValidationError
from pms.domain.models import OrderStatus, PurchaseOrder, PurchaseOrderDetail, TransactionType
from pms.domain.money import Paisa
from pms.domain.validation import (
    clean_text,
    optional_iso_date,
    page_window,
    require_non_negative_int,
    require_positive_int,
)
from pms.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from pms.services.sequence_service import SequenceService
from pms.services.stock_mutator import StockMutator

log = logging.getLogger("pms.inventory")


def _coerce_order_line(item: Mapping) -> tuple[int, int, int]:
    if not isinstance(item, Mapping):
        raise ValidationError("Order lines must be mappings.")
    quantity = item.get("quantity_ordered", item.get("quantity"))
    if "medicine_id" not in item or quantity is None:
        raise ValidationError("Order lines need medicine_id and quantity_ordered.")
    return (
        require_positive_int(item["medicine_id"], "Medicine id"),
        require_positive_int(quantity, "Quantity ordered"),
        require_non_negative_int(item.get("unit_price", 0), "Unit price"),
    )


def _status_for(paid: int, total: int) -> OrderStatus:
    return OrderStatus.RECEIVED if paid >= total else OrderStatus.PARTIAL


class PurchaseService:
    def __init__(
        self,
        repo,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        stock: StockMutator | None = None,
        sequences: SequenceService | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.stock = stock or StockMutator()
        self.sequences = sequences or SequenceService()
        self.clock = clock or datetime.now

    def _now(self) -> datetime:
        return self.clock().replace(microsecond=0)

    def create_purchase_order(
        self,
        supplier_id: int,
        items: Iterable[Mapping],
        order_date: object = None,
        expected_date: object = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> PurchaseOrderDetail:
        """
        items: [{medicine_id, quantity_ordered, unit_price}]
        """
        supplier_id = require_positive_int(supplier_id, "Supplier id")
        lines = [_coerce_order_line(it) for it in items]
        if not lines:
            raise ValidationError("Purchase order must have at least one item.")

        now = self._now()
        order_day = optional_iso_date(order_date, "Order date") or now.date().isoformat()
        expected_day = optional_iso_date(expected_date, "Expected date")
        if expected_day and expected_day < order_day:
            raise ValidationError("Expected date cannot be before the order date.")
        total = Paisa(sum(qty * price for _, qty, price in lines))
        if created_by is not None:
            created_by = require_positive_int(created_by, "Created by")

        with self.uow_factory() as uow:
            supplier = uow.get_supplier(supplier_id)
            if supplier is None or not supplier.is_active:
                raise NotFoundError(f"Supplier #{supplier_id} not found.")
            for medicine_id, _, _ in lines:
                med = uow.get_medicine(medicine_id, include_deleted=True)
                if med is None:
                    raise MedicineNotFoundError(f"Medicine #{medicine_id} not found.")
                if med.is_deleted:
                    raise MedicineNotFoundError(f"Cannot order a deleted medicine: {med.label}.")
            if created_by is not None:
                user = uow.get_user(created_by)
                if user is None or not user.is_active:
                    raise ValidationError(f"User #{created_by} is not an active user.")

            order_number = self.sequences.next_order_number(uow)
            order_id = uow.insert_purchase_order(
                order_number=order_number,
                supplier_id=supplier_id,
                order_date=order_day,
                expected_date=expected_day,
                total_amount=total,
                notes=clean_text(notes),
                created_by=created_by,
                created_at=now.isoformat(sep=" "),
            )
            for medicine_id, qty, price in lines:
                uow.insert_purchase_order_item(order_id, medicine_id, qty, price)
            detail = PurchaseOrderDetail(order=uow.get_purchase_order(order_id), items=uow.purchase_order_items(order_id))

        log.info(
            "purchase_order_created order_id=%s number=%s supplier_id=%s items=%s total=%s",
            order_id,
            order_number,
            supplier_id,
            len(lines),
            int(total),
        )
        return detail

    def mark_order_received(self, order_id: int, received_by: Optional[int] = None) -> PurchaseOrder:
        """Credit every ordered line in full and stamp the receipt date.

        Lines are always received completely; there is no per-line partial receipt.
        """
        order_id = require_positive_int(order_id, "Order id")
        now = self._now()
        if received_by is not None:
            received_by = require_positive_int(received_by, "Received by")
        ts = now.isoformat(sep=" ")

        with self.uow_factory() as uow:
            order = uow.get_purchase_order(order_id)
            if order is None:
                raise NotFoundError(f"Purchase order #{order_id} not found.")
            if order.status is OrderStatus.CANCELLED:
                raise InvalidStateError(f"Purchase order {order.order_number} is cancelled.")
            if order.received_date:
                raise InvalidStateError(f"Purchase order {order.order_number} has already been received.")
            if received_by is not None:
                user = uow.get_user(received_by)
                if user is None or not user.is_active:
                    raise ValidationError(f"User #{received_by} is not an active user.")

            received_units = 0
            for item in uow.purchase_order_items(order_id):
                if item.quantity_ordered <= 0:
                    continue
                self.stock.apply_delta(
                    uow,
                    item.medicine_id,
                    item.quantity_ordered,
                    TransactionType.IN,
                    reason=f"Purchase Order {order.order_number}",
                    reference_id=order_id,
                    reference_type="purchase_order",
                    performed_by=received_by,
                    timestamp=ts,
                )
                uow.set_item_received(item.id, item.quantity_ordered)
                received_units += item.quantity_ordered

            status = _status_for(order.paid_amount, order.total_amount)
            if not uow.mark_order_received(order_id, status.value, now.date().isoformat()):
                raise InvalidStateError(f"Purchase order {order.order_number} changed while being received.")
            updated = uow.get_purchase_order(order_id)

        log.info(
            "purchase_order_received order_id=%s number=%s units=%s status=%s",
            order_id,
            order.order_number,
            received_units,
            status.value,
        )
        return updated

    def record_payment(self, order_id: int, amount: int) -> PurchaseOrder:
        order_id = require_positive_int(order_id, "Order id")
        amount = Paisa(require_positive_int(amount, "Payment amount"))

        with self.uow_factory() as uow:
            order = uow.get_purchase_order(order_id)
            if order is None:
                raise NotFoundError(f"Purchase order #{order_id} not found.")
            if order.status is OrderStatus.CANCELLED:
                raise InvalidStateError(f"Purchase order {order.order_number} is cancelled.")
            new_paid = order.paid_amount + amount
            if new_paid > order.total_amount:
                raise ValidationError(
                    f"Payment exceeds the balance of {order.order_number}. "
                    f"Balance: {order.balance.format_rupees()}."
                )
            status = _status_for(new_paid, order.total_amount)
            uow.update_order_payment(order_id, new_paid, status.value)
            updated = uow.get_purchase_order(order_id)

        log.info(
            "purchase_payment_recorded order_id=%s amount=%s paid=%s status=%s",
            order_id,
            int(amount),
            int(new_paid),
            status.value,
        )
        return updated

    def cancel_order(self, order_id: int) -> None:
        order_id = require_positive_int(order_id, "Order id")
        with self.uow_factory() as uow:
            order = uow.get_purchase_order(order_id)
            if order is None:
                raise NotFoundError(f"Purchase order #{order_id} not found.")
            if order.status not in (OrderStatus.PENDING, OrderStatus.PARTIAL) or order.received_date:
                raise InvalidStateError(
                    f"Purchase order {order.order_number} cannot be cancelled (status: {order.status.value})."
                )
            uow.set_order_status(order_id, OrderStatus.CANCELLED.value)
        log.info("purchase_order_cancelled order_id=%s number=%s", order_id, order.order_number)

    def get_purchase_order(self, order_id: int) -> PurchaseOrderDetail:
        order = self.repo.get_purchase_order(int(order_id))
        if not order:
            raise NotFoundError(f"Purchase order #{order_id} not found.")
        return PurchaseOrderDetail(order=order, items=self.repo.purchase_order_items(order.id))

    def list_purchase_orders(
        self,
        supplier_id: Optional[int] = None,
        status: Optional[str] = None,
        start_date: object = None,
        end_date: object = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[PurchaseOrder], int]:
        if isinstance(status, OrderStatus):
            status = status.value
        elif status:
            try:
                status = OrderStatus(str(status).strip().lower()).value
            except ValueError as exc:
                raise ValidationError(f"Unknown order status: {status!r}.") from exc
        limit, offset = page_window(page, page_size)
        rows, total = self.repo.list_purchase_orders(
            supplier_id=supplier_id,
            status=status or None,
            start_date=optional_iso_date(start_date, "Start date"),
            end_date=optional_iso_date(end_date, "End date"),
            limit=limit,
            offset=offset,
        )
        return [order for order, _ in rows], total
