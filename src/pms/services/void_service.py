from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from pms.domain.errors import AlreadyVoidedError, NotFoundError, ValidationError
from pms.domain.models import TransactionType
from pms.domain.validation import require_positive_int
from pms.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from pms.services.stock_mutator import StockMutator

log = logging.getLogger("pms.billing")


class VoidService:
    """Voids a bill with a compensating stock-in per original line.

    The bill and its items stay in place; only the void fields change, and the
    reversal shows up in the ledger under reference type ``bill_void``.
    """

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

    def void_bill(self, bill_id: int, reason: str, voided_by: int) -> None:
        reason_clean = (reason or "").strip()
        if not reason_clean:
            raise ValidationError("Void reason is required.")
        if voided_by is None:
            raise ValidationError("A voiding user is required.")
        voided_by = require_positive_int(voided_by, "Voided by")
        bill_id = require_positive_int(bill_id, "Bill id")

        ts = self.clock().replace(microsecond=0).isoformat(sep=" ")

        with self.uow_factory() as uow:
            user = uow.get_user(voided_by)
            if user is None or not user.is_active:
                raise ValidationError(f"User #{voided_by} is not an active user.")

            bill = uow.get_bill(bill_id)
            if bill is None:
                raise NotFoundError("Bill not found.")
            if bill.is_voided or not uow.mark_bill_voided(bill_id, reason_clean, voided_by):
                raise AlreadyVoidedError(f"Bill {bill.bill_number} is already voided.")

            items = uow.bill_items(bill_id)
            for item in items:
                self.stock.apply_delta(
                    uow,
                    item.medicine_id,
                    item.quantity,
                    TransactionType.IN,
                    reason=f"Void {bill.bill_number}: {reason_clean}",
                    reference_id=bill_id,
                    reference_type="bill_void",
                    performed_by=voided_by,
                    timestamp=ts,
                )

        log.info(
            "bill_voided bill_id=%s number=%s items=%s actor=%s",
            bill_id,
            bill.bill_number,
            len(items),
            voided_by,
        )
