from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pms.domain.errors import InsufficientStockError, MedicineNotFoundError, ValidationError
from pms.domain.models import TransactionType

log = logging.getLogger("pms.inventory")


class StockMutator:
    """The only writer of stock balances and ledger rows.

    Every change lands as one ``stock_transactions`` row (unsigned quantity
    plus type tag) and one upsert of the ``stock`` balance, both inside the
    caller's unit of work.
    """

    def apply_delta(
        self,
        uow,
        medicine_id: int,
        signed_quantity: int,
        txn_type: TransactionType | str,
        reason: Optional[str],
        reference_id: Optional[int] = None,
        reference_type: Optional[str] = None,
        performed_by: Optional[int] = None,
        timestamp: Optional[str] = None,
    ) -> int:
        try:
            kind = TransactionType(txn_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown transaction type: {txn_type!r}.") from exc
        if isinstance(signed_quantity, bool) or not isinstance(signed_quantity, int) or signed_quantity == 0:
            raise ValidationError("Stock change must be a non-zero whole number.")
        if (signed_quantity > 0) != (kind.sign > 0):
            raise ValidationError(f"A '{kind.value}' transaction cannot carry a quantity of {signed_quantity:+d}.")

        level = uow.stock_level(medicine_id)
        if level is None:
            raise MedicineNotFoundError(f"Medicine #{medicine_id} not found.")

        new_quantity = level.current_quantity + signed_quantity
        if new_quantity < 0:
            raise InsufficientStockError(
                f"Not enough stock for {level.label}. Available: {level.current_quantity}, "
                f"requested: {-signed_quantity}."
            )

        ts = timestamp or datetime.now().replace(microsecond=0).isoformat(sep=" ")
        txn_id = uow.insert_stock_transaction(
            medicine_id=int(medicine_id),
            txn_type=kind.value,
            quantity=abs(signed_quantity),
            reason=reason,
            reference_id=reference_id,
            reference_type=reference_type,
            performed_by=performed_by,
            created_at=ts,
        )
        uow.set_stock_quantity(int(medicine_id), new_quantity, ts)
        log.info(
            "stock_delta medicine_id=%s type=%s qty=%+d balance=%s ref=%s:%s actor=%s",
            medicine_id,
            kind.value,
            signed_quantity,
            new_quantity,
            reference_type,
            reference_id,
            performed_by,
        )
        return txn_id
