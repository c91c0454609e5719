from __future__ import annotations

import logging
from datetime import date
from typing import Optional

log = logging.getLogger(__name__)

BILL_PREFIX = "BILL"
BILL_WIDTH = 4
ORDER_PREFIX = "PO"
ORDER_WIDTH = 5


def _parse_suffix(number: Optional[str], stem: str) -> int:
    if not number or not number.startswith(stem):
        return 0
    suffix = number[len(stem):]
    return int(suffix) if suffix.isdigit() else 0


class SequenceService:
    """Human-readable document numbers, issued inside the caller's transaction.

    Bills: ``BILL-YYYYMMDD-NNNN``, restarting at 0001 every day.
    Purchase orders: ``PO-NNNNN``, never reset.
    When a sequence outgrows its padding the number simply gets longer; the
    store ranks longer numbers first, so the next read still sees the maximum.
    """

    def next_id(self, uow, kind: str, prefix: str, date_scope: Optional[date] = None, width: int = BILL_WIDTH) -> str:
        stem = f"{prefix}-{date_scope.strftime('%Y%m%d')}-" if date_scope else f"{prefix}-"
        last = uow.last_issued_number(kind, stem)
        seq = _parse_suffix(last, stem) + 1
        if len(str(seq)) > width:
            log.warning("sequence_widened kind=%s stem=%s seq=%s width=%s", kind, stem, seq, width)
        return f"{stem}{seq:0{width}d}"

    def next_bill_number(self, uow, day: date) -> str:
        return self.next_id(uow, "bill", BILL_PREFIX, date_scope=day, width=BILL_WIDTH)

    def next_order_number(self, uow) -> str:
        return self.next_id(uow, "purchase_order", ORDER_PREFIX, width=ORDER_WIDTH)
