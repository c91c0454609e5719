from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerMismatch:
    medicine_id: int
    name: str
    stock_quantity: int
    ledger_quantity: int


@dataclass(frozen=True)
class HealthReport:
    sqlite_integrity: str
    db_size_bytes: int
    generated_at: str
    ledger_mismatches: list[LedgerMismatch] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.sqlite_integrity == "ok" and not self.ledger_mismatches


class OperationsService:
    def __init__(self, repo, db_path: Path | str, clock: Callable[[], datetime] | None = None):
        self.repo = repo
        self.db_path = Path(db_path)
        self.clock = clock or datetime.now

    def run_health_check(self) -> HealthReport:
        integrity = self.repo.integrity_check()
        size = self.db_path.stat().st_size if self.db_path.exists() else 0
        mismatches = [LedgerMismatch(*row) for row in self.repo.ledger_mismatches()]
        for m in mismatches:
            log.error(
                "ledger_mismatch medicine_id=%s stock=%s ledger=%s",
                m.medicine_id,
                m.stock_quantity,
                m.ledger_quantity,
            )
        return HealthReport(
            sqlite_integrity=integrity,
            db_size_bytes=size,
            generated_at=self.clock().isoformat(timespec="seconds"),
            ledger_mismatches=mismatches,
        )
