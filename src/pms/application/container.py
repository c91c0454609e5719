from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from pms.repositories.sqlite_repo import SqliteRepository
from pms.services.billing_service import BillingService
from pms.services.excel_service import ExcelService
from pms.services.inventory_service import InventoryService
from pms.services.medicine_service import MedicineService
from pms.services.operations_service import OperationsService
from pms.services.prescription_service import PrescriptionService
from pms.services.purchase_service import PurchaseService
from pms.services.reporting_service import ReportingService
from pms.services.sequence_service import SequenceService
from pms.services.settings_service import SettingsService
from pms.services.stock_mutator import StockMutator
from pms.services.supplier_service import SupplierService
from pms.services.user_service import UserService
from pms.services.void_service import VoidService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    settings: SettingsService
    medicines: MedicineService
    inventory: InventoryService
    billing: BillingService
    voids: VoidService
    purchases: PurchaseService
    suppliers: SupplierService
    prescriptions: PrescriptionService
    users: UserService
    reporting: ReportingService
    excel: ExcelService
    operations: OperationsService


def build_container(db_path: Path | str, clock: Callable[[], datetime] | None = None) -> AppContainer:
    repo = SqliteRepository(db_path)
    repo.init_db()

    stock = StockMutator()
    sequences = SequenceService()
    settings = SettingsService(repo)
    medicines = MedicineService(repo, stock=stock, clock=clock)
    inventory = InventoryService(repo, stock=stock, clock=clock)

    return AppContainer(
        repo=repo,
        settings=settings,
        medicines=medicines,
        inventory=inventory,
        billing=BillingService(repo, settings=settings, stock=stock, sequences=sequences, clock=clock),
        voids=VoidService(repo, stock=stock, clock=clock),
        purchases=PurchaseService(repo, stock=stock, sequences=sequences, clock=clock),
        suppliers=SupplierService(repo),
        prescriptions=PrescriptionService(repo),
        users=UserService(repo),
        reporting=ReportingService(repo, clock=clock),
        excel=ExcelService(repo, medicines, inventory),
        operations=OperationsService(repo, db_path=db_path, clock=clock),
    )
