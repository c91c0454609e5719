from .stock_mutator import StockMutator
from .sequence_service import SequenceService
from .settings_service import SettingsService
from .billing_service import BillingService
from .void_service import VoidService
from .purchase_service import PurchaseService
from .supplier_service import SupplierService
from .medicine_service import MedicineService
from .inventory_service import InventoryService
from .reporting_service import ReportingService
from .prescription_service import PrescriptionService
from .user_service import UserService
from .excel_service import ExcelService
from .operations_service import OperationsService

__all__ = [
    "StockMutator",
    "SequenceService",
    "SettingsService",
    "BillingService",
    "VoidService",
    "PurchaseService",
    "SupplierService",
    "MedicineService",
    "InventoryService",
    "ReportingService",
    "PrescriptionService",
    "UserService",
    "ExcelService",
    "OperationsService",
]
