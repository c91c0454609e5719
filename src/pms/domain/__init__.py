from .models import (
    Bill,
    BillDetail,
    BillItem,
    BillLine,
    Medicine,
    OrderStatus,
    PaymentMode,
    PurchaseOrder,
    PurchaseOrderDetail,
    PurchaseOrderItem,
    StockTransaction,
    TransactionType,
)
from .money import Paisa, compute_bill_totals
from .errors import (
    AlreadyVoidedError,
    InsufficientPaymentError,
    InsufficientStockError,
    InvalidStateError,
    MedicineNotFoundError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "Bill",
    "BillDetail",
    "BillItem",
    "BillLine",
    "Medicine",
    "OrderStatus",
    "PaymentMode",
    "PurchaseOrder",
    "PurchaseOrderDetail",
    "PurchaseOrderItem",
    "StockTransaction",
    "TransactionType",
    "Paisa",
    "compute_bill_totals",
    "AlreadyVoidedError",
    "InsufficientPaymentError",
    "InsufficientStockError",
    "InvalidStateError",
    "MedicineNotFoundError",
    "NotFoundError",
    "ValidationError",
]
