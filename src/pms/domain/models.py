from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pms.domain.money import BillTotals, Paisa, compute_bill_totals


class TransactionType(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUST = "adjust"
    RETURN = "return"

    @property
    def sign(self) -> int:
        return 1 if self in (TransactionType.IN, TransactionType.RETURN) else -1


class PaymentMode(str, Enum):
    CASH = "cash"
    CARD = "card"
    CREDIT = "credit"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    RECEIVED = "received"
    CANCELLED = "cancelled"


ROLES = ("admin", "manager", "pharmacist", "dataentry")


def medicine_label(name: str, batch_no: Optional[str]) -> str:
    return f"{name} (Batch {batch_no})" if batch_no else name


@dataclass(frozen=True)
class User:
    id: int
    username: str
    full_name: str
    role: str
    is_active: bool = True


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class Medicine:
    id: int
    name: str
    category_id: Optional[int]
    category_name: Optional[str]
    batch_no: Optional[str]
    barcode: Optional[str]
    mfg_date: Optional[str]
    expiry_date: Optional[str]
    received_date: Optional[str]
    firm_name: Optional[str]
    unit_price_buy: Paisa
    unit_price_sell: Paisa
    min_stock_level: int
    shelf_location: Optional[str]
    notes: Optional[str]
    is_deleted: bool
    current_quantity: int

    @property
    def label(self) -> str:
        return medicine_label(self.name, self.batch_no)


@dataclass(frozen=True)
class StockLevel:
    medicine_id: int
    name: str
    batch_no: Optional[str]
    is_deleted: bool
    current_quantity: int

    @property
    def label(self) -> str:
        return medicine_label(self.name, self.batch_no)


@dataclass(frozen=True)
class StockTransaction:
    id: int
    medicine_id: int
    medicine_name: Optional[str]
    transaction_type: TransactionType
    quantity: int
    reason: Optional[str]
    reference_id: Optional[int]
    reference_type: Optional[str]
    performed_by: Optional[int]
    created_at: str

    @property
    def signed_quantity(self) -> int:
        return self.transaction_type.sign * self.quantity


@dataclass(frozen=True)
class BillLine:
    medicine_id: int
    quantity: int
    unit_price: int


@dataclass(frozen=True)
class Bill:
    id: int
    bill_number: str
    customer_name: Optional[str]
    customer_phone: Optional[str]
    subtotal: Paisa
    discount_percent: int
    tax_percent: int
    total_amount: Paisa
    payment_mode: PaymentMode
    amount_received: Paisa
    change_due: Paisa
    notes: Optional[str]
    is_voided: bool
    voided_reason: Optional[str]
    voided_by: Optional[int]
    created_by: Optional[int]
    created_at: str

    @property
    def totals(self) -> BillTotals:
        return compute_bill_totals(self.subtotal, self.discount_percent, self.tax_percent)

    @property
    def discount_amount(self) -> Paisa:
        return self.totals.discount_amount

    @property
    def tax_amount(self) -> Paisa:
        return self.totals.tax_amount


@dataclass(frozen=True)
class BillItem:
    id: int
    bill_id: int
    medicine_id: int
    medicine_name: Optional[str]
    batch_no: Optional[str]
    quantity: int
    unit_price: Paisa
    total: Paisa


@dataclass(frozen=True)
class BillDetail:
    bill: Bill
    items: list[BillItem] = field(default_factory=list)


@dataclass(frozen=True)
class BillListRow:
    id: int
    bill_number: str
    created_at: str
    customer_name: Optional[str]
    customer_phone: Optional[str]
    items_count: int
    subtotal: Paisa
    total_amount: Paisa
    payment_mode: PaymentMode
    is_voided: bool


@dataclass(frozen=True)
class DailySummary:
    date: str
    total_sales: Paisa
    bill_count: int


@dataclass(frozen=True)
class Supplier:
    id: int
    name: str
    contact_person: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    ntn_cnic: Optional[str]
    notes: Optional[str]
    is_active: bool
    total_orders: int = 0
    outstanding_balance: Paisa = Paisa(0)


@dataclass(frozen=True)
class PurchaseOrder:
    id: int
    order_number: str
    supplier_id: Optional[int]
    supplier_name: Optional[str]
    order_date: str
    expected_date: Optional[str]
    received_date: Optional[str]
    status: OrderStatus
    total_amount: Paisa
    paid_amount: Paisa
    notes: Optional[str]
    created_by: Optional[int]
    created_at: str

    @property
    def balance(self) -> Paisa:
        return self.total_amount - self.paid_amount


@dataclass(frozen=True)
class PurchaseOrderItem:
    id: int
    purchase_order_id: int
    medicine_id: int
    medicine_name: Optional[str]
    quantity_ordered: int
    quantity_received: int
    unit_price: Paisa


@dataclass(frozen=True)
class PurchaseOrderDetail:
    order: PurchaseOrder
    items: list[PurchaseOrderItem] = field(default_factory=list)


@dataclass(frozen=True)
class Prescription:
    id: int
    patient_name: str
    patient_age: Optional[int]
    doctor_name: Optional[str]
    prescription_date: Optional[str]
    medicines_prescribed: Optional[str]
    image_path: Optional[str]
    notes: Optional[str]
    bill_id: Optional[int]
    linked_bill_number: Optional[str]
    created_at: str

    @property
    def medicines_count(self) -> int:
        text = (self.medicines_prescribed or "").replace(";", "\n").replace(",", "\n")
        return len([line for line in text.splitlines() if line.strip()])

    @property
    def has_image(self) -> bool:
        return bool((self.image_path or "").strip())
