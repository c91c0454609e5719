"""Row mapping between SQLite rows and domain records.

Every query that leaves the repository layer goes through one of the
``*_from_row`` functions below, so services only ever handle frozen
dataclasses with Paisa amounts and enum-typed status fields.
"""
from __future__ import annotations

import sqlite3

from pms.domain.models import (
    Bill,
    BillItem,
    Category,
    Medicine,
    OrderStatus,
    PaymentMode,
    Prescription,
    PurchaseOrder,
    PurchaseOrderItem,
    StockLevel,
    StockTransaction,
    Supplier,
    TransactionType,
    User,
)
from pms.domain.money import Paisa

sqlite3.register_adapter(Paisa, int)

MEDICINE_SELECT = """
    SELECT m.id, m.name, m.category_id, c.name AS category_name, m.batch_no, m.barcode,
           m.mfg_date, m.expiry_date, m.received_date, m.firm_name,
           m.unit_price_buy, m.unit_price_sell, m.min_stock_level, m.shelf_location, m.notes,
           m.is_deleted, COALESCE(s.current_quantity, 0) AS current_quantity
    FROM medicines m
    LEFT JOIN medicine_categories c ON c.id = m.category_id
    LEFT JOIN stock s ON s.medicine_id = m.id
"""

BILL_SELECT = """
    SELECT id, bill_number, customer_name, customer_phone, subtotal, discount_percent, tax_percent,
           total_amount, payment_mode, amount_received, change_due, notes, is_voided,
           voided_reason, voided_by, created_by, created_at
    FROM bills
"""

BILL_ITEM_SELECT = """
    SELECT bi.id, bi.bill_id, bi.medicine_id, m.name AS medicine_name, m.batch_no,
           bi.quantity, bi.unit_price, bi.total
    FROM bill_items bi
    LEFT JOIN medicines m ON m.id = bi.medicine_id
"""

TRANSACTION_SELECT = """
    SELECT t.id, t.medicine_id, m.name AS medicine_name, t.transaction_type, t.quantity, t.reason,
           t.reference_id, t.reference_type, t.performed_by, t.created_at
    FROM stock_transactions t
    LEFT JOIN medicines m ON m.id = t.medicine_id
"""

ORDER_SELECT = """
    SELECT po.id, po.order_number, po.supplier_id, s.name AS supplier_name, po.order_date,
           po.expected_date, po.received_date, po.status, po.total_amount, po.paid_amount,
           po.notes, po.created_by, po.created_at,
           (SELECT COUNT(*) FROM purchase_order_items i WHERE i.purchase_order_id = po.id) AS items_count
    FROM purchase_orders po
    LEFT JOIN suppliers s ON s.id = po.supplier_id
"""

ORDER_ITEM_SELECT = """
    SELECT poi.id, poi.purchase_order_id, poi.medicine_id, m.name AS medicine_name,
           poi.quantity_ordered, poi.quantity_received, poi.unit_price
    FROM purchase_order_items poi
    LEFT JOIN medicines m ON m.id = poi.medicine_id
"""

SUPPLIER_SELECT = """
    SELECT s.id, s.name, s.contact_person, s.phone, s.email, s.address, s.ntn_cnic, s.notes,
           s.is_active,
           (SELECT COUNT(*) FROM purchase_orders po WHERE po.supplier_id = s.id) AS total_orders,
           (SELECT COALESCE(SUM(po.total_amount - po.paid_amount), 0)
              FROM purchase_orders po
             WHERE po.supplier_id = s.id AND po.status != 'cancelled') AS outstanding_balance
    FROM suppliers s
"""

PRESCRIPTION_SELECT = """
    SELECT p.id, p.patient_name, p.patient_age, p.doctor_name, p.prescription_date,
           p.medicines_prescribed, p.image_path, p.notes, p.bill_id,
           b.bill_number AS linked_bill_number, p.created_at
    FROM prescriptions p
    LEFT JOIN bills b ON b.id = p.bill_id
"""


def _opt_int(v) -> int | None:
    return int(v) if v is not None else None


def user_from_row(r: sqlite3.Row) -> User:
    return User(
        id=int(r["id"]),
        username=str(r["username"]),
        full_name=str(r["full_name"]),
        role=str(r["role"]),
        is_active=bool(r["is_active"]),
    )


def category_from_row(r: sqlite3.Row) -> Category:
    return Category(id=int(r["id"]), name=str(r["name"]), description=r["description"])


def medicine_from_row(r: sqlite3.Row) -> Medicine:
    return Medicine(
        id=int(r["id"]),
        name=str(r["name"]),
        category_id=_opt_int(r["category_id"]),
        category_name=r["category_name"],
        batch_no=r["batch_no"],
        barcode=r["barcode"],
        mfg_date=r["mfg_date"],
        expiry_date=r["expiry_date"],
        received_date=r["received_date"],
        firm_name=r["firm_name"],
        unit_price_buy=Paisa(int(r["unit_price_buy"])),
        unit_price_sell=Paisa(int(r["unit_price_sell"])),
        min_stock_level=int(r["min_stock_level"]),
        shelf_location=r["shelf_location"],
        notes=r["notes"],
        is_deleted=bool(r["is_deleted"]),
        current_quantity=int(r["current_quantity"]),
    )


def stock_level_from_row(r: sqlite3.Row) -> StockLevel:
    return StockLevel(
        medicine_id=int(r["medicine_id"]),
        name=str(r["name"]),
        batch_no=r["batch_no"],
        is_deleted=bool(r["is_deleted"]),
        current_quantity=int(r["current_quantity"] or 0),
    )


def transaction_from_row(r: sqlite3.Row) -> StockTransaction:
    return StockTransaction(
        id=int(r["id"]),
        medicine_id=int(r["medicine_id"]),
        medicine_name=r["medicine_name"],
        transaction_type=TransactionType(r["transaction_type"]),
        quantity=int(r["quantity"]),
        reason=r["reason"],
        reference_id=_opt_int(r["reference_id"]),
        reference_type=r["reference_type"],
        performed_by=_opt_int(r["performed_by"]),
        created_at=str(r["created_at"]),
    )


def bill_from_row(r: sqlite3.Row) -> Bill:
    return Bill(
        id=int(r["id"]),
        bill_number=str(r["bill_number"]),
        customer_name=r["customer_name"],
        customer_phone=r["customer_phone"],
        subtotal=Paisa(int(r["subtotal"])),
        discount_percent=int(r["discount_percent"]),
        tax_percent=int(r["tax_percent"]),
        total_amount=Paisa(int(r["total_amount"])),
        payment_mode=PaymentMode(r["payment_mode"]),
        amount_received=Paisa(int(r["amount_received"])),
        change_due=Paisa(int(r["change_due"])),
        notes=r["notes"],
        is_voided=bool(r["is_voided"]),
        voided_reason=r["voided_reason"],
        voided_by=_opt_int(r["voided_by"]),
        created_by=_opt_int(r["created_by"]),
        created_at=str(r["created_at"]),
    )


def bill_item_from_row(r: sqlite3.Row) -> BillItem:
    return BillItem(
        id=int(r["id"]),
        bill_id=int(r["bill_id"]),
        medicine_id=int(r["medicine_id"]),
        medicine_name=r["medicine_name"],
        batch_no=r["batch_no"],
        quantity=int(r["quantity"]),
        unit_price=Paisa(int(r["unit_price"])),
        total=Paisa(int(r["total"])),
    )


def order_from_row(r: sqlite3.Row) -> PurchaseOrder:
    return PurchaseOrder(
        id=int(r["id"]),
        order_number=str(r["order_number"]),
        supplier_id=_opt_int(r["supplier_id"]),
        supplier_name=r["supplier_name"],
        order_date=str(r["order_date"]),
        expected_date=r["expected_date"],
        received_date=r["received_date"],
        status=OrderStatus(r["status"]),
        total_amount=Paisa(int(r["total_amount"])),
        paid_amount=Paisa(int(r["paid_amount"])),
        notes=r["notes"],
        created_by=_opt_int(r["created_by"]),
        created_at=str(r["created_at"]),
    )


def order_item_from_row(r: sqlite3.Row) -> PurchaseOrderItem:
    return PurchaseOrderItem(
        id=int(r["id"]),
        purchase_order_id=int(r["purchase_order_id"]),
        medicine_id=int(r["medicine_id"]),
        medicine_name=r["medicine_name"],
        quantity_ordered=int(r["quantity_ordered"]),
        quantity_received=int(r["quantity_received"]),
        unit_price=Paisa(int(r["unit_price"])),
    )


def supplier_from_row(r: sqlite3.Row) -> Supplier:
    return Supplier(
        id=int(r["id"]),
        name=str(r["name"]),
        contact_person=r["contact_person"],
        phone=r["phone"],
        email=r["email"],
        address=r["address"],
        ntn_cnic=r["ntn_cnic"],
        notes=r["notes"],
        is_active=bool(r["is_active"]),
        total_orders=int(r["total_orders"]),
        outstanding_balance=Paisa(int(r["outstanding_balance"])),
    )


def prescription_from_row(r: sqlite3.Row) -> Prescription:
    return Prescription(
        id=int(r["id"]),
        patient_name=str(r["patient_name"]),
        patient_age=_opt_int(r["patient_age"]),
        doctor_name=r["doctor_name"],
        prescription_date=r["prescription_date"],
        medicines_prescribed=r["medicines_prescribed"],
        image_path=r["image_path"],
        notes=r["notes"],
        bill_id=_opt_int(r["bill_id"]),
        linked_bill_number=r["linked_bill_number"],
        created_at=str(r["created_at"]),
    )
