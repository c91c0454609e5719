from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Optional, Protocol

from pms.domain.models import (
    Bill,
    BillItem,
    Medicine,
    PurchaseOrder,
    PurchaseOrderItem,
    StockLevel,
    Supplier,
    User,
)
from pms.repositories.rows import (
    BILL_ITEM_SELECT,
    BILL_SELECT,
    MEDICINE_SELECT,
    ORDER_ITEM_SELECT,
    ORDER_SELECT,
    SUPPLIER_SELECT,
    bill_from_row,
    bill_item_from_row,
    medicine_from_row,
    order_from_row,
    order_item_from_row,
    stock_level_from_row,
    supplier_from_row,
    user_from_row,
)

# kind -> (table, number column); the only identifiers ever interpolated into sequence SQL
SEQUENCE_COLUMNS = {
    "bill": ("bills", "bill_number"),
    "purchase_order": ("purchase_orders", "order_number"),
}


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def get_user(self, user_id: int) -> Optional[User]: ...
    def get_medicine(self, medicine_id: int, include_deleted: bool = False) -> Optional[Medicine]: ...
    def stock_level(self, medicine_id: int) -> Optional[StockLevel]: ...
    def insert_stock_transaction(
        self,
        medicine_id: int,
        txn_type: str,
        quantity: int,
        reason: Optional[str],
        reference_id: Optional[int],
        reference_type: Optional[str],
        performed_by: Optional[int],
        created_at: str,
    ) -> int: ...
    def set_stock_quantity(self, medicine_id: int, quantity: int, updated_at: str) -> None: ...
    def last_issued_number(self, kind: str, stem: str) -> Optional[str]: ...


@dataclass
class RepositoryUnitOfWork:
    """One SQLite write transaction spanning a whole use-case.

    Entering opens a dedicated connection and takes the database write lock
    with ``BEGIN IMMEDIATE``, so sequence reads, stock checks and the writes
    that depend on them see no interleaved writer. Leaving commits, or rolls
    back when the block raised.
    """

    repo: object
    conn: Optional[sqlite3.Connection] = field(default=None, init=False, repr=False)

    def __enter__(self) -> "RepositoryUnitOfWork":
        self.conn = self.repo._conn(autocommit=True)
        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except Exception:
            self.conn.close()
            self.conn = None
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn = self.conn
        self.conn = None
        if conn is None:
            return None
        try:
            if exc_type is None:
                conn.execute("COMMIT")
            else:
                conn.execute("ROLLBACK")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
        return None

    def _cur(self) -> sqlite3.Connection:
        if self.conn is None:
            raise RuntimeError("Unit of work is not active.")
        return self.conn

    def _one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self._cur().execute(sql, params).fetchone()

    # ---------- Lookups ----------
    def get_user(self, user_id: int) -> Optional[User]:
        r = self._one("SELECT id, username, full_name, role, is_active FROM users WHERE id=?", (int(user_id),))
        return user_from_row(r) if r else None

    def get_medicine(self, medicine_id: int, include_deleted: bool = False) -> Optional[Medicine]:
        sql = MEDICINE_SELECT + " WHERE m.id=?"
        if not include_deleted:
            sql += " AND m.is_deleted=0"
        r = self._one(sql, (int(medicine_id),))
        return medicine_from_row(r) if r else None

    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        r = self._one(SUPPLIER_SELECT + " WHERE s.id=?", (int(supplier_id),))
        return supplier_from_row(r) if r else None

    # ---------- Stock ----------
    def stock_level(self, medicine_id: int) -> Optional[StockLevel]:
        r = self._one(
            """
            SELECT m.id AS medicine_id, m.name, m.batch_no, m.is_deleted, s.current_quantity
            FROM medicines m
            LEFT JOIN stock s ON s.medicine_id = m.id
            WHERE m.id=?
            """,
            (int(medicine_id),),
        )
        return stock_level_from_row(r) if r else None

    def insert_stock_transaction(
        self,
        medicine_id: int,
        txn_type: str,
        quantity: int,
        reason: Optional[str],
        reference_id: Optional[int],
        reference_type: Optional[str],
        performed_by: Optional[int],
        created_at: str,
    ) -> int:
        cur = self._cur().execute(
            """
            INSERT INTO stock_transactions (
                medicine_id, transaction_type, quantity, reason,
                reference_id, reference_type, performed_by, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (int(medicine_id), txn_type, int(quantity), reason, reference_id, reference_type, performed_by, created_at),
        )
        return int(cur.lastrowid)

    def set_stock_quantity(self, medicine_id: int, quantity: int, updated_at: str) -> None:
        self._cur().execute(
            """
            INSERT INTO stock (medicine_id, current_quantity, last_updated) VALUES (?, ?, ?)
            ON CONFLICT(medicine_id) DO UPDATE
            SET current_quantity=excluded.current_quantity, last_updated=excluded.last_updated
            """,
            (int(medicine_id), int(quantity), updated_at),
        )

    # ---------- Sequences ----------
    def last_issued_number(self, kind: str, stem: str) -> Optional[str]:
        """Highest number issued under ``stem``; longer numbers rank above shorter ones."""
        if kind not in SEQUENCE_COLUMNS:
            raise ValueError(f"Unknown sequence kind: {kind}")
        table, column = SEQUENCE_COLUMNS[kind]
        r = self._one(
            f"""
            SELECT {column} FROM {table}
            WHERE substr({column}, 1, ?) = ?
            ORDER BY LENGTH({column}) DESC, {column} DESC
            LIMIT 1
            """,
            (len(stem), stem),
        )
        return str(r[0]) if r else None

    # ---------- Medicines ----------
    def insert_medicine(self, fields: dict, created_at: str) -> int:
        keys = sorted(fields)
        cur = self._cur().execute(
            f"INSERT INTO medicines ({', '.join(keys)}, created_at) VALUES ({', '.join('?' for _ in keys)}, ?)",
            (*(fields[k] for k in keys), created_at),
        )
        return int(cur.lastrowid)

    # ---------- Bills ----------
    def insert_bill(
        self,
        bill_number: str,
        customer_name: Optional[str],
        customer_phone: Optional[str],
        subtotal: int,
        discount_percent: int,
        tax_percent: int,
        total_amount: int,
        payment_mode: str,
        amount_received: int,
        change_due: int,
        notes: Optional[str],
        created_by: Optional[int],
        created_at: str,
    ) -> int:
        cur = self._cur().execute(
            """
            INSERT INTO bills (
                bill_number, customer_name, customer_phone, subtotal, discount_percent, tax_percent,
                total_amount, payment_mode, amount_received, change_due, notes, created_by, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                bill_number,
                customer_name,
                customer_phone,
                int(subtotal),
                int(discount_percent),
                int(tax_percent),
                int(total_amount),
                payment_mode,
                int(amount_received),
                int(change_due),
                notes,
                created_by,
                created_at,
            ),
        )
        return int(cur.lastrowid)

    def insert_bill_item(self, bill_id: int, medicine_id: int, quantity: int, unit_price: int) -> int:
        cur = self._cur().execute(
            "INSERT INTO bill_items (bill_id, medicine_id, quantity, unit_price, total) VALUES (?, ?, ?, ?, ?)",
            (int(bill_id), int(medicine_id), int(quantity), int(unit_price), int(quantity) * int(unit_price)),
        )
        return int(cur.lastrowid)

    def get_bill(self, bill_id: int) -> Optional[Bill]:
        r = self._one(BILL_SELECT + " WHERE id=?", (int(bill_id),))
        return bill_from_row(r) if r else None

    def bill_items(self, bill_id: int) -> list[BillItem]:
        rows = self._cur().execute(BILL_ITEM_SELECT + " WHERE bi.bill_id=? ORDER BY bi.id", (int(bill_id),)).fetchall()
        return [bill_item_from_row(r) for r in rows]

    def mark_bill_voided(self, bill_id: int, reason: str, voided_by: int) -> bool:
        cur = self._cur().execute(
            "UPDATE bills SET is_voided=1, voided_reason=?, voided_by=? WHERE id=? AND is_voided=0",
            (reason, int(voided_by), int(bill_id)),
        )
        return cur.rowcount > 0

    # ---------- Purchase orders ----------
    def insert_purchase_order(
        self,
        order_number: str,
        supplier_id: int,
        order_date: str,
        expected_date: Optional[str],
        total_amount: int,
        notes: Optional[str],
        created_by: Optional[int],
        created_at: str,
    ) -> int:
        cur = self._cur().execute(
            """
            INSERT INTO purchase_orders (
                order_number, supplier_id, order_date, expected_date, status,
                total_amount, paid_amount, notes, created_by, created_at
            ) VALUES (?, ?, ?, ?, 'pending', ?, 0, ?, ?, ?)
            """,
            (order_number, int(supplier_id), order_date, expected_date, int(total_amount), notes, created_by, created_at),
        )
        return int(cur.lastrowid)

    def insert_purchase_order_item(self, order_id: int, medicine_id: int, quantity_ordered: int, unit_price: int) -> int:
        cur = self._cur().execute(
            """
            INSERT INTO purchase_order_items (purchase_order_id, medicine_id, quantity_ordered, quantity_received, unit_price)
            VALUES (?, ?, ?, 0, ?)
            """,
            (int(order_id), int(medicine_id), int(quantity_ordered), int(unit_price)),
        )
        return int(cur.lastrowid)

    def get_purchase_order(self, order_id: int) -> Optional[PurchaseOrder]:
        r = self._one(ORDER_SELECT + " WHERE po.id=?", (int(order_id),))
        return order_from_row(r) if r else None

    def purchase_order_items(self, order_id: int) -> list[PurchaseOrderItem]:
        rows = self._cur().execute(
            ORDER_ITEM_SELECT + " WHERE poi.purchase_order_id=? ORDER BY poi.id", (int(order_id),)
        ).fetchall()
        return [order_item_from_row(r) for r in rows]

    def set_item_received(self, item_id: int, quantity_received: int) -> None:
        self._cur().execute(
            "UPDATE purchase_order_items SET quantity_received=? WHERE id=?",
            (int(quantity_received), int(item_id)),
        )

    def mark_order_received(self, order_id: int, status: str, received_date: str) -> bool:
        cur = self._cur().execute(
            """
            UPDATE purchase_orders SET status=?, received_date=?
            WHERE id=? AND received_date IS NULL AND status != 'cancelled'
            """,
            (status, received_date, int(order_id)),
        )
        return cur.rowcount > 0

    def update_order_payment(self, order_id: int, paid_amount: int, status: str) -> None:
        self._cur().execute(
            "UPDATE purchase_orders SET paid_amount=?, status=? WHERE id=?",
            (int(paid_amount), status, int(order_id)),
        )

    def set_order_status(self, order_id: int, status: str) -> None:
        self._cur().execute("UPDATE purchase_orders SET status=? WHERE id=?", (status, int(order_id)))
