from __future__ import annotations

import logging
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from pms.config import get_bootstrap_admin_username
from pms.domain.models import (
    BillListRow,
    Bill,
    BillItem,
    Category,
    DailySummary,
    Medicine,
    PaymentMode,
    Prescription,
    PurchaseOrder,
    PurchaseOrderItem,
    StockTransaction,
    Supplier,
    User,
)
from pms.domain.money import Paisa
from pms.repositories.rows import (
    BILL_ITEM_SELECT,
    BILL_SELECT,
    MEDICINE_SELECT,
    ORDER_ITEM_SELECT,
    ORDER_SELECT,
    PRESCRIPTION_SELECT,
    SUPPLIER_SELECT,
    TRANSACTION_SELECT,
    bill_from_row,
    bill_item_from_row,
    category_from_row,
    medicine_from_row,
    order_from_row,
    order_item_from_row,
    prescription_from_row,
    supplier_from_row,
    transaction_from_row,
    user_from_row,
)

log = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    "Tablet", "Capsule", "Syrup", "Injection", "Cream",
    "Ointment", "Drop", "Inhaler", "Powder", "Other",
)

DEFAULT_SETTINGS = (
    ("pharmacy_name", "Pharmacy"),
    ("pharmacy_address", ""),
    ("pharmacy_phone", ""),
    ("gst_percent", "0"),
    ("currency_symbol", "Rs."),
)

MEDICINE_COLUMNS = (
    "name", "category_id", "batch_no", "barcode", "mfg_date", "expiry_date", "received_date",
    "firm_name", "unit_price_buy", "unit_price_sell", "min_stock_level", "shelf_location", "notes",
)
SUPPLIER_COLUMNS = ("name", "contact_person", "phone", "email", "address", "ntn_cnic", "notes")
PRESCRIPTION_COLUMNS = (
    "patient_name", "patient_age", "doctor_name", "prescription_date",
    "medicines_prescribed", "image_path", "notes", "bill_id",
)

SIGNED_QUANTITY_SQL = "CASE WHEN t.transaction_type IN ('in','return') THEN t.quantity ELSE -t.quantity END"


def _now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


def _page(limit: Optional[int], offset: int) -> tuple[str, tuple]:
    if limit is None:
        return "", ()
    return " LIMIT ? OFFSET ?", (int(limit), max(0, int(offset)))


def _set_clause(fields: dict, allowed: Iterable[str]) -> tuple[str, list]:
    allowed = set(allowed)
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValueError(f"Unknown columns: {', '.join(unknown)}")
    keys = sorted(fields)
    return ", ".join(f"{k}=?" for k in keys), [fields[k] for k in keys]


class SqliteRepository:
    def __init__(self, db_path: Path | str, busy_timeout: float = 5.0, bootstrap_admin: str | None = None):
        self.db_path = str(db_path)
        self.busy_timeout = float(busy_timeout)
        self.bootstrap_admin = bootstrap_admin or get_bootstrap_admin_username()

    def _conn(self, *, autocommit: bool = False) -> sqlite3.Connection:
        if autocommit:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        else:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()
        self._ensure_bootstrap_admin()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_ledger),
                (2, self._migration_v2_purchasing),
                (3, self._migration_v3_prescriptions_and_catalog),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
                log.info("migration_applied version=%s db=%s", version, self.db_path)
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            log.exception("migration_failed db=%s", self.db_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_ledger(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE,
                full_name TEXT NOT NULL DEFAULT '',
                role TEXT NOT NULL CHECK(role IN ('admin','manager','pharmacist','dataentry')),
                is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0,1)),
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS medicine_categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                description TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS medicines (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                category_id INTEGER REFERENCES medicine_categories(id),
                batch_no TEXT,
                mfg_date TEXT,
                expiry_date TEXT,
                received_date TEXT,
                firm_name TEXT,
                unit_price_buy INTEGER NOT NULL DEFAULT 0 CHECK(unit_price_buy >= 0),
                unit_price_sell INTEGER NOT NULL DEFAULT 0 CHECK(unit_price_sell >= 0),
                min_stock_level INTEGER NOT NULL DEFAULT 0 CHECK(min_stock_level >= 0),
                notes TEXT,
                is_deleted INTEGER NOT NULL DEFAULT 0 CHECK(is_deleted IN (0,1)),
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                medicine_id INTEGER NOT NULL UNIQUE REFERENCES medicines(id),
                current_quantity INTEGER NOT NULL DEFAULT 0 CHECK(current_quantity >= 0),
                last_updated TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock_transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                medicine_id INTEGER NOT NULL REFERENCES medicines(id),
                transaction_type TEXT NOT NULL CHECK(transaction_type IN ('in','out','adjust','return')),
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                reason TEXT,
                reference_id INTEGER,
                reference_type TEXT,
                performed_by INTEGER REFERENCES users(id),
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS bills (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bill_number TEXT NOT NULL UNIQUE,
                customer_name TEXT,
                customer_phone TEXT,
                subtotal INTEGER NOT NULL CHECK(subtotal >= 0),
                discount_percent INTEGER NOT NULL DEFAULT 0 CHECK(discount_percent BETWEEN 0 AND 100),
                tax_percent INTEGER NOT NULL DEFAULT 0 CHECK(tax_percent BETWEEN 0 AND 100),
                total_amount INTEGER NOT NULL CHECK(total_amount >= 0),
                payment_mode TEXT NOT NULL CHECK(payment_mode IN ('cash','card','credit')),
                amount_received INTEGER NOT NULL DEFAULT 0,
                change_due INTEGER NOT NULL DEFAULT 0 CHECK(change_due >= 0),
                notes TEXT,
                is_voided INTEGER NOT NULL DEFAULT 0 CHECK(is_voided IN (0,1)),
                voided_reason TEXT,
                voided_by INTEGER REFERENCES users(id),
                created_by INTEGER REFERENCES users(id),
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS bill_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bill_id INTEGER NOT NULL REFERENCES bills(id),
                medicine_id INTEGER NOT NULL REFERENCES medicines(id),
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_price INTEGER NOT NULL CHECK(unit_price >= 0),
                total INTEGER NOT NULL CHECK(total >= 0)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
            """
        )

        cur.executemany(
            "INSERT OR IGNORE INTO medicine_categories (name) VALUES (?)",
            [(name,) for name in DEFAULT_CATEGORIES],
        )
        cur.executemany("INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)", DEFAULT_SETTINGS)

    def _migration_v2_purchasing(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS suppliers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                contact_person TEXT,
                phone TEXT,
                email TEXT,
                address TEXT,
                ntn_cnic TEXT,
                notes TEXT,
                is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0,1)),
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchase_orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_number TEXT NOT NULL UNIQUE,
                supplier_id INTEGER REFERENCES suppliers(id),
                order_date TEXT NOT NULL,
                expected_date TEXT,
                received_date TEXT,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK(status IN ('pending','partial','received','cancelled')),
                total_amount INTEGER NOT NULL DEFAULT 0 CHECK(total_amount >= 0),
                paid_amount INTEGER NOT NULL DEFAULT 0 CHECK(paid_amount >= 0),
                notes TEXT,
                created_by INTEGER REFERENCES users(id),
                created_at TEXT NOT NULL,
                CHECK(paid_amount <= total_amount)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchase_order_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                purchase_order_id INTEGER NOT NULL REFERENCES purchase_orders(id),
                medicine_id INTEGER NOT NULL REFERENCES medicines(id),
                quantity_ordered INTEGER NOT NULL CHECK(quantity_ordered >= 0),
                quantity_received INTEGER NOT NULL DEFAULT 0 CHECK(quantity_received >= 0),
                unit_price INTEGER NOT NULL DEFAULT 0 CHECK(unit_price >= 0)
            )
            """
        )

    def _migration_v3_prescriptions_and_catalog(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS prescriptions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_name TEXT NOT NULL,
                patient_age INTEGER,
                doctor_name TEXT,
                prescription_date TEXT,
                medicines_prescribed TEXT,
                image_path TEXT,
                notes TEXT,
                bill_id INTEGER REFERENCES bills(id),
                is_deleted INTEGER NOT NULL DEFAULT 0 CHECK(is_deleted IN (0,1)),
                created_at TEXT NOT NULL
            )
            """
        )

        self._add_column_if_missing(cur, "medicines", "barcode", "TEXT")
        self._add_column_if_missing(cur, "medicines", "shelf_location", "TEXT")

        cur.execute("CREATE INDEX IF NOT EXISTS idx_medicines_name ON medicines(name)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_medicines_batch ON medicines(batch_no)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_medicines_barcode ON medicines(barcode)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_txn_medicine ON stock_transactions(medicine_id, created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_bills_created ON bills(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_bill_items_bill ON bill_items(bill_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_po_items_order ON purchase_order_items(purchase_order_id)")

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def _ensure_bootstrap_admin(self) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM users WHERE is_active=1")
        active_users = int(cur.fetchone()[0])
        if active_users > 0:
            conn.close()
            return

        cur.execute(
            """
            INSERT INTO users (username, full_name, role, is_active, created_at)
            VALUES (?, 'Administrator', 'admin', 1, ?)
            ON CONFLICT(username) DO UPDATE SET role='admin', is_active=1
            """,
            (self.bootstrap_admin, _now_iso()),
        )
        conn.commit()
        conn.close()
        log.warning("bootstrap_admin_ready username=%s", self.bootstrap_admin)

    # ---------- Query helpers ----------
    def _fetchall(self, sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
        conn = self._conn()
        try:
            return conn.execute(sql, tuple(params)).fetchall()
        finally:
            conn.close()

    def _fetchone(self, sql: str, params: Iterable = ()) -> Optional[sqlite3.Row]:
        conn = self._conn()
        try:
            return conn.execute(sql, tuple(params)).fetchone()
        finally:
            conn.close()

    def _execute(self, sql: str, params: Iterable = ()) -> tuple[int, int]:
        """Run one write statement in its own transaction; returns (lastrowid, rowcount)."""
        conn = self._conn()
        try:
            cur = conn.execute(sql, tuple(params))
            conn.commit()
            return int(cur.lastrowid or 0), int(cur.rowcount)
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def integrity_check(self) -> str:
        row = self._fetchone("PRAGMA integrity_check")
        return str(row[0]) if row else "unknown"

    # ---------- Users ----------
    def list_users(self, include_inactive: bool = False) -> list[User]:
        where = "" if include_inactive else "WHERE is_active=1"
        rows = self._fetchall(f"SELECT id, username, full_name, role, is_active FROM users {where} ORDER BY username")
        return [user_from_row(r) for r in rows]

    def get_user(self, user_id: int) -> Optional[User]:
        r = self._fetchone("SELECT id, username, full_name, role, is_active FROM users WHERE id=?", (int(user_id),))
        return user_from_row(r) if r else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        r = self._fetchone("SELECT id, username, full_name, role, is_active FROM users WHERE username=?", (username,))
        return user_from_row(r) if r else None

    def create_user(self, username: str, full_name: str, role: str) -> int:
        uid, _ = self._execute(
            "INSERT INTO users (username, full_name, role, is_active, created_at) VALUES (?, ?, ?, 1, ?)",
            (username, full_name, role, _now_iso()),
        )
        return uid

    def set_user_active(self, user_id: int, active: bool) -> bool:
        _, changed = self._execute("UPDATE users SET is_active=? WHERE id=?", (1 if active else 0, int(user_id)))
        return changed > 0

    def count_active_admins(self) -> int:
        r = self._fetchone("SELECT COUNT(*) FROM users WHERE is_active=1 AND role='admin'")
        return int(r[0])

    # ---------- Categories ----------
    def list_categories(self) -> list[Category]:
        rows = self._fetchall("SELECT id, name, description FROM medicine_categories ORDER BY name")
        return [category_from_row(r) for r in rows]

    def get_category(self, category_id: int) -> Optional[Category]:
        r = self._fetchone("SELECT id, name, description FROM medicine_categories WHERE id=?", (int(category_id),))
        return category_from_row(r) if r else None

    def get_category_by_name(self, name: str) -> Optional[Category]:
        r = self._fetchone(
            "SELECT id, name, description FROM medicine_categories WHERE lower(name)=lower(?)",
            (name,),
        )
        return category_from_row(r) if r else None

    def create_category(self, name: str, description: Optional[str] = None) -> int:
        cid, _ = self._execute(
            "INSERT INTO medicine_categories (name, description) VALUES (?, ?)",
            (name, description),
        )
        return cid

    # ---------- Medicines ----------
    def get_medicine(self, medicine_id: int, include_deleted: bool = False) -> Optional[Medicine]:
        sql = MEDICINE_SELECT + " WHERE m.id=?"
        if not include_deleted:
            sql += " AND m.is_deleted=0"
        r = self._fetchone(sql, (int(medicine_id),))
        return medicine_from_row(r) if r else None

    def find_medicine(self, name: str, batch_no: Optional[str]) -> Optional[Medicine]:
        r = self._fetchone(
            MEDICINE_SELECT + " WHERE m.is_deleted=0 AND lower(m.name)=lower(?) AND COALESCE(m.batch_no,'')=?",
            (name, batch_no or ""),
        )
        return medicine_from_row(r) if r else None

    def list_active_medicines(self) -> list[Medicine]:
        rows = self._fetchall(MEDICINE_SELECT + " WHERE m.is_deleted=0 ORDER BY m.name, m.id")
        return [medicine_from_row(r) for r in rows]

    def list_medicines(
        self,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        stock_status: Optional[str] = None,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> tuple[list[Medicine], int]:
        conditions = ["m.is_deleted=0"]
        params: list = []
        if search:
            like = f"%{search}%"
            conditions.append("(m.name LIKE ? OR m.batch_no LIKE ? OR m.barcode LIKE ? OR m.firm_name LIKE ?)")
            params.extend([like, like, like, like])
        if category_id:
            conditions.append("m.category_id=?")
            params.append(int(category_id))
        if stock_status == "low":
            conditions.append("COALESCE(s.current_quantity,0) < m.min_stock_level")
        elif stock_status == "out":
            conditions.append("COALESCE(s.current_quantity,0) = 0")
        where = " WHERE " + " AND ".join(conditions)

        total_sql = (
            "SELECT COUNT(*) FROM medicines m LEFT JOIN stock s ON s.medicine_id = m.id" + where
        )
        total = int(self._fetchone(total_sql, params)[0])
        page_sql, page_params = _page(limit, offset)
        rows = self._fetchall(MEDICINE_SELECT + where + " ORDER BY m.name, m.id" + page_sql, [*params, *page_params])
        return [medicine_from_row(r) for r in rows], total

    def search_medicines(self, term: str, limit: int = 10) -> list[Medicine]:
        like = f"%{term}%"
        prefix = f"{term}%"
        rows = self._fetchall(
            MEDICINE_SELECT
            + """
            WHERE m.is_deleted=0
              AND (m.batch_no = ? OR m.barcode = ? OR m.name LIKE ? OR m.batch_no LIKE ?)
            ORDER BY CASE
                       WHEN m.batch_no = ? OR m.barcode = ? THEN 0
                       WHEN m.name LIKE ? THEN 1
                       ELSE 2
                     END,
                     m.name
            LIMIT ?
            """,
            (term, term, like, like, term, term, prefix, int(limit)),
        )
        return [medicine_from_row(r) for r in rows]

    def update_medicine(self, medicine_id: int, fields: dict) -> bool:
        if not fields:
            return self.get_medicine(medicine_id) is not None
        clause, values = _set_clause(fields, MEDICINE_COLUMNS)
        _, changed = self._execute(
            f"UPDATE medicines SET {clause}, updated_at=? WHERE id=? AND is_deleted=0",
            [*values, _now_iso(), int(medicine_id)],
        )
        return changed > 0

    def soft_delete_medicine(self, medicine_id: int) -> bool:
        _, changed = self._execute(
            "UPDATE medicines SET is_deleted=1, updated_at=? WHERE id=? AND is_deleted=0",
            (_now_iso(), int(medicine_id)),
        )
        return changed > 0

    # ---------- Stock ledger ----------
    def list_transactions(
        self,
        medicine_id: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        txn_type: Optional[str] = None,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> tuple[list[StockTransaction], int]:
        conditions: list[str] = []
        params: list = []
        if medicine_id:
            conditions.append("t.medicine_id=?")
            params.append(int(medicine_id))
        if start_date:
            conditions.append("substr(t.created_at,1,10) >= ?")
            params.append(start_date)
        if end_date:
            conditions.append("substr(t.created_at,1,10) <= ?")
            params.append(end_date)
        if txn_type:
            conditions.append("t.transaction_type=?")
            params.append(txn_type)
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""

        total = int(self._fetchone("SELECT COUNT(*) FROM stock_transactions t" + where, params)[0])
        page_sql, page_params = _page(limit, offset)
        rows = self._fetchall(
            TRANSACTION_SELECT + where + " ORDER BY t.created_at DESC, t.id DESC" + page_sql,
            [*params, *page_params],
        )
        return [transaction_from_row(r) for r in rows], total

    def ledger_balance(self, medicine_id: int) -> int:
        r = self._fetchone(
            f"SELECT COALESCE(SUM({SIGNED_QUANTITY_SQL}), 0) FROM stock_transactions t WHERE t.medicine_id=?",
            (int(medicine_id),),
        )
        return int(r[0])

    def ledger_mismatches(self) -> list[tuple[int, str, int, int]]:
        """(medicine_id, name, stock_quantity, ledger_quantity) for every balance that disagrees with its ledger."""
        rows = self._fetchall(
            f"""
            SELECT m.id, m.name, COALESCE(s.current_quantity, 0) AS stock_qty,
                   COALESCE((SELECT SUM({SIGNED_QUANTITY_SQL}) FROM stock_transactions t
                             WHERE t.medicine_id = m.id), 0) AS ledger_qty
            FROM medicines m
            LEFT JOIN stock s ON s.medicine_id = m.id
            ORDER BY m.id
            """
        )
        return [
            (int(r["id"]), str(r["name"]), int(r["stock_qty"]), int(r["ledger_qty"]))
            for r in rows
            if int(r["stock_qty"]) != int(r["ledger_qty"])
        ]

    def stock_movements_for_day(self, day: str, category_id: Optional[int] = None) -> list[tuple[Medicine, int, int, int]]:
        """(medicine, opening, received, issued) per active medicine for one calendar day."""
        cat_sql = " AND m.category_id=?" if category_id else ""
        params: list = [day, day, day]
        if category_id:
            params.append(int(category_id))
        totals = self._fetchall(
            f"""
            SELECT m.id,
                   COALESCE(SUM(CASE WHEN substr(t.created_at,1,10) < ? THEN {SIGNED_QUANTITY_SQL} ELSE 0 END), 0) AS opening,
                   COALESCE(SUM(CASE WHEN substr(t.created_at,1,10) = ?
                                      AND t.transaction_type IN ('in','return') THEN t.quantity ELSE 0 END), 0) AS received,
                   COALESCE(SUM(CASE WHEN substr(t.created_at,1,10) = ?
                                      AND t.transaction_type IN ('out','adjust') THEN t.quantity ELSE 0 END), 0) AS issued
            FROM medicines m
            LEFT JOIN stock_transactions t ON t.medicine_id = m.id
            WHERE m.is_deleted=0{cat_sql}
            GROUP BY m.id
            """,
            params,
        )
        by_id = {int(r["id"]): (int(r["opening"]), int(r["received"]), int(r["issued"])) for r in totals}
        return [(m, *by_id[m.id]) for m in self.list_active_medicines() if m.id in by_id]

    # ---------- Bills ----------
    def get_bill(self, bill_id: int) -> Optional[Bill]:
        r = self._fetchone(BILL_SELECT + " WHERE id=?", (int(bill_id),))
        return bill_from_row(r) if r else None

    def bill_items(self, bill_id: int) -> list[BillItem]:
        rows = self._fetchall(BILL_ITEM_SELECT + " WHERE bi.bill_id=? ORDER BY bi.id", (int(bill_id),))
        return [bill_item_from_row(r) for r in rows]

    def list_bills(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        search: Optional[str] = None,
        payment_mode: Optional[str] = None,
        include_voided: bool = True,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> tuple[list[BillListRow], int]:
        conditions: list[str] = []
        params: list = []
        if start_date:
            conditions.append("substr(b.created_at,1,10) >= ?")
            params.append(start_date)
        if end_date:
            conditions.append("substr(b.created_at,1,10) <= ?")
            params.append(end_date)
        if search:
            like = f"%{search}%"
            conditions.append("(b.bill_number LIKE ? OR b.customer_name LIKE ? OR b.customer_phone LIKE ?)")
            params.extend([like, like, like])
        if payment_mode:
            conditions.append("b.payment_mode=?")
            params.append(payment_mode)
        if not include_voided:
            conditions.append("b.is_voided=0")
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""

        total = int(self._fetchone("SELECT COUNT(*) FROM bills b" + where, params)[0])
        page_sql, page_params = _page(limit, offset)
        rows = self._fetchall(
            """
            SELECT b.id, b.bill_number, b.created_at, b.customer_name, b.customer_phone,
                   (SELECT COUNT(*) FROM bill_items bi WHERE bi.bill_id = b.id) AS items_count,
                   b.subtotal, b.total_amount, b.payment_mode, b.is_voided
            FROM bills b
            """
            + where
            + " ORDER BY b.created_at DESC, b.id DESC"
            + page_sql,
            [*params, *page_params],
        )
        return [
            BillListRow(
                id=int(r["id"]),
                bill_number=str(r["bill_number"]),
                created_at=str(r["created_at"]),
                customer_name=r["customer_name"],
                customer_phone=r["customer_phone"],
                items_count=int(r["items_count"]),
                subtotal=Paisa(int(r["subtotal"])),
                total_amount=Paisa(int(r["total_amount"])),
                payment_mode=PaymentMode(r["payment_mode"]),
                is_voided=bool(r["is_voided"]),
            )
            for r in rows
        ], total

    def daily_summary(self, day: str) -> DailySummary:
        r = self._fetchone(
            """
            SELECT COALESCE(SUM(total_amount), 0), COUNT(*)
            FROM bills
            WHERE is_voided=0 AND substr(created_at,1,10)=?
            """,
            (day,),
        )
        return DailySummary(date=day, total_sales=Paisa(int(r[0])), bill_count=int(r[1]))

    def top_selling_medicine(self, start_date: str, end_date: str) -> Optional[tuple[str, int]]:
        r = self._fetchone(
            """
            SELECT m.name, SUM(bi.quantity) AS qty
            FROM bill_items bi
            JOIN bills b ON b.id = bi.bill_id
            JOIN medicines m ON m.id = bi.medicine_id
            WHERE b.is_voided=0 AND substr(b.created_at,1,10) BETWEEN ? AND ?
            GROUP BY bi.medicine_id
            ORDER BY qty DESC, m.name
            LIMIT 1
            """,
            (start_date, end_date),
        )
        return (str(r["name"]), int(r["qty"])) if r else None

    # ---------- Suppliers ----------
    def create_supplier(self, fields: dict) -> int:
        _set_clause(fields, SUPPLIER_COLUMNS)
        keys = sorted(fields)
        sid, _ = self._execute(
            f"INSERT INTO suppliers ({', '.join(keys)}, is_active, created_at) VALUES ({', '.join('?' for _ in keys)}, 1, ?)",
            [*(fields[k] for k in keys), _now_iso()],
        )
        return sid

    def update_supplier(self, supplier_id: int, fields: dict) -> bool:
        if not fields:
            return self.get_supplier(supplier_id) is not None
        clause, values = _set_clause(fields, SUPPLIER_COLUMNS)
        _, changed = self._execute(f"UPDATE suppliers SET {clause} WHERE id=?", [*values, int(supplier_id)])
        return changed > 0

    def set_supplier_active(self, supplier_id: int, active: bool) -> bool:
        _, changed = self._execute("UPDATE suppliers SET is_active=? WHERE id=?", (1 if active else 0, int(supplier_id)))
        return changed > 0

    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        r = self._fetchone(SUPPLIER_SELECT + " WHERE s.id=?", (int(supplier_id),))
        return supplier_from_row(r) if r else None

    def list_suppliers(self, search: Optional[str] = None, include_inactive: bool = False) -> list[Supplier]:
        conditions: list[str] = []
        params: list = []
        if not include_inactive:
            conditions.append("s.is_active=1")
        if search:
            like = f"%{search}%"
            conditions.append("(s.name LIKE ? OR s.contact_person LIKE ? OR s.phone LIKE ?)")
            params.extend([like, like, like])
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        rows = self._fetchall(SUPPLIER_SELECT + where + " ORDER BY s.name", params)
        return [supplier_from_row(r) for r in rows]

    # ---------- Purchase orders ----------
    def get_purchase_order(self, order_id: int) -> Optional[PurchaseOrder]:
        r = self._fetchone(ORDER_SELECT + " WHERE po.id=?", (int(order_id),))
        return order_from_row(r) if r else None

    def purchase_order_items(self, order_id: int) -> list[PurchaseOrderItem]:
        rows = self._fetchall(ORDER_ITEM_SELECT + " WHERE poi.purchase_order_id=? ORDER BY poi.id", (int(order_id),))
        return [order_item_from_row(r) for r in rows]

    def list_purchase_orders(
        self,
        supplier_id: Optional[int] = None,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> tuple[list[tuple[PurchaseOrder, int]], int]:
        """Orders newest first, each paired with its line count."""
        conditions: list[str] = []
        params: list = []
        if supplier_id:
            conditions.append("po.supplier_id=?")
            params.append(int(supplier_id))
        if status:
            conditions.append("po.status=?")
            params.append(status)
        if start_date:
            conditions.append("substr(po.order_date,1,10) >= ?")
            params.append(start_date)
        if end_date:
            conditions.append("substr(po.order_date,1,10) <= ?")
            params.append(end_date)
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""

        total = int(self._fetchone("SELECT COUNT(*) FROM purchase_orders po" + where, params)[0])
        page_sql, page_params = _page(limit, offset)
        rows = self._fetchall(
            ORDER_SELECT
            + where
            + " ORDER BY po.order_date DESC, po.id DESC"
            + page_sql,
            [*params, *page_params],
        )
        return [(order_from_row(r), int(r["items_count"])) for r in rows], total

    # ---------- Prescriptions ----------
    def create_prescription(self, fields: dict) -> int:
        _set_clause(fields, PRESCRIPTION_COLUMNS)
        keys = sorted(fields)
        pid, _ = self._execute(
            f"INSERT INTO prescriptions ({', '.join(keys)}, created_at) VALUES ({', '.join('?' for _ in keys)}, ?)",
            [*(fields[k] for k in keys), _now_iso()],
        )
        return pid

    def update_prescription(self, prescription_id: int, fields: dict) -> bool:
        if not fields:
            return self.get_prescription(prescription_id) is not None
        clause, values = _set_clause(fields, PRESCRIPTION_COLUMNS)
        _, changed = self._execute(
            f"UPDATE prescriptions SET {clause} WHERE id=? AND is_deleted=0",
            [*values, int(prescription_id)],
        )
        return changed > 0

    def soft_delete_prescription(self, prescription_id: int) -> bool:
        _, changed = self._execute(
            "UPDATE prescriptions SET is_deleted=1 WHERE id=? AND is_deleted=0",
            (int(prescription_id),),
        )
        return changed > 0

    def get_prescription(self, prescription_id: int) -> Optional[Prescription]:
        r = self._fetchone(PRESCRIPTION_SELECT + " WHERE p.id=? AND p.is_deleted=0", (int(prescription_id),))
        return prescription_from_row(r) if r else None

    def list_prescriptions(
        self,
        search: Optional[str] = None,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> tuple[list[Prescription], int]:
        conditions = ["p.is_deleted=0"]
        params: list = []
        if search:
            like = f"%{search}%"
            conditions.append("(p.patient_name LIKE ? OR p.doctor_name LIKE ?)")
            params.extend([like, like])
        where = " WHERE " + " AND ".join(conditions)
        total = int(self._fetchone("SELECT COUNT(*) FROM prescriptions p" + where, params)[0])
        page_sql, page_params = _page(limit, offset)
        rows = self._fetchall(
            PRESCRIPTION_SELECT + where + " ORDER BY p.created_at DESC, p.id DESC" + page_sql,
            [*params, *page_params],
        )
        return [prescription_from_row(r) for r in rows], total

    # ---------- Settings ----------
    def get_setting(self, key: str) -> Optional[str]:
        r = self._fetchone("SELECT value FROM settings WHERE key=?", (key,))
        return str(r[0]) if r and r[0] is not None else None

    def all_settings(self) -> dict[str, str]:
        rows = self._fetchall("SELECT key, value FROM settings ORDER BY key")
        return {str(r["key"]): ("" if r["value"] is None else str(r["value"])) for r in rows}

    def set_settings(self, values: dict[str, str]) -> None:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.executemany(
                """
                INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                [(str(k), str(v)) for k, v in values.items()],
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
