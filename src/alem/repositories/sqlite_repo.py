from __future__ import annotations

import logging
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from alem.domain.errors import StorageError, ValidationError
from alem.domain.models import (
    Customer,
    Loan,
    LoanDirection,
    LoanStatus,
    Payment,
    Product,
    Purchase,
    Sale,
    SaleItem,
    SaleView,
)
from alem.repositories.rows import (
    PRODUCT_COLUMNS,
    SALE_COLUMNS,
    build_sale_view,
    customer_from_row,
    fetch_product,
    fetch_sale,
    fetch_sale_items,
    loan_from_row,
    payment_from_row,
    product_from_row,
    purchase_from_row,
    sale_from_row,
    ts,
)

log = logging.getLogger(__name__)


def _like(query: str) -> str:
    escaped = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SqliteRepository:
    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)
        self._open = False

    # ---------- Lifecycle ----------
    def open(self) -> "SqliteRepository":
        self.run_migrations()
        self._open = True
        return self

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "SqliteRepository":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _connect(self, *, require_open: bool = True) -> Iterator[sqlite3.Connection]:
        if require_open and not self._open:
            raise StorageError("Store is closed.")
        try:
            conn = sqlite3.connect(self.db_path, isolation_level=None)
        except sqlite3.Error as e:
            log.exception("storage_unavailable db=%s", self.db_path)
            raise StorageError(f"Cannot open database: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON;")
            yield conn
        except sqlite3.Error as e:
            log.exception("storage_failure db=%s", self.db_path)
            raise StorageError(f"Storage failure: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """All-or-nothing write scope: COMMIT on success, ROLLBACK on any exception."""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn.cursor()
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # ---------- Migrations ----------
    def run_migrations(self) -> None:
        backup_path = self._create_pre_migration_backup()
        try:
            with self._connect(require_open=False) as conn:
                cur = conn.cursor()
                cur.execute("BEGIN")
                try:
                    cur.execute(
                        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
                    )
                    cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
                    current_version = int(cur.fetchone()[0])

                    migrations = [
                        (1, self._migration_v1_sales_core),
                        (2, self._migration_v2_purchases_customers_loans),
                        (3, self._migration_v3_payments),
                    ]

                    for version, migration in migrations:
                        if version <= current_version:
                            continue
                        migration(cur)
                        cur.execute(
                            "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                            (version,),
                        )
                except BaseException:
                    cur.execute("ROLLBACK")
                    raise
                cur.execute("COMMIT")
        except StorageError as exc:
            self._restore_pre_migration_backup(backup_path)
            raise StorageError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            if backup_path is not None:
                backup_path.unlink(missing_ok=True)

    def schema_version(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()
        return int(row[0])

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

    def _migration_v1_sales_core(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE COLLATE NOCASE,
            price_per_dozen_cents INTEGER NOT NULL CHECK(price_per_dozen_cents > 0),
            cost_per_dozen_cents INTEGER CHECK(cost_per_dozen_cents IS NULL OR cost_per_dozen_cents >= 0),
            stock_pieces INTEGER NOT NULL DEFAULT 0 CHECK(stock_pieces >= 0),
            low_stock_threshold INTEGER NOT NULL DEFAULT 12 CHECK(low_stock_threshold >= 0),
            pack_size INTEGER NOT NULL DEFAULT 12 CHECK(pack_size > 0),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_name TEXT,
            total_cents INTEGER NOT NULL CHECK(total_cents >= 0),
            paid_cents INTEGER NOT NULL CHECK(paid_cents >= 0),
            is_credit INTEGER NOT NULL CHECK(is_credit IN (0,1)),
            created_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sale_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            dozens REAL NOT NULL CHECK(dozens > 0),
            pieces INTEGER NOT NULL CHECK(pieces > 0),
            line_total_cents INTEGER NOT NULL CHECK(line_total_cents >= 0),
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_created_at ON sales(created_at)")

    def _migration_v2_purchases_customers_loans(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS purchases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_id INTEGER NOT NULL,
            pieces INTEGER NOT NULL CHECK(pieces > 0),
            cost_per_dozen_cents INTEGER CHECK(cost_per_dozen_cents IS NULL OR cost_per_dozen_cents >= 0),
            supplier TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            phone TEXT,
            created_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS loans (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            direction TEXT NOT NULL CHECK(direction IN ('lent','borrowed')),
            counterparty TEXT NOT NULL,
            phone TEXT NOT NULL,
            amount_cents INTEGER NOT NULL CHECK(amount_cents > 0),
            status TEXT NOT NULL DEFAULT 'unpaid' CHECK(status IN ('unpaid','paid')),
            created_at TEXT NOT NULL,
            paid_at TEXT
        )
        """
        )

    def _migration_v3_payments(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS payments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id INTEGER NOT NULL,
            amount_cents INTEGER NOT NULL CHECK(amount_cents > 0),
            method TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE
        )
        """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_payments_sale ON payments(sale_id)")

    # ---------- Products ----------
    def add_product(
        self,
        name: str,
        price_per_dozen_cents: int,
        cost_per_dozen_cents: Optional[int],
        stock_pieces: int,
        low_stock_threshold: int,
        pack_size: int,
        now: datetime,
    ) -> int:
        with self._connect() as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO products (
                        name, price_per_dozen_cents, cost_per_dozen_cents, stock_pieces,
                        low_stock_threshold, pack_size, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (name, price_per_dozen_cents, cost_per_dozen_cents, stock_pieces,
                     low_stock_threshold, pack_size, ts(now), ts(now)),
                )
            except sqlite3.IntegrityError as e:
                raise ValidationError(f"Product could not be saved: {e}") from e
            return int(cur.lastrowid)

    def update_product(
        self,
        product_id: int,
        name: str,
        price_per_dozen_cents: int,
        cost_per_dozen_cents: Optional[int],
        low_stock_threshold: int,
        pack_size: int,
        now: datetime,
    ) -> bool:
        with self._connect() as conn:
            try:
                cur = conn.execute(
                    """
                    UPDATE products
                    SET name=?, price_per_dozen_cents=?, cost_per_dozen_cents=?,
                        low_stock_threshold=?, pack_size=?, updated_at=?
                    WHERE id=?
                    """,
                    (name, price_per_dozen_cents, cost_per_dozen_cents,
                     low_stock_threshold, pack_size, ts(now), int(product_id)),
                )
            except sqlite3.IntegrityError as e:
                raise ValidationError(f"Product could not be saved: {e}") from e
            return cur.rowcount > 0

    def set_product_stock(self, product_id: int, stock_pieces: int, now: datetime) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE products SET stock_pieces=?, updated_at=? WHERE id=?",
                (int(stock_pieces), ts(now), int(product_id)),
            )
            return cur.rowcount > 0

    def delete_product(self, product_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM products WHERE id=?", (int(product_id),))
            return cur.rowcount > 0

    def get_product(self, product_id: int) -> Optional[Product]:
        with self._connect() as conn:
            return fetch_product(conn, product_id)

    def find_product_by_name(self, name: str) -> Optional[Product]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {PRODUCT_COLUMNS} FROM products WHERE name = ? COLLATE NOCASE",
                (name.strip(),),
            ).fetchone()
        return product_from_row(row) if row else None

    def list_products(self, query: Optional[str] = None) -> list[Product]:
        with self._connect() as conn:
            if query and query.strip():
                rows = conn.execute(
                    f"""
                    SELECT {PRODUCT_COLUMNS}
                    FROM products
                    WHERE LOWER(name) LIKE ? ESCAPE '\\'
                    ORDER BY id DESC
                    """,
                    (_like(query),),
                ).fetchall()
            else:
                rows = conn.execute(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY id DESC").fetchall()
        return [product_from_row(r) for r in rows]

    def product_reference_count(self, product_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT (SELECT COUNT(*) FROM sale_items WHERE product_id = ?)
                     + (SELECT COUNT(*) FROM purchases WHERE product_id = ?)
                """,
                (int(product_id), int(product_id)),
            ).fetchone()
        return int(row[0])

    def list_purchases(self, product_id: Optional[int] = None) -> list[Purchase]:
        sql = "SELECT id, product_id, pieces, cost_per_dozen_cents, supplier, created_at FROM purchases"
        params: tuple = ()
        if product_id is not None:
            sql += " WHERE product_id = ?"
            params = (int(product_id),)
        sql += " ORDER BY id DESC"
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [purchase_from_row(r) for r in rows]

    # ---------- Sales ----------
    def get_sale(self, sale_id: int) -> Optional[Sale]:
        with self._connect() as conn:
            return fetch_sale(conn, sale_id)

    def sale_items_for_sale(self, sale_id: int) -> list[SaleItem]:
        with self._connect() as conn:
            return fetch_sale_items(conn, sale_id)

    def list_sales(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        customer_query: Optional[str] = None,
        credit_only: bool = False,
    ) -> list[Sale]:
        clauses: list[str] = []
        params: list = []
        if start is not None:
            clauses.append("created_at >= ?")
            params.append(ts(start))
        if end is not None:
            clauses.append("created_at <= ?")
            params.append(ts(end))
        if customer_query and customer_query.strip():
            clauses.append("LOWER(COALESCE(customer_name, 'Cash')) LIKE ? ESCAPE '\\'")
            params.append(_like(customer_query))
        if credit_only:
            clauses.append("is_credit = 1")

        sql = f"SELECT {SALE_COLUMNS} FROM sales"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id DESC"

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [sale_from_row(r) for r in rows]

    def list_sale_views(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        customer_query: Optional[str] = None,
        credit_only: bool = False,
    ) -> list[SaleView]:
        sales = self.list_sales(start, end, customer_query, credit_only)
        with self._connect() as conn:
            return [build_sale_view(conn, s) for s in sales]

    def get_sale_view(self, sale_id: int) -> Optional[SaleView]:
        with self._connect() as conn:
            sale = fetch_sale(conn, sale_id)
            if sale is None:
                return None
            return build_sale_view(conn, sale)

    def list_payments(self, sale_id: int) -> list[Payment]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, sale_id, amount_cents, method, created_at FROM payments WHERE sale_id = ? ORDER BY id",
                (int(sale_id),),
            ).fetchall()
        return [payment_from_row(r) for r in rows]

    # ---------- Customers ----------
    def add_customer(self, name: str, phone: Optional[str], now: datetime) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO customers (name, phone, created_at) VALUES (?, ?, ?)",
                (name, phone, ts(now)),
            )
            return int(cur.lastrowid)

    def list_customers(self) -> list[Customer]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id, name, phone, created_at FROM customers ORDER BY id DESC").fetchall()
        return [customer_from_row(r) for r in rows]

    # ---------- Money lent / borrowed ----------
    def add_loan(
        self, direction: LoanDirection, counterparty: str, phone: str, amount_cents: int, now: datetime
    ) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO loans (direction, counterparty, phone, amount_cents, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (direction.value, counterparty, phone, int(amount_cents), LoanStatus.UNPAID.value, ts(now)),
            )
            return int(cur.lastrowid)

    def get_loan(self, loan_id: int) -> Optional[Loan]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, direction, counterparty, phone, amount_cents, status, created_at, paid_at
                FROM loans WHERE id = ?
                """,
                (int(loan_id),),
            ).fetchone()
        return loan_from_row(row) if row else None

    def mark_loan_paid(self, loan_id: int, now: datetime) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE loans SET status=?, paid_at=? WHERE id=? AND status=?",
                (LoanStatus.PAID.value, ts(now), int(loan_id), LoanStatus.UNPAID.value),
            )
            return cur.rowcount > 0

    def delete_loan(self, loan_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM loans WHERE id=?", (int(loan_id),))
            return cur.rowcount > 0

    def list_loans(self, direction: Optional[LoanDirection] = None) -> list[Loan]:
        sql = "SELECT id, direction, counterparty, phone, amount_cents, status, created_at, paid_at FROM loans"
        params: tuple = ()
        if direction is not None:
            sql += " WHERE direction = ?"
            params = (direction.value,)
        sql += " ORDER BY id DESC"
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [loan_from_row(r) for r in rows]

    def integrity_check(self) -> str:
        with self._connect() as conn:
            row = conn.execute("PRAGMA integrity_check").fetchone()
        return str(row[0]) if row else "unknown"
