from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional, Protocol

from alem.domain.errors import StorageError
from alem.domain.models import Product, Sale, SaleItem
from alem.repositories.rows import fetch_product, fetch_sale, fetch_sale_items, ts


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...
    def get_product(self, product_id: int) -> Optional[Product]: ...
    def get_sale(self, sale_id: int) -> Optional[Sale]: ...
    def sale_items(self, sale_id: int) -> list[SaleItem]: ...
    def insert_sale(self, customer_name: Optional[str], total_cents: int, paid_cents: int, is_credit: bool, created_at: datetime) -> int: ...
    def insert_sale_item(self, sale_id: int, product_id: int, dozens: float, pieces: int, line_total_cents: int) -> int: ...
    def decrement_stock(self, product_id: int, pieces: int, now: datetime) -> bool: ...
    def increment_stock(self, product_id: int, pieces: int, now: datetime) -> bool: ...
    def delete_sale(self, sale_id: int) -> bool: ...
    def set_paid(self, sale_id: int, paid_cents: int) -> bool: ...
    def insert_payment(self, sale_id: int, amount_cents: int, method: str, created_at: datetime) -> int: ...
    def insert_purchase(self, product_id: int, pieces: int, cost_per_dozen_cents: Optional[int], supplier: Optional[str], created_at: datetime) -> int: ...
    def set_product_cost(self, product_id: int, cost_per_dozen_cents: Optional[int], now: datetime) -> bool: ...


class SqliteUnitOfWork:
    """One SQLite transaction for a multi-statement write use-case.

    Everything done between ``__enter__`` and ``__exit__`` commits together,
    or is rolled back together when the block raises.
    """

    def __init__(self, repo):
        self.repo = repo
        self._tx = None
        self._cur: Optional[sqlite3.Cursor] = None

    def __enter__(self) -> "SqliteUnitOfWork":
        self._tx = self.repo.transaction()
        self._cur = self._tx.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        tx, self._tx, self._cur = self._tx, None, None
        return tx.__exit__(exc_type, exc, tb)

    @property
    def cur(self) -> sqlite3.Cursor:
        if self._cur is None:
            raise StorageError("Unit of work used outside of its 'with' block.")
        return self._cur

    # ---------- Reads inside the transaction ----------
    def get_product(self, product_id: int) -> Optional[Product]:
        return fetch_product(self.cur, product_id)

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        return fetch_sale(self.cur, sale_id)

    def sale_items(self, sale_id: int) -> list[SaleItem]:
        return fetch_sale_items(self.cur, sale_id)

    # ---------- Sales ----------
    def insert_sale(
        self,
        customer_name: Optional[str],
        total_cents: int,
        paid_cents: int,
        is_credit: bool,
        created_at: datetime,
    ) -> int:
        self.cur.execute(
            """
            INSERT INTO sales (customer_name, total_cents, paid_cents, is_credit, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (customer_name, int(total_cents), int(paid_cents), 1 if is_credit else 0, ts(created_at)),
        )
        return int(self.cur.lastrowid)

    def insert_sale_item(self, sale_id: int, product_id: int, dozens: float, pieces: int, line_total_cents: int) -> int:
        self.cur.execute(
            """
            INSERT INTO sale_items (sale_id, product_id, dozens, pieces, line_total_cents)
            VALUES (?, ?, ?, ?, ?)
            """,
            (int(sale_id), int(product_id), float(dozens), int(pieces), int(line_total_cents)),
        )
        return int(self.cur.lastrowid)

    def decrement_stock(self, product_id: int, pieces: int, now: datetime) -> bool:
        # guarded: never lets stock_pieces go below zero
        self.cur.execute(
            """
            UPDATE products
            SET stock_pieces = stock_pieces - ?, updated_at = ?
            WHERE id = ? AND stock_pieces >= ?
            """,
            (int(pieces), ts(now), int(product_id), int(pieces)),
        )
        return self.cur.rowcount > 0

    def increment_stock(self, product_id: int, pieces: int, now: datetime) -> bool:
        self.cur.execute(
            "UPDATE products SET stock_pieces = stock_pieces + ?, updated_at = ? WHERE id = ?",
            (int(pieces), ts(now), int(product_id)),
        )
        return self.cur.rowcount > 0

    def delete_sale(self, sale_id: int) -> bool:
        # sale_items and payments go with it (ON DELETE CASCADE)
        self.cur.execute("DELETE FROM sales WHERE id = ?", (int(sale_id),))
        return self.cur.rowcount > 0

    def set_paid(self, sale_id: int, paid_cents: int) -> bool:
        self.cur.execute("UPDATE sales SET paid_cents = ? WHERE id = ?", (int(paid_cents), int(sale_id)))
        return self.cur.rowcount > 0

    def insert_payment(self, sale_id: int, amount_cents: int, method: str, created_at: datetime) -> int:
        self.cur.execute(
            "INSERT INTO payments (sale_id, amount_cents, method, created_at) VALUES (?, ?, ?, ?)",
            (int(sale_id), int(amount_cents), method, ts(created_at)),
        )
        return int(self.cur.lastrowid)

    # ---------- Restock ----------
    def insert_purchase(
        self,
        product_id: int,
        pieces: int,
        cost_per_dozen_cents: Optional[int],
        supplier: Optional[str],
        created_at: datetime,
    ) -> int:
        self.cur.execute(
            """
            INSERT INTO purchases (product_id, pieces, cost_per_dozen_cents, supplier, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (int(product_id), int(pieces), cost_per_dozen_cents, supplier, ts(created_at)),
        )
        return int(self.cur.lastrowid)

    def set_product_cost(self, product_id: int, cost_per_dozen_cents: Optional[int], now: datetime) -> bool:
        self.cur.execute(
            "UPDATE products SET cost_per_dozen_cents = ?, updated_at = ? WHERE id = ?",
            (cost_per_dozen_cents, ts(now), int(product_id)),
        )
        return self.cur.rowcount > 0
