"""Row <-> entity mapping shared by the repository and the unit of work.

Rows are validated here on the way out of SQLite; a row that does not fit
its entity raises ValidationError instead of leaking a half-typed record.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Callable, Optional, TypeVar

from alem.domain.errors import ValidationError
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
    SaleItemView,
    SaleView,
)

T = TypeVar("T")

PRODUCT_COLUMNS = (
    "id, name, price_per_dozen_cents, cost_per_dozen_cents, stock_pieces, "
    "low_stock_threshold, pack_size, created_at, updated_at"
)
SALE_COLUMNS = "id, customer_name, total_cents, paid_cents, is_credit, created_at"
SALE_ITEM_COLUMNS = "id, sale_id, product_id, dozens, pieces, line_total_cents"


def ts(value: datetime) -> str:
    return value.isoformat(sep=" ")


def _parse_ts(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise TypeError(f"timestamp must be text, got {type(value).__name__}")
    return datetime.fromisoformat(value)


def _opt_ts(value) -> Optional[datetime]:
    return None if value is None else _parse_ts(value)


def _int(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected integer, got {type(value).__name__}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected integer, got {value}")
    return int(value)


def _opt_int(value) -> Optional[int]:
    return None if value is None else _int(value)


def _text(value) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected text, got {type(value).__name__}")
    return value


def _opt_text(value) -> Optional[str]:
    return None if value is None else _text(value)


def _bool(value) -> bool:
    if value not in (0, 1):
        raise ValueError(f"expected 0/1 flag, got {value!r}")
    return bool(value)


def _mapped(kind: str, build: Callable[[sqlite3.Row], T], row: sqlite3.Row) -> T:
    try:
        return build(row)
    except (TypeError, ValueError, KeyError, IndexError) as e:
        raise ValidationError(f"Malformed {kind} row: {e}") from e


def product_from_row(row: sqlite3.Row) -> Product:
    return _mapped(
        "product",
        lambda r: Product(
            id=_int(r["id"]),
            name=_text(r["name"]),
            price_per_dozen_cents=_int(r["price_per_dozen_cents"]),
            cost_per_dozen_cents=_opt_int(r["cost_per_dozen_cents"]),
            stock_pieces=_int(r["stock_pieces"]),
            low_stock_threshold=_int(r["low_stock_threshold"]),
            pack_size=_int(r["pack_size"]),
            created_at=_parse_ts(r["created_at"]),
            updated_at=_parse_ts(r["updated_at"]),
        ),
        row,
    )


def sale_from_row(row: sqlite3.Row) -> Sale:
    return _mapped(
        "sale",
        lambda r: Sale(
            id=_int(r["id"]),
            customer_name=_opt_text(r["customer_name"]),
            total_cents=_int(r["total_cents"]),
            paid_cents=_int(r["paid_cents"]),
            is_credit=_bool(r["is_credit"]),
            created_at=_parse_ts(r["created_at"]),
        ),
        row,
    )


def sale_item_from_row(row: sqlite3.Row) -> SaleItem:
    return _mapped(
        "sale item",
        lambda r: SaleItem(
            id=_int(r["id"]),
            sale_id=_int(r["sale_id"]),
            product_id=_int(r["product_id"]),
            dozens=float(r["dozens"]),
            pieces=_int(r["pieces"]),
            line_total_cents=_int(r["line_total_cents"]),
        ),
        row,
    )


def purchase_from_row(row: sqlite3.Row) -> Purchase:
    return _mapped(
        "purchase",
        lambda r: Purchase(
            id=_int(r["id"]),
            product_id=_int(r["product_id"]),
            pieces=_int(r["pieces"]),
            cost_per_dozen_cents=_opt_int(r["cost_per_dozen_cents"]),
            supplier=_opt_text(r["supplier"]),
            created_at=_parse_ts(r["created_at"]),
        ),
        row,
    )


def payment_from_row(row: sqlite3.Row) -> Payment:
    return _mapped(
        "payment",
        lambda r: Payment(
            id=_int(r["id"]),
            sale_id=_int(r["sale_id"]),
            amount_cents=_int(r["amount_cents"]),
            method=_text(r["method"]),
            created_at=_parse_ts(r["created_at"]),
        ),
        row,
    )


def customer_from_row(row: sqlite3.Row) -> Customer:
    return _mapped(
        "customer",
        lambda r: Customer(
            id=_int(r["id"]),
            name=_text(r["name"]),
            phone=_opt_text(r["phone"]),
            created_at=_parse_ts(r["created_at"]),
        ),
        row,
    )


def loan_from_row(row: sqlite3.Row) -> Loan:
    return _mapped(
        "loan",
        lambda r: Loan(
            id=_int(r["id"]),
            direction=LoanDirection(r["direction"]),
            counterparty=_text(r["counterparty"]),
            phone=_text(r["phone"]),
            amount_cents=_int(r["amount_cents"]),
            status=LoanStatus(r["status"]),
            created_at=_parse_ts(r["created_at"]),
            paid_at=_opt_ts(r["paid_at"]),
        ),
        row,
    )


# ---------- Shared reads (usable on a plain connection or inside a transaction) ----------
def fetch_product(cur: sqlite3.Cursor | sqlite3.Connection, product_id: int) -> Optional[Product]:
    row = cur.execute(
        f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id = ?",
        (int(product_id),),
    ).fetchone()
    return product_from_row(row) if row else None


def fetch_sale(cur: sqlite3.Cursor | sqlite3.Connection, sale_id: int) -> Optional[Sale]:
    row = cur.execute(
        f"SELECT {SALE_COLUMNS} FROM sales WHERE id = ?",
        (int(sale_id),),
    ).fetchone()
    return sale_from_row(row) if row else None


def fetch_sale_items(cur: sqlite3.Cursor | sqlite3.Connection, sale_id: int) -> list[SaleItem]:
    rows = cur.execute(
        f"SELECT {SALE_ITEM_COLUMNS} FROM sale_items WHERE sale_id = ? ORDER BY id",
        (int(sale_id),),
    ).fetchall()
    return [sale_item_from_row(r) for r in rows]


def build_sale_view(cur: sqlite3.Cursor | sqlite3.Connection, sale: Sale) -> SaleView:
    # one query for the items, one per item for its current product row
    items = tuple(
        SaleItemView(item=it, product=fetch_product(cur, it.product_id))
        for it in fetch_sale_items(cur, sale.id)
    )
    return SaleView(sale=sale, items=items)
