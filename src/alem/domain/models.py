from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class StockStatus(str, Enum):
    NORMAL = "normal"
    LOW = "low"
    OUT = "out"


class LoanDirection(str, Enum):
    LENT = "lent"
    BORROWED = "borrowed"


class LoanStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price_per_dozen_cents: int
    cost_per_dozen_cents: Optional[int]
    stock_pieces: int
    low_stock_threshold: int
    pack_size: int
    created_at: datetime
    updated_at: datetime

    @property
    def stock_status(self) -> StockStatus:
        if self.stock_pieces <= 0:
            return StockStatus.OUT
        if self.stock_pieces <= self.low_stock_threshold:
            return StockStatus.LOW
        return StockStatus.NORMAL

    @property
    def dozens_available(self) -> int:
        return self.stock_pieces // self.pack_size


@dataclass(frozen=True)
class Sale:
    id: int
    customer_name: Optional[str]
    total_cents: int
    paid_cents: int
    is_credit: bool
    created_at: datetime


@dataclass(frozen=True)
class SaleItem:
    id: int
    sale_id: int
    product_id: int
    dozens: float
    pieces: int
    line_total_cents: int


@dataclass(frozen=True)
class SaleItemView:
    item: SaleItem
    # current product row, None if the reference no longer resolves
    product: Optional[Product]


@dataclass(frozen=True)
class SaleView:
    sale: Sale
    items: tuple[SaleItemView, ...]

    @property
    def id(self) -> int:
        return self.sale.id

    @property
    def balance_cents(self) -> int:
        return max(self.sale.total_cents - self.sale.paid_cents, 0)

    @property
    def is_settled(self) -> bool:
        return self.sale.paid_cents >= self.sale.total_cents

    @property
    def display_customer(self) -> str:
        return self.sale.customer_name or "Cash"


@dataclass(frozen=True)
class Purchase:
    id: int
    product_id: int
    pieces: int
    cost_per_dozen_cents: Optional[int]
    supplier: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class Payment:
    id: int
    sale_id: int
    amount_cents: int
    method: str
    created_at: datetime


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    phone: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class CustomerBalance:
    customer: Customer
    outstanding_cents: int


@dataclass(frozen=True)
class Loan:
    id: int
    direction: LoanDirection
    counterparty: str
    phone: str
    amount_cents: int
    status: LoanStatus
    created_at: datetime
    paid_at: Optional[datetime]
