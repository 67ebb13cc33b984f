from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from alem.domain.models import Payment, Product, Purchase, Sale, SaleView


class ProductRepository(Protocol):
    def get_product(self, product_id: int) -> Optional[Product]: ...
    def find_product_by_name(self, name: str) -> Optional[Product]: ...
    def list_products(self, query: Optional[str] = None) -> list[Product]: ...
    def add_product(self, name: str, price_per_dozen_cents: int, cost_per_dozen_cents: Optional[int], stock_pieces: int, low_stock_threshold: int, pack_size: int, now: datetime) -> int: ...
    def update_product(self, product_id: int, name: str, price_per_dozen_cents: int, cost_per_dozen_cents: Optional[int], low_stock_threshold: int, pack_size: int, now: datetime) -> bool: ...
    def set_product_stock(self, product_id: int, stock_pieces: int, now: datetime) -> bool: ...
    def delete_product(self, product_id: int) -> bool: ...
    def product_reference_count(self, product_id: int) -> int: ...
    def list_purchases(self, product_id: Optional[int] = None) -> list[Purchase]: ...


class SaleRepository(Protocol):
    def get_sale(self, sale_id: int) -> Optional[Sale]: ...
    def get_sale_view(self, sale_id: int) -> Optional[SaleView]: ...
    def list_sale_views(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        customer_query: Optional[str] = None,
        credit_only: bool = False,
    ) -> list[SaleView]: ...
    def list_payments(self, sale_id: int) -> list[Payment]: ...
