from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from alem.config import AppSettings
from alem.domain.errors import ConflictError, NotFoundError, ValidationError
from alem.domain.models import Product, Purchase, StockStatus
from alem.domain.quantities import div_round_half_up
from alem.repositories.contracts import ProductRepository
from alem.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork

log = logging.getLogger(__name__)

STOCK_FILTERS = ("all", "low", "out", "normal")
_KEEP = object()


@dataclass(frozen=True)
class StockCounts:
    all: int
    low: int
    out: int


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


def _as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be an integer.") from e
    if number != value and not isinstance(value, str):
        raise ValidationError(f"{field} must be a whole number.")
    return number


class InventoryService:
    def __init__(
        self,
        repo: ProductRepository,
        settings: AppSettings | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        clock: Callable[[], datetime] = _now,
    ):
        self.repo = repo
        self.settings = settings or AppSettings()
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.clock = clock

    # ---------- Validation ----------
    def _clean_fields(
        self,
        name: str,
        price_per_dozen_cents,
        cost_per_dozen_cents,
        low_stock_threshold,
        pack_size,
    ) -> tuple[str, int, Optional[int], int, int]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        price = _as_int(price_per_dozen_cents, "Price per dozen")
        if price <= 0:
            raise ValidationError("Price per dozen must be > 0.")
        cost = None
        if cost_per_dozen_cents is not None:
            cost = _as_int(cost_per_dozen_cents, "Cost per dozen")
            if cost < 0:
                raise ValidationError("Cost per dozen must be >= 0.")
        threshold = self.settings.low_stock_default if low_stock_threshold is None else _as_int(low_stock_threshold, "Low stock threshold")
        if threshold < 0:
            raise ValidationError("Low stock threshold must be >= 0.")
        pack = self.settings.default_pack_size if pack_size is None else _as_int(pack_size, "Pack size")
        if pack <= 0:
            raise ValidationError("Pack size must be > 0.")
        return name, price, cost, threshold, pack

    def _ensure_name_free(self, name: str, product_id: Optional[int] = None) -> None:
        existing = self.repo.find_product_by_name(name)
        if existing and existing.id != product_id:
            raise ValidationError(f"A product named '{existing.name}' already exists.")

    # ---------- CRUD ----------
    def create_product(
        self,
        name: str,
        price_per_dozen_cents: int,
        cost_per_dozen_cents: Optional[int] = None,
        stock_pieces: int = 0,
        low_stock_threshold: Optional[int] = None,
        pack_size: Optional[int] = None,
    ) -> int:
        name, price, cost, threshold, pack = self._clean_fields(
            name, price_per_dozen_cents, cost_per_dozen_cents, low_stock_threshold, pack_size
        )
        stock = _as_int(stock_pieces, "Stock")
        if stock < 0:
            raise ValidationError("Stock must be >= 0.")
        self._ensure_name_free(name)

        pid = self.repo.add_product(name, price, cost, stock, threshold, pack, self.clock())
        log.info("product_created product_id=%s name=%s stock=%s", pid, name, stock)
        return pid

    def update_product(
        self,
        product_id: int,
        name: str,
        price_per_dozen_cents: int,
        cost_per_dozen_cents=_KEEP,
        low_stock_threshold: Optional[int] = None,
        pack_size: Optional[int] = None,
    ) -> None:
        """Omitted cost, threshold and pack size keep their current values; cost=None clears the cost."""
        current = self.get_product(product_id)
        name, price, cost, threshold, pack = self._clean_fields(
            name,
            price_per_dozen_cents,
            current.cost_per_dozen_cents if cost_per_dozen_cents is _KEEP else cost_per_dozen_cents,
            current.low_stock_threshold if low_stock_threshold is None else low_stock_threshold,
            current.pack_size if pack_size is None else pack_size,
        )
        self._ensure_name_free(name, product_id=current.id)

        updated = self.repo.update_product(current.id, name, price, cost, threshold, pack, self.clock())
        if not updated:
            raise NotFoundError("Product not found.")
        log.info("product_updated product_id=%s", current.id)

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get_product(int(product_id))
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def find_product(self, name: str) -> Optional[Product]:
        return self.repo.find_product_by_name((name or "").strip())

    def list_products(self, query: Optional[str] = None, stock_status: str = "all") -> list[Product]:
        if stock_status not in STOCK_FILTERS:
            raise ValidationError(f"Unknown stock filter: {stock_status!r}. Use one of {', '.join(STOCK_FILTERS)}.")
        if query is not None and not isinstance(query, str):
            raise ValidationError("Search query must be text.")
        products = self.repo.list_products(query)
        if stock_status == "all":
            return products
        wanted = StockStatus(stock_status)
        return [p for p in products if p.stock_status is wanted]

    def stock_counts(self) -> StockCounts:
        products = self.repo.list_products()
        return StockCounts(
            all=len(products),
            low=sum(1 for p in products if p.stock_status is StockStatus.LOW),
            out=sum(1 for p in products if p.stock_status is StockStatus.OUT),
        )

    def delete_product(self, product_id: int) -> None:
        product = self.get_product(product_id)
        refs = self.repo.product_reference_count(product.id)
        if refs:
            raise ConflictError(
                f"{product.name} is referenced by {refs} sale or restock record(s) and cannot be deleted."
            )
        if not self.repo.delete_product(product.id):
            raise NotFoundError("Product not found.")
        log.info("product_deleted product_id=%s name=%s", product.id, product.name)

    # ---------- Stock paths outside of sales ----------
    def restock_product(
        self,
        product_id: int,
        pieces: int,
        cost_per_dozen_cents: Optional[int] = None,
        supplier: Optional[str] = None,
    ) -> int:
        """
        Adds `pieces` to stock and records the purchase.

        When a cost is given the product cost moves to the weighted average:
          new_cost = (old_stock*old_cost + pieces*unit_cost) / (old_stock+pieces)
        """
        qty = _as_int(pieces, "Quantity")
        if qty <= 0:
            raise ValidationError("Quantity must be >= 1.")
        cost = None
        if cost_per_dozen_cents is not None:
            cost = _as_int(cost_per_dozen_cents, "Cost per dozen")
            if cost < 0:
                raise ValidationError("Cost per dozen must be >= 0.")
        supplier = (supplier or "").strip() or None
        now = self.clock()

        with self.uow_factory() as uow:
            prod = uow.get_product(int(product_id))
            if not prod:
                raise NotFoundError("Product not found.")

            purchase_id = uow.insert_purchase(prod.id, qty, cost, supplier, now)
            uow.increment_stock(prod.id, qty, now)

            if cost is not None:
                old_stock = int(prod.stock_pieces)
                old_cost = prod.cost_per_dozen_cents
                if old_cost is None or old_stock == 0:
                    new_cost = cost
                else:
                    new_cost = div_round_half_up(old_stock * old_cost + qty * cost, old_stock + qty)
                uow.set_product_cost(prod.id, new_cost, now)

        log.info("stock_restocked product_id=%s pieces=%s purchase_id=%s", product_id, qty, purchase_id)
        return purchase_id

    def set_stock_count(self, product_id: int, stock_pieces: int) -> None:
        stock = _as_int(stock_pieces, "Stock")
        if stock < 0:
            raise ValidationError("Stock must be >= 0.")
        product = self.get_product(product_id)
        if not self.repo.set_product_stock(product.id, stock, self.clock()):
            raise NotFoundError("Product not found.")
        log.info("stock_counted product_id=%s before=%s after=%s", product.id, product.stock_pieces, stock)

    def list_purchases(self, product_id: Optional[int] = None) -> list[Purchase]:
        return self.repo.list_purchases(product_id)
