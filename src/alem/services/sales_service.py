from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional

from alem.domain.cart import Cart
from alem.domain.errors import (
    EmptyCartError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from alem.domain.models import Product, SaleView
from alem.domain.quantities import dozens_to_pieces, line_total_cents, pieces_to_dozens
from alem.repositories.contracts import SaleRepository
from alem.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork

log = logging.getLogger("alem.sales")


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


@dataclass(frozen=True)
class _Line:
    product_id: int
    pieces: int


def _parse_line(it: Mapping) -> tuple[int, object, int]:
    try:
        product_id = int(it["product_id"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError("Each line needs a product_id.") from e

    dozens = it.get("dozens", 0) or 0
    pieces = it.get("pieces", 0) or 0
    if isinstance(pieces, bool) or isinstance(dozens, bool):
        raise ValidationError("Quantity must be a number.")
    try:
        extra_pieces = int(pieces)
    except (TypeError, ValueError) as e:
        raise ValidationError("Pieces must be a whole number.") from e
    if extra_pieces != pieces and not isinstance(pieces, str):
        raise ValidationError("Pieces must be a whole number.")
    return product_id, dozens, extra_pieces


class SalesService:
    """Sale transaction engine.

    A sale is either not persisted at all (a Cart draft) or fully committed:
    header, line items and stock decrements land in one transaction.
    Deleting a sale restores exactly the pieces its items took.
    """

    def __init__(
        self,
        repo: SaleRepository,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        clock: Callable[[], datetime] = _now,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.clock = clock

    def create_sale(
        self,
        items: Iterable[Mapping],
        customer_name: Optional[str] = None,
        paid_cents: Optional[int] = None,
        is_credit: bool = False,
        total_cents: Optional[int] = None,
    ) -> int:
        """
        items: [{product_id, dozens and/or pieces}]

        total_cents is accepted for call-site compatibility and ignored: the
        total is always the sum of the computed line totals.
        """
        items = list(items)
        if not items:
            raise EmptyCartError("Cart is empty. Add at least one item before completing the sale.")

        if customer_name is not None and not isinstance(customer_name, str):
            raise ValidationError("Customer name must be text.")
        customer = (customer_name or "").strip() or None
        if paid_cents is not None:
            if isinstance(paid_cents, bool) or not isinstance(paid_cents, int):
                raise ValidationError("Paid amount must be whole cents.")
            if paid_cents < 0:
                raise ValidationError("Paid amount must be >= 0.")

        parsed = [_parse_line(it) for it in items]
        now = self.clock()

        with self.uow_factory() as uow:
            products: dict[int, Product] = {}
            lines: list[_Line] = []
            pieces_by_product: Counter[int] = Counter()

            for product_id, dozens, extra_pieces in parsed:
                prod = products.get(product_id) or uow.get_product(product_id)
                if not prod:
                    raise NotFoundError(f"Product {product_id} not found.")
                products[product_id] = prod

                dozen_pieces = dozens_to_pieces(dozens, prod.pack_size)
                pieces = dozen_pieces + extra_pieces
                if dozen_pieces < 0 or extra_pieces < 0 or pieces <= 0:
                    raise ValidationError("Quantity must be > 0.")
                lines.append(_Line(product_id, pieces))

                # aggregate per product so repeated lines cannot oversell
                pieces_by_product[product_id] += pieces
                if pieces_by_product[product_id] > prod.stock_pieces:
                    raise InsufficientStockError(
                        prod.id, prod.name, pieces_by_product[product_id], prod.stock_pieces
                    )

            line_totals = [
                line_total_cents(ln.pieces, products[ln.product_id].pack_size, products[ln.product_id].price_per_dozen_cents)
                for ln in lines
            ]
            total = sum(line_totals)
            paid = self._settle_amount(total, paid_cents, is_credit)

            sale_id = uow.insert_sale(customer, total, paid, is_credit, now)
            for ln, line_total in zip(lines, line_totals):
                prod = products[ln.product_id]
                uow.insert_sale_item(
                    sale_id, prod.id, pieces_to_dozens(ln.pieces, prod.pack_size), ln.pieces, line_total
                )

            for product_id, pieces in pieces_by_product.items():
                if not uow.decrement_stock(product_id, pieces, now):
                    prod = uow.get_product(product_id)
                    available = prod.stock_pieces if prod else 0
                    raise InsufficientStockError(product_id, products[product_id].name, pieces, available)

        if total_cents is not None and int(total_cents) != total:
            log.warning("sale_total_overridden sale_id=%s supplied=%s computed=%s", sale_id, total_cents, total)
        log.info(
            "sale_created sale_id=%s items=%s total=%s paid=%s credit=%s",
            sale_id, len(lines), total, paid, is_credit,
        )
        return sale_id

    @staticmethod
    def _settle_amount(total: int, paid_cents: Optional[int], is_credit: bool) -> int:
        if is_credit:
            paid = 0 if paid_cents is None else paid_cents
            if paid >= total:
                raise ValidationError("A credit sale must leave a balance. Record it as a cash sale instead.")
            return paid

        if paid_cents is None:
            return total
        if paid_cents < total:
            raise ValidationError("Cash sale is not fully paid. Record it as a credit sale instead.")
        # tendered above the total: change is handed back, collected amount is the total
        return total

    def checkout(
        self,
        cart: Cart,
        customer_name: Optional[str] = None,
        paid_cents: Optional[int] = None,
        is_credit: bool = False,
    ) -> int:
        if cart.is_empty:
            raise EmptyCartError("Cart is empty. Add at least one item before completing the sale.")
        sale_id = self.create_sale(cart.items(), customer_name=customer_name, paid_cents=paid_cents, is_credit=is_credit)
        cart.clear()
        return sale_id

    def delete_sale_and_revert_stock(self, sale_id: int) -> None:
        now = self.clock()
        with self.uow_factory() as uow:
            sale = uow.get_sale(int(sale_id))
            if not sale:
                raise NotFoundError("Sale not found.")

            items = uow.sale_items(sale.id)
            for it in items:
                if not uow.increment_stock(it.product_id, it.pieces, now):
                    raise NotFoundError(f"Product {it.product_id} referenced by sale {sale.id} no longer exists.")

            if not uow.delete_sale(sale.id):
                raise NotFoundError("Sale not found.")

        log.info("sale_reverted sale_id=%s items=%s total=%s", sale_id, len(items), sale.total_cents)

    def get_sale(self, sale_id: int) -> SaleView:
        view = self.repo.get_sale_view(int(sale_id))
        if not view:
            raise NotFoundError("Sale not found.")
        return view

    def list_sales_with_details(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        customer_query: Optional[str] = None,
    ) -> list[SaleView]:
        self._check_filter(start, end, customer_query)
        return self.repo.list_sale_views(start, end, customer_query)

    @staticmethod
    def _check_filter(start, end, customer_query) -> None:
        for label, bound in (("start", start), ("end", end)):
            if bound is not None and not isinstance(bound, datetime):
                raise ValidationError(f"Filter {label} must be a datetime.")
            if bound is not None and bound.tzinfo is not None:
                raise ValidationError(f"Filter {label} must be a naive local datetime.")
        if start is not None and end is not None:
            if start > end:
                raise ValidationError("Filter start must not be after end.")
        if customer_query is not None and not isinstance(customer_query, str):
            raise ValidationError("Customer filter must be text.")
