from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from openpyxl import load_workbook

from alem.domain.errors import ConflictError, NotFoundError, ValidationError

log = logging.getLogger(__name__)

REQUIRED_HEADERS = ["name", "price_per_dozen", "cost_per_dozen", "stock_pieces", "low_stock_threshold"]


def _to_cents(value) -> int:
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise ValueError(f"not a number: {value!r}")
    return int((amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class ExcelService:
    def __init__(self, inventory_service):
        self.inventory = inventory_service

    def import_products_excel(self, path: str) -> tuple[int, int]:
        """
        Rows carry the stock to ADD (a restock), not an absolute count.
        Headers:
          name | price_per_dozen | cost_per_dozen | stock_pieces | low_stock_threshold
        Amounts are in currency units; cost and threshold may be blank.
        """
        wb = load_workbook(path)
        ws = wb.active

        headers = {}
        for col in range(1, ws.max_column + 1):
            v = ws.cell(row=1, column=col).value
            if isinstance(v, str):
                headers[v.strip().lower()] = col

        for r in REQUIRED_HEADERS:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        ok = 0
        skipped = 0

        for row in range(2, ws.max_row + 1):
            try:
                name = ws.cell(row=row, column=headers["name"]).value
                price = ws.cell(row=row, column=headers["price_per_dozen"]).value
                cost = ws.cell(row=row, column=headers["cost_per_dozen"]).value
                restock_qty = ws.cell(row=row, column=headers["stock_pieces"]).value
                threshold = ws.cell(row=row, column=headers["low_stock_threshold"]).value

                if not name or price is None:
                    skipped += 1
                    continue

                name = str(name).strip()
                price_cents = _to_cents(price)
                cost_cents = None if cost in (None, "") else _to_cents(cost)
                restock_qty = 0 if restock_qty in (None, "") else int(float(restock_qty))
                threshold = None if threshold in (None, "") else int(float(threshold))

                if restock_qty < 0:
                    skipped += 1
                    continue

                existing = self.inventory.find_product(name)
                if existing:
                    # stock only moves through a restock record, which also averages the cost
                    keep_cost = cost_cents is None or restock_qty > 0
                    self.inventory.update_product(
                        existing.id, name, price_cents,
                        existing.cost_per_dozen_cents if keep_cost else cost_cents,
                        low_stock_threshold=threshold,
                    )
                    product_id = existing.id
                else:
                    product_id = self.inventory.create_product(
                        name, price_cents, cost_cents, stock_pieces=0, low_stock_threshold=threshold
                    )

                if restock_qty > 0:
                    self.inventory.restock_product(
                        product_id, restock_qty, cost_per_dozen_cents=cost_cents, supplier="EXCEL_IMPORT"
                    )

                ok += 1
            except (ValidationError, NotFoundError, ConflictError, TypeError, ValueError, InvalidOperation) as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        return ok, skipped
