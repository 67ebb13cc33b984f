from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from alem.domain.errors import ValidationError


@dataclass(frozen=True)
class CartLine:
    product_id: int
    dozens: Decimal
    pieces: int

    def as_item(self) -> dict:
        return {"product_id": self.product_id, "dozens": self.dozens, "pieces": self.pieces}


class Cart:
    """Draft sale. Lives in memory only; nothing is written until checkout."""

    def __init__(self) -> None:
        self._lines: dict[int, CartLine] = {}

    def add_dozens(self, product_id: int, dozens: int | float | Decimal | str = 1) -> None:
        try:
            qty = Decimal(str(dozens))
        except InvalidOperation as e:
            raise ValidationError(f"Invalid quantity: {dozens!r}") from e
        if not qty.is_finite() or qty <= 0:
            raise ValidationError("Quantity must be > 0.")
        line = self._line(product_id)
        self._lines[line.product_id] = CartLine(line.product_id, line.dozens + qty, line.pieces)

    def add_pieces(self, product_id: int, pieces: int = 1) -> None:
        if isinstance(pieces, bool) or not isinstance(pieces, int):
            raise ValidationError("Pieces must be a whole number.")
        if pieces <= 0:
            raise ValidationError("Quantity must be > 0.")
        line = self._line(product_id)
        self._lines[line.product_id] = CartLine(line.product_id, line.dozens, line.pieces + pieces)

    def remove(self, product_id: int) -> None:
        self._lines.pop(int(product_id), None)

    def clear(self) -> None:
        self._lines.clear()

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def items(self) -> list[dict]:
        return [line.as_item() for line in self._lines.values()]

    def _line(self, product_id: int) -> CartLine:
        pid = int(product_id)
        return self._lines.get(pid, CartLine(pid, Decimal(0), 0))

    def __len__(self) -> int:
        return len(self._lines)
