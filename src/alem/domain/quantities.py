"""Integer money and quantity arithmetic.

Prices and costs are integer cents per dozen; stock is integer pieces. A
dozen quantity is only meaningful together with a product's pack size, so
every conversion here takes the pack size explicitly.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from alem.domain.errors import ValidationError


def div_round_half_up(numerator: int, denominator: int) -> int:
    if denominator <= 0:
        raise ValueError("denominator must be > 0")
    if numerator < 0:
        return -div_round_half_up(-numerator, denominator)
    return (2 * numerator + denominator) // (2 * denominator)


def line_total_cents(pieces: int, pack_size: int, price_per_dozen_cents: int) -> int:
    """round(dozens * price_per_dozen) with dozens = pieces / pack_size, halves rounded up."""
    return div_round_half_up(int(pieces) * int(price_per_dozen_cents), int(pack_size))


def dozens_to_pieces(dozens: object, pack_size: int) -> int:
    try:
        qty = Decimal(str(dozens))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid dozen quantity: {dozens!r}") from e
    if not qty.is_finite():
        raise ValidationError(f"Invalid dozen quantity: {dozens!r}")

    pieces = qty * int(pack_size)
    if pieces != pieces.to_integral_value():
        raise ValidationError(
            f"{dozens} dozen is not a whole number of pieces (pack size {pack_size})."
        )
    return int(pieces)


def pieces_to_dozens(pieces: int, pack_size: int) -> float:
    return int(pieces) / int(pack_size)


def format_money(cents: int, currency: str = "ETB") -> str:
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), 100)
    return f"{sign}{currency} {whole:,}.{frac:02d}"
