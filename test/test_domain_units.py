from decimal import Decimal

import pytest

from alem.domain.cart import Cart
from alem.domain.errors import ValidationError
from alem.domain.quantities import (
    div_round_half_up,
    dozens_to_pieces,
    format_money,
    line_total_cents,
    pieces_to_dozens,
)


@pytest.mark.parametrize("num,den,expected", [
    (5, 10, 1),
    (4, 10, 0),
    (15, 10, 2),
    (-15, 10, -2),
    (0, 7, 0),
])
def test_div_round_half_up(num, den, expected):
    assert div_round_half_up(num, den) == expected


def test_div_round_half_up_rejects_zero_denominator():
    with pytest.raises(ValueError):
        div_round_half_up(1, 0)


def test_line_total_examples():
    assert line_total_cents(36, 12, 4500) == 13500
    assert line_total_cents(1, 12, 1000) == 83
    assert line_total_cents(1, 12, 6) == 1
    assert line_total_cents(5, 10, 3000) == 1500


def test_dozen_piece_conversions():
    assert dozens_to_pieces(3, 12) == 36
    assert dozens_to_pieces("0.5", 12) == 6
    assert dozens_to_pieces(Decimal("1.25"), 12) == 15
    assert dozens_to_pieces(0.3, 10) == 3
    assert pieces_to_dozens(18, 12) == 1.5

    for bad in ("x", float("nan"), float("inf"), 0.1):
        with pytest.raises(ValidationError):
            dozens_to_pieces(bad, 12)


def test_format_money():
    assert format_money(123456) == "ETB 1,234.56"
    assert format_money(5, "USD") == "USD 0.05"
    assert format_money(-250) == "-ETB 2.50"


def test_cart_accumulates_per_product():
    cart = Cart()
    cart.add_dozens(1)
    cart.add_dozens(1, "0.5")
    cart.add_pieces(1, 3)
    cart.add_pieces(2, 4)

    assert len(cart) == 2
    assert cart.items() == [
        {"product_id": 1, "dozens": Decimal("1.5"), "pieces": 3},
        {"product_id": 2, "dozens": Decimal(0), "pieces": 4},
    ]

    cart.remove(2)
    assert [line.product_id for line in cart.lines()] == [1]
    cart.clear()
    assert cart.is_empty


@pytest.mark.parametrize("call", [
    lambda c: c.add_dozens(1, 0),
    lambda c: c.add_dozens(1, -2),
    lambda c: c.add_dozens(1, "two"),
    lambda c: c.add_dozens(1, float("nan")),
    lambda c: c.add_pieces(1, 0),
    lambda c: c.add_pieces(1, 1.5),
])
def test_cart_rejects_bad_quantities(call):
    cart = Cart()

    with pytest.raises(ValidationError):
        call(cart)

    assert cart.is_empty
