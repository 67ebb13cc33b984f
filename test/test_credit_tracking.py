from datetime import datetime
from pathlib import Path

import pytest
from conftest import FixedClock, open_repo

from alem.domain.errors import NotFoundError, ValidationError
from alem.services.credit_service import CreditService
from alem.services.inventory_service import InventoryService
from alem.services.sales_service import SalesService


def _setup(tmp_path: Path):
    repo = open_repo(tmp_path, "credit.db")
    inv = InventoryService(repo)
    sales = SalesService(repo)
    credit = CreditService(repo, clock=FixedClock(datetime(2026, 10, 16, 12, 0)))
    pid = inv.create_product("Eggs", 4500, stock_pieces=600)
    return sales, credit, pid


def _sell(sales, pid, dozens=1, **kw):
    return sales.create_sale([{"product_id": pid, "dozens": dozens}], **kw)


def test_only_credit_sales_are_listed_newest_first(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    _sell(sales, pid)
    first = _sell(sales, pid, customer_name="Abebe", is_credit=True)
    _sell(sales, pid, customer_name="Sara")
    second = _sell(sales, pid, 2, customer_name="Hana", paid_cents=1000, is_credit=True)
    _sell(sales, pid)

    listed = credit.list_credit_sales()

    assert [s.id for s in listed] == [second, first]
    assert all(s.sale.is_credit for s in listed)
    assert listed[0].balance_cents == 8000
    assert listed[1].balance_cents == 4500


def test_mark_paid_settles_and_records_payment(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    sale_id = _sell(sales, pid, customer_name="Abebe", paid_cents=500, is_credit=True)

    credit.mark_paid(sale_id)

    view = sales.get_sale(sale_id)
    assert view.sale.paid_cents == view.sale.total_cents == 4500
    assert view.is_settled
    payments = credit.list_payments(sale_id)
    assert [(p.amount_cents, p.method) for p in payments] == [(4000, "settlement")]
    assert payments[0].created_at == datetime(2026, 10, 16, 12, 0)
    assert credit.list_credit_sales(outstanding_only=True) == []


def test_mark_paid_twice_is_a_no_op(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    sale_id = _sell(sales, pid, customer_name="Abebe", is_credit=True)

    credit.mark_paid(sale_id)
    credit.mark_paid(sale_id)

    assert len(credit.list_payments(sale_id)) == 1


def test_mark_paid_errors(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    cash = _sell(sales, pid)

    with pytest.raises(NotFoundError):
        credit.mark_paid(999)
    with pytest.raises(ValidationError):
        credit.mark_paid(cash)


def test_partial_payments_reduce_balance(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    sale_id = _sell(sales, pid, 2, customer_name="Abebe", is_credit=True)

    credit.record_payment(sale_id, 3000)
    credit.record_payment(sale_id, 2000, method=" mobile ")

    view = sales.get_sale(sale_id)
    assert view.sale.paid_cents == 5000
    assert view.balance_cents == 4000
    assert [p.method for p in credit.list_payments(sale_id)] == ["cash", "mobile"]

    with pytest.raises(ValidationError):
        credit.record_payment(sale_id, 4001)
    with pytest.raises(ValidationError):
        credit.record_payment(sale_id, 0)

    credit.record_payment(sale_id, 4000)
    assert sales.get_sale(sale_id).is_settled


def test_record_payment_rejects_cash_sale(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    cash = _sell(sales, pid)

    with pytest.raises(ValidationError):
        credit.record_payment(cash, 100)
    with pytest.raises(NotFoundError):
        credit.list_payments(12345)


def test_receivables_and_balances_by_customer(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    _sell(sales, pid, customer_name="Abebe", is_credit=True)
    _sell(sales, pid, 2, customer_name="Abebe", paid_cents=1000, is_credit=True)
    settled = _sell(sales, pid, customer_name="Hana", is_credit=True)
    _sell(sales, pid, customer_name="Sara")
    credit.mark_paid(settled)

    assert credit.receivables_cents() == 4500 + 8000
    assert credit.balances_by_customer() == {"Abebe": 12500}


def test_unnamed_credit_sale_is_tracked_as_unknown(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    sale_id = _sell(sales, pid, is_credit=True)
    _sell(sales, pid, customer_name="Abebe", is_credit=True)

    assert credit.balances_by_customer() == {"Unknown": 4500, "Abebe": 4500}
    assert credit.receivables_cents() == 9000

    credit.record_payment(sale_id, 500)
    assert credit.balances_by_customer()["Unknown"] == 4000


def test_deleting_credit_sale_drops_its_payments(tmp_path: Path):
    sales, credit, pid = _setup(tmp_path)
    sale_id = _sell(sales, pid, customer_name="Abebe", is_credit=True)
    credit.record_payment(sale_id, 1000)

    sales.delete_sale_and_revert_stock(sale_id)

    assert credit.list_credit_sales() == []
    assert credit.receivables_cents() == 0
