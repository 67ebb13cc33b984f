from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from alem.domain.errors import NotFoundError, ValidationError
from alem.domain.models import Payment, SaleView
from alem.repositories.contracts import SaleRepository
from alem.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork

log = logging.getLogger("alem.credit")

UNNAMED_DEBTOR = "Unknown"


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


class CreditService:
    """Credit sales and their settlement.

    paid_cents on the sale stays the running total collected; every
    settlement also leaves a row in the payments sub-ledger.
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

    def list_credit_sales(self, outstanding_only: bool = False) -> list[SaleView]:
        sales = self.repo.list_sale_views(credit_only=True)
        if outstanding_only:
            return [s for s in sales if not s.is_settled]
        return sales

    def mark_paid(self, sale_id: int) -> None:
        now = self.clock()
        with self.uow_factory() as uow:
            sale = uow.get_sale(int(sale_id))
            if not sale:
                raise NotFoundError("Sale not found.")
            if not sale.is_credit:
                raise ValidationError("Only credit sales can be marked as paid.")
            balance = sale.total_cents - sale.paid_cents
            if balance <= 0:
                return
            uow.set_paid(sale.id, sale.total_cents)
            uow.insert_payment(sale.id, balance, "settlement", now)

        log.info("sale_marked_paid sale_id=%s amount=%s", sale_id, balance)

    def record_payment(self, sale_id: int, amount_cents: int, method: str = "cash") -> int:
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
            raise ValidationError("Payment amount must be whole cents.")
        if amount_cents <= 0:
            raise ValidationError("Payment amount must be > 0.")
        method = (method or "").strip() or "cash"
        now = self.clock()

        with self.uow_factory() as uow:
            sale = uow.get_sale(int(sale_id))
            if not sale:
                raise NotFoundError("Sale not found.")
            if not sale.is_credit:
                raise ValidationError("Payments can only be recorded against credit sales.")
            balance = sale.total_cents - sale.paid_cents
            if amount_cents > balance:
                raise ValidationError(f"Payment exceeds the outstanding balance of {balance} cents.")
            uow.set_paid(sale.id, sale.paid_cents + amount_cents)
            payment_id = uow.insert_payment(sale.id, amount_cents, method, now)

        log.info("payment_recorded sale_id=%s payment_id=%s amount=%s method=%s", sale_id, payment_id, amount_cents, method)
        return payment_id

    def list_payments(self, sale_id: int) -> list[Payment]:
        if not self.repo.get_sale(int(sale_id)):
            raise NotFoundError("Sale not found.")
        return self.repo.list_payments(int(sale_id))

    def receivables_cents(self) -> int:
        return sum(s.balance_cents for s in self.list_credit_sales())

    def balances_by_customer(self) -> dict[str, int]:
        balances: dict[str, int] = {}
        for s in self.list_credit_sales(outstanding_only=True):
            name = s.sale.customer_name or UNNAMED_DEBTOR
            balances[name] = balances.get(name, 0) + s.balance_cents
        return balances
