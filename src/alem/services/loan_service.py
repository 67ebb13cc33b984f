from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from alem.domain.errors import NotFoundError, ValidationError
from alem.domain.models import Loan, LoanDirection, LoanStatus

log = logging.getLogger("alem.credit")


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


@dataclass(frozen=True)
class FinanceSummary:
    credit_outstanding_count: int
    lent_total_cents: int
    lent_unpaid_count: int
    borrowed_total_cents: int
    borrowed_unpaid_count: int


def _direction(value) -> LoanDirection:
    try:
        return LoanDirection(value)
    except ValueError as e:
        raise ValidationError(f"Unknown loan direction: {value!r}. Use 'lent' or 'borrowed'.") from e


class LoanService:
    """Money lent to and borrowed from people, outside of sales."""

    def __init__(self, repo, credit_service, clock: Callable[[], datetime] = _now):
        self.repo = repo
        self.credit = credit_service
        self.clock = clock

    def record_loan(self, direction: str | LoanDirection, counterparty: str, phone: str, amount_cents: int) -> int:
        d = _direction(direction)
        counterparty = (counterparty or "").strip()
        phone = (phone or "").strip()
        if not counterparty or not phone:
            raise ValidationError("Name and phone are required.")
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
            raise ValidationError("Amount must be whole cents.")
        if amount_cents <= 0:
            raise ValidationError("Amount must be > 0.")

        loan_id = self.repo.add_loan(d, counterparty, phone, amount_cents, self.clock())
        log.info("loan_recorded loan_id=%s direction=%s amount=%s", loan_id, d.value, amount_cents)
        return loan_id

    def get_loan(self, loan_id: int) -> Loan:
        loan = self.repo.get_loan(int(loan_id))
        if not loan:
            raise NotFoundError("Record not found.")
        return loan

    def mark_loan_paid(self, loan_id: int) -> None:
        loan = self.get_loan(loan_id)
        if loan.status is LoanStatus.PAID:
            return
        self.repo.mark_loan_paid(loan.id, self.clock())
        log.info("loan_marked_paid loan_id=%s", loan.id)

    def delete_loan(self, loan_id: int) -> None:
        if not self.repo.delete_loan(int(loan_id)):
            raise NotFoundError("Record not found.")
        log.info("loan_deleted loan_id=%s", loan_id)

    def list_loans(self, direction: str | LoanDirection | None = None) -> list[Loan]:
        return self.repo.list_loans(None if direction is None else _direction(direction))

    def finance_summary(self) -> FinanceSummary:
        loans = self.repo.list_loans()
        lent = [r for r in loans if r.direction is LoanDirection.LENT]
        borrowed = [r for r in loans if r.direction is LoanDirection.BORROWED]
        return FinanceSummary(
            credit_outstanding_count=len(self.credit.list_credit_sales(outstanding_only=True)),
            lent_total_cents=sum(r.amount_cents for r in lent),
            lent_unpaid_count=sum(1 for r in lent if r.status is not LoanStatus.PAID),
            borrowed_total_cents=sum(r.amount_cents for r in borrowed),
            borrowed_unpaid_count=sum(1 for r in borrowed if r.status is not LoanStatus.PAID),
        )
