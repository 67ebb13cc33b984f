from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from alem.domain.errors import ValidationError
from alem.domain.models import CustomerBalance

log = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


class CustomerService:
    def __init__(self, repo, credit_service, clock: Callable[[], datetime] = _now):
        self.repo = repo
        self.credit = credit_service
        self.clock = clock

    def add_customer(self, name: str, phone: Optional[str] = None) -> int:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Customer name is required.")
        phone = (phone or "").strip() or None
        cid = self.repo.add_customer(name, phone, self.clock())
        log.info("customer_added customer_id=%s", cid)
        return cid

    def list_customers(self) -> list[CustomerBalance]:
        owed: dict[str, int] = {}
        for name, cents in self.credit.balances_by_customer().items():
            owed[name.lower()] = owed.get(name.lower(), 0) + cents
        return [
            CustomerBalance(customer=c, outstanding_cents=owed.get(c.name.lower(), 0))
            for c in self.repo.list_customers()
        ]
