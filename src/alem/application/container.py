from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from alem.config import AppSettings
from alem.repositories.sqlite_repo import SqliteRepository
from alem.services.credit_service import CreditService
from alem.services.customer_service import CustomerService
from alem.services.excel_service import ExcelService
from alem.services.inventory_service import InventoryService
from alem.services.loan_service import LoanService
from alem.services.reporting_service import ReportingService
from alem.services.sales_service import SalesService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    settings: AppSettings
    inventory: InventoryService
    sales: SalesService
    credit: CreditService
    loans: LoanService
    customers: CustomerService
    reporting: ReportingService
    excel: ExcelService

    def close(self) -> None:
        self.repo.close()

    def __enter__(self) -> "AppContainer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_container(db_path: Path | str, settings: AppSettings | None = None) -> AppContainer:
    settings = settings or AppSettings()
    repo = SqliteRepository(db_path)
    repo.open()

    inventory = InventoryService(repo, settings)
    sales = SalesService(repo)
    credit = CreditService(repo)
    loans = LoanService(repo, credit)
    customers = CustomerService(repo, credit)
    reporting = ReportingService(sales, inventory, settings)
    excel = ExcelService(inventory)

    return AppContainer(
        repo=repo,
        settings=settings,
        inventory=inventory,
        sales=sales,
        credit=credit,
        loans=loans,
        customers=customers,
        reporting=reporting,
        excel=excel,
    )
