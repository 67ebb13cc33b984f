from .inventory_service import InventoryService
from .sales_service import SalesService
from .credit_service import CreditService
from .loan_service import LoanService
from .customer_service import CustomerService
from .reporting_service import ReportingService
from .excel_service import ExcelService

__all__ = [
    "InventoryService",
    "SalesService",
    "CreditService",
    "LoanService",
    "CustomerService",
    "ReportingService",
    "ExcelService",
]
