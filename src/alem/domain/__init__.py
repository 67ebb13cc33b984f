from .models import (
    Customer,
    CustomerBalance,
    Loan,
    LoanDirection,
    LoanStatus,
    Payment,
    Product,
    Purchase,
    Sale,
    SaleItem,
    SaleItemView,
    SaleView,
    StockStatus,
)
from .cart import Cart, CartLine
from .errors import (
    AppError,
    ConflictError,
    EmptyCartError,
    InsufficientStockError,
    NotFoundError,
    StorageError,
    ValidationError,
)

__all__ = [
    "Customer",
    "CustomerBalance",
    "Loan",
    "LoanDirection",
    "LoanStatus",
    "Payment",
    "Product",
    "Purchase",
    "Sale",
    "SaleItem",
    "SaleItemView",
    "SaleView",
    "StockStatus",
    "Cart",
    "CartLine",
    "AppError",
    "ConflictError",
    "EmptyCartError",
    "InsufficientStockError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
]
