class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class EmptyCartError(AppError):
    pass


class InsufficientStockError(AppError):
    def __init__(self, product_id: int, name: str, requested: int, available: int):
        super().__init__(f"Not enough stock for {name}. Requested: {requested} pieces, available: {available}")
        self.product_id = product_id
        self.requested = requested
        self.available = available


class ConflictError(AppError):
    pass


class StorageError(AppError):
    pass
