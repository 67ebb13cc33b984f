from .sqlite_repo import SqliteRepository
from .unit_of_work import SqliteUnitOfWork, UnitOfWork

__all__ = ["SqliteRepository", "SqliteUnitOfWork", "UnitOfWork"]
