from .contracts import CART, PENDING_SALES, PRODUCTS, SETTINGS, SYNCED_SALES, LocalStore
from .memory_repo import MemoryStore
from .sqlite_repo import SqliteStore
from .unit_of_work import RepositoryUnitOfWork

__all__ = [
    "PRODUCTS",
    "CART",
    "PENDING_SALES",
    "SYNCED_SALES",
    "SETTINGS",
    "LocalStore",
    "MemoryStore",
    "SqliteStore",
    "RepositoryUnitOfWork",
]
