from .models import CartLine, CustomerInfo, PaymentMethod, Product, RemoteSaleRecord, Sale
from .errors import (
    AppError,
    DuplicateError,
    NotFoundError,
    StorageUnavailable,
    TransportError,
    ValidationError,
)

__all__ = [
    "Product",
    "CartLine",
    "CustomerInfo",
    "PaymentMethod",
    "Sale",
    "RemoteSaleRecord",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "TransportError",
    "DuplicateError",
    "StorageUnavailable",
]
