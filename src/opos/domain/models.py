from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Optional

from opos.domain.errors import ValidationError

_BASE36 = string.digits + string.ascii_lowercase


def parse_money(value: Any, name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{name} must be a number.") from e
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a number.")
    if amount < 0:
        raise ValidationError(f"{name} must be >= 0.")
    return amount


def parse_int(value: Any, name: str, minimum: int = 0) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValidationError(f"{name} must be an integer.") from e
    if number < minimum:
        raise ValidationError(f"{name} must be >= {minimum}.")
    return number


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    DIGITAL = "digital"

    @classmethod
    def parse(cls, value: Any) -> "PaymentMethod":
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unknown payment method: {value}") from e


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: Decimal
    stock: int
    category: str
    barcode: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        if not isinstance(data, dict):
            raise ValidationError("Product payload must be an object.")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Product name is required.")
        if "id" not in data:
            raise ValidationError("Product id is required.")
        return cls(
            id=parse_int(data["id"], "Product id"),
            name=name.strip(),
            price=parse_money(data.get("price"), "Price"),
            stock=parse_int(data.get("stock", 0), "Stock"),
            category=str(data.get("category") or "").strip(),
            barcode=_opt_str(data.get("barcode")),
            image_url=_opt_str(data.get("image_url")),
        )

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "stock": self.stock,
            "category": self.category,
        }
        if self.barcode is not None:
            out["barcode"] = self.barcode
        if self.image_url is not None:
            out["image_url"] = self.image_url
        return out


@dataclass(frozen=True)
class CartLine:
    id: int
    name: str
    price: Decimal
    stock: int
    category: str
    quantity: int
    barcode: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1) -> "CartLine":
        return cls(
            id=product.id,
            name=product.name,
            price=product.price,
            stock=product.stock,
            category=product.category,
            quantity=parse_int(quantity, "Quantity", minimum=1),
            barcode=product.barcode,
            image_url=product.image_url,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        product = Product.from_dict(data)
        return cls.from_product(product, data.get("quantity"))

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=parse_int(quantity, "Quantity", minimum=1))

    def to_dict(self) -> dict:
        out = Product(
            id=self.id,
            name=self.name,
            price=self.price,
            stock=self.stock,
            category=self.category,
            barcode=self.barcode,
            image_url=self.image_url,
        ).to_dict()
        out["quantity"] = self.quantity
        return out


@dataclass(frozen=True)
class CustomerInfo:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["CustomerInfo"]:
        if not data:
            return None
        if not isinstance(data, dict):
            raise ValidationError("Customer info must be an object.")
        info = cls(
            name=_opt_str(data.get("name")),
            email=_opt_str(data.get("email")),
            phone=_opt_str(data.get("phone")),
        )
        if info.email is not None and "@" not in info.email:
            raise ValidationError("Customer email is not valid.")
        if info.is_empty():
            return None
        return info

    def is_empty(self) -> bool:
        return self.name is None and self.email is None and self.phone is None

    def to_dict(self) -> dict:
        return {k: v for k, v in (("name", self.name), ("email", self.email), ("phone", self.phone)) if v is not None}


def new_sale_id(now_ms: int | None = None) -> str:
    """Client-side sale id: ``offline_<epoch millis>_<9 base36 chars>``."""
    ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"offline_{ms}_{suffix}"


@dataclass(frozen=True)
class Sale:
    id: str
    total_amount: Decimal
    items: tuple[CartLine, ...]
    payment_method: PaymentMethod
    created_at: str
    customer_info: Optional[CustomerInfo] = None
    synced: bool = False

    @classmethod
    def create(
        cls,
        items: Iterable[CartLine],
        payment_method: Any,
        customer_info: Optional[CustomerInfo] = None,
        sale_id: str | None = None,
        created_at: str | None = None,
    ) -> "Sale":
        lines = tuple(items)
        if not lines:
            raise ValidationError("Cart is empty.")
        for line in lines:
            if line.quantity < 1:
                raise ValidationError("Qty must be >= 1.")
            if line.price < 0:
                raise ValidationError("Price must be >= 0.")
        total = sum((line.line_total for line in lines), Decimal("0"))
        return cls(
            id=sale_id or new_sale_id(),
            total_amount=total,
            items=lines,
            payment_method=PaymentMethod.parse(payment_method),
            created_at=created_at or utc_now_iso(),
            customer_info=customer_info,
            synced=False,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Sale":
        if not isinstance(data, dict) or not data.get("id"):
            raise ValidationError("Sale payload must carry an id.")
        return cls(
            id=str(data["id"]),
            total_amount=parse_money(data.get("total_amount"), "Total amount"),
            items=tuple(CartLine.from_dict(it) for it in data.get("items") or []),
            payment_method=PaymentMethod.parse(data.get("payment_method")),
            created_at=str(data.get("created_at") or ""),
            customer_info=CustomerInfo.from_dict(data.get("customer_info")),
            synced=bool(data.get("synced", False)),
        )

    def mark_synced(self) -> "Sale":
        return replace(self, synced=True)

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "total_amount": float(self.total_amount),
            "items": [line.to_dict() for line in self.items],
            "payment_method": self.payment_method.value,
            "created_at": self.created_at,
            "synced": self.synced,
        }
        if self.customer_info is not None:
            out["customer_info"] = self.customer_info.to_dict()
        return out

    def to_payload(self) -> dict:
        """Body for ``POST /sales`` without the correlation id."""
        body = {
            "total_amount": float(self.total_amount),
            "items": [line.to_dict() for line in self.items],
            "payment_method": self.payment_method.value,
        }
        if self.customer_info is not None:
            body["customer_info"] = self.customer_info.to_dict()
        return body


@dataclass(frozen=True)
class RemoteSaleRecord:
    id: Any
    offline_id: Optional[str]
    total_amount: Decimal
    payment_method: str
    created_at: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "RemoteSaleRecord":
        if not isinstance(data, dict):
            raise ValidationError("Remote sale record must be an object.")
        return cls(
            id=data.get("id"),
            offline_id=_opt_str(data.get("offline_id")),
            total_amount=parse_money(data.get("total_amount", 0), "Total amount"),
            payment_method=str(data.get("payment_method") or ""),
            created_at=_opt_str(data.get("created_at")),
            raw=dict(data),
        )
