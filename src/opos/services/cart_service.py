from __future__ import annotations

import logging
from decimal import Decimal

from opos.domain.errors import NotFoundError, StorageUnavailable, ValidationError
from opos.domain.models import CartLine, Product
from opos.repositories.contracts import CART

log = logging.getLogger(__name__)


class CartService:
    """Active cart, one line per product id, persisted after every change."""

    def __init__(self, store):
        self.store = store

    def lines(self) -> list[CartLine]:
        try:
            rows = self.store.get_all(CART)
        except StorageUnavailable as e:
            log.warning("cart_unavailable error=%s", e)
            return []

        lines = []
        for raw in rows:
            try:
                lines.append(CartLine.from_dict(raw))
            except ValidationError as e:
                log.warning("cart_row_skipped id=%s error=%s", raw.get("id"), e)
        return lines

    def _find(self, product_id: int) -> CartLine | None:
        raw = self.store.get(CART, int(product_id))
        return CartLine.from_dict(raw) if raw is not None else None

    def add(self, product: Product, quantity: int = 1) -> CartLine:
        if int(quantity) < 1:
            raise ValidationError("Qty must be >= 1.")
        existing = self._find(product.id)
        if existing is not None:
            line = existing.with_quantity(existing.quantity + int(quantity))
        else:
            line = CartLine.from_product(product, int(quantity))
        self.store.put(CART, line.to_dict())
        return line

    def update_quantity(self, product_id: int, quantity: int) -> CartLine | None:
        """Set a line's quantity; zero removes the line."""
        if int(quantity) < 0:
            raise ValidationError("Qty must be >= 0.")
        existing = self._find(product_id)
        if existing is None:
            raise NotFoundError("Product is not in the cart.")
        if int(quantity) == 0:
            self.store.delete(CART, int(product_id))
            return None
        line = existing.with_quantity(int(quantity))
        self.store.put(CART, line.to_dict())
        return line

    def remove(self, product_id: int) -> None:
        self.store.delete(CART, int(product_id))

    def clear(self) -> None:
        self.store.clear(CART)

    def total(self) -> Decimal:
        return sum((line.line_total for line in self.lines()), Decimal("0"))

    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines())
