from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from opos.domain.errors import NotFoundError, StorageUnavailable, TransportError, ValidationError
from opos.domain.models import Product, parse_int, parse_money
from opos.repositories.contracts import PRODUCTS

log = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {"id": 1, "name": "Coffee", "price": 3.5, "stock": 100, "category": "Beverages", "barcode": "1234567890123"},
    {"id": 2, "name": "Sandwich", "price": 8.99, "stock": 50, "category": "Food", "barcode": "1234567890124"},
    {"id": 3, "name": "Water Bottle", "price": 1.99, "stock": 200, "category": "Beverages", "barcode": "1234567890125"},
    {"id": 4, "name": "Chips", "price": 2.49, "stock": 75, "category": "Snacks", "barcode": "1234567890126"},
    {"id": 5, "name": "Energy Bar", "price": 4.99, "stock": 30, "category": "Snacks", "barcode": "1234567890127"},
]


class CatalogService:
    def __init__(self, store, gateway, connectivity):
        self.store = store
        self.gateway = gateway
        self.connectivity = connectivity

    def cached_products(self) -> list[Product]:
        try:
            rows = self.store.get_all(PRODUCTS)
        except StorageUnavailable as e:
            log.warning("catalog_cache_unavailable error=%s", e)
            return []

        products = []
        for raw in rows:
            try:
                products.append(Product.from_dict(raw))
            except ValidationError as e:
                log.warning("catalog_cache_row_skipped id=%s error=%s", raw.get("id"), e)
        products.sort(key=lambda p: p.name.lower())
        return products

    def load_products(self) -> list[Product]:
        """Fresh catalog when reachable, cached catalog otherwise."""
        if not self.connectivity.is_online():
            return self.cached_products()

        try:
            products = self.gateway.fetch_catalog()
        except TransportError as e:
            log.warning("catalog_fetch_failed error=%s", e)
            return self.cached_products()

        try:
            self.store.put_many(PRODUCTS, [p.to_dict() for p in products])
        except StorageUnavailable as e:
            log.warning("catalog_cache_write_failed error=%s", e)
        log.info("catalog_refreshed count=%s", len(products))
        return sorted(products, key=lambda p: p.name.lower())

    def get_product(self, product_id: int) -> Product:
        try:
            raw = self.store.get(PRODUCTS, int(product_id))
        except StorageUnavailable as e:
            raise NotFoundError("Product not available.") from e
        if raw is None:
            raise NotFoundError("Product not found.")
        return Product.from_dict(raw)

    def search(self, term: str = "", category: Optional[str] = None, products: list[Product] | None = None) -> list[Product]:
        items = self.cached_products() if products is None else products
        needle = (term or "").strip().lower()
        if needle:
            items = [p for p in items if needle in p.name.lower() or (p.barcode is not None and needle in p.barcode)]
        if category and category != "all":
            items = [p for p in items if p.category == category]
        return items

    def categories(self, products: list[Product] | None = None) -> list[str]:
        items = self.cached_products() if products is None else products
        seen: list[str] = []
        for p in items:
            if p.category not in seen:
                seen.append(p.category)
        return ["all", *seen]

    def low_stock(self, threshold: int = 10) -> list[Product]:
        return [p for p in self.cached_products() if p.stock < threshold]

    def seed_sample_products(self) -> int:
        if self.cached_products():
            return 0
        try:
            count = self.store.put_many(PRODUCTS, SAMPLE_PRODUCTS)
        except StorageUnavailable as e:
            log.warning("sample_products_not_seeded error=%s", e)
            return 0
        log.info("sample_products_seeded count=%s", count)
        return count

    def add_product(
        self,
        name: str,
        price: float | Decimal,
        stock: int,
        category: str,
        barcode: str | None = None,
        image_url: str | None = None,
    ) -> Product:
        name = str(name or "").strip()
        category = str(category or "").strip()
        if not name or not category:
            raise ValidationError("Name and Category are required.")
        price = parse_money(price, "Price")
        stock = parse_int(stock, "Stock")
        barcode = str(barcode or "").strip() or None
        if barcode is not None and any(p.barcode == barcode for p in self.cached_products()):
            raise ValidationError(f"Barcode {barcode} is already in use.")

        payload = {"name": name, "price": float(price), "stock": stock, "category": category}
        if barcode is not None:
            payload["barcode"] = barcode
        if image_url:
            payload["image_url"] = image_url.strip()

        created = self.gateway.create_product(payload)
        try:
            self.store.put(PRODUCTS, created.to_dict())
        except StorageUnavailable as e:
            log.warning("product_cache_write_failed id=%s error=%s", created.id, e)
        log.info("product_created id=%s name=%s", created.id, created.name)
        return created
