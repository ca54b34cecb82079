from __future__ import annotations

from typing import Iterable, Optional, Protocol

PRODUCTS = "products"
CART = "cart"
PENDING_SALES = "pendingSales"
SYNCED_SALES = "syncedSales"
SETTINGS = "settings"

# partition -> key field of its entities
PARTITION_KEYS: dict[str, str] = {
    PRODUCTS: "id",
    CART: "id",
    PENDING_SALES: "id",
    SYNCED_SALES: "id",
    SETTINGS: "key",
}


class LocalStore(Protocol):
    def put(self, partition: str, entity: dict) -> None: ...
    def put_many(self, partition: str, entities: Iterable[dict]) -> int: ...
    def get(self, partition: str, key: object) -> Optional[dict]: ...
    def get_all(self, partition: str) -> list[dict]: ...
    def delete(self, partition: str, key: object) -> None: ...
    def clear(self, partition: str) -> None: ...
    def count(self, partition: str) -> int: ...
    def integrity_check(self) -> str: ...
