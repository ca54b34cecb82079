from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from opos.domain.models import Sale
from opos.repositories.contracts import PENDING_SALES, SYNCED_SALES, LocalStore


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def record_pending(self, sale: Sale) -> None: ...
    def record_synced(self, sale: Sale) -> Sale: ...
    def relocate_to_synced(self, sale: Sale) -> Sale: ...


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work adapter for the sale write paths.

    The store has no cross-partition transaction. Relocation writes the
    synced copy first and removes the pending one second; both steps are
    idempotent upserts/deletes by sale id, so replaying a relocation after
    an interruption converges to a single synced entry.
    """

    store: LocalStore

    def __enter__(self) -> "RepositoryUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def record_pending(self, sale: Sale) -> None:
        self.store.put(PENDING_SALES, sale.to_dict())

    def record_synced(self, sale: Sale) -> Sale:
        synced = sale.mark_synced()
        self.store.put(SYNCED_SALES, synced.to_dict())
        return synced

    def relocate_to_synced(self, sale: Sale) -> Sale:
        synced = self.record_synced(sale)
        self.store.delete(PENDING_SALES, sale.id)
        return synced
