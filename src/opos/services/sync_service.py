from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from opos.domain.errors import (
    DuplicateError,
    NotFoundError,
    StorageUnavailable,
    TransportError,
    ValidationError,
)
from opos.domain.models import Sale, utc_now_iso
from opos.repositories.contracts import PENDING_SALES, SYNCED_SALES, LocalStore
from opos.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork
from opos.services.event_bus import (
    PENDING_COUNT_CHANGED,
    SALE_SYNC_FAILED,
    SALE_SYNCED,
    SYNC_COMPLETED,
    EventBus,
)

log = logging.getLogger("opos.sync")


class SyncReconciler:
    """Moves sales from the pending partition to the synced partition.

    Delivery is at-least-once: a sale is relocated only after the remote
    answered with a created record or a duplicate rejection. Anything else
    leaves it pending for the next pass, with no retry ceiling.
    """

    def __init__(
        self,
        store: LocalStore,
        gateway,
        connectivity,
        events: EventBus,
        settings=None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.connectivity = connectivity
        self.events = events
        self.settings = settings
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(store))
        self._drain_lock = threading.Lock()

    # ---------- Checkout path ----------
    def submit_new_sale(self, sale: Sale) -> bool:
        """Deliver a freshly created sale once, or queue it as pending.

        Returns True when the sale ended up synced. ``StorageUnavailable``
        while queueing propagates: the sale was not recorded anywhere.
        """
        delivered = False
        if self.connectivity.is_online():
            try:
                self.gateway.create_sale(sale.to_payload(), sale.id)
                delivered = True
            except DuplicateError:
                log.info("sale_already_recorded sale_id=%s", sale.id)
                delivered = True
            except TransportError as e:
                log.warning("immediate_sync_failed sale_id=%s error=%s", sale.id, e)
            except Exception:
                log.exception("immediate_sync_crashed sale_id=%s", sale.id)

        if delivered:
            try:
                with self.uow_factory() as uow:
                    uow.record_synced(sale)
            except StorageUnavailable as e:
                # Remote has the sale; no local copy exists to announce.
                log.error("synced_sale_not_stored sale_id=%s error=%s", sale.id, e)
                return True
            self.events.publish(SALE_SYNCED, {"saleId": sale.id})
            return True

        with self.uow_factory() as uow:
            uow.record_pending(sale)
        log.info("sale_queued sale_id=%s total=%s", sale.id, sale.total_amount)
        self._publish_pending_count()
        return False

    # ---------- Drain ----------
    def drain(self) -> bool:
        """Run one delivery pass over every pending sale.

        Returns False without doing anything when offline or when another
        pass is already running.
        """
        if not self.connectivity.is_online():
            log.debug("drain_skipped reason=offline")
            return False
        if not self._drain_lock.acquire(blocking=False):
            log.debug("drain_skipped reason=in_progress")
            return False
        try:
            self._drain_pass()
        finally:
            self._drain_lock.release()
        return True

    def is_draining(self) -> bool:
        return self._drain_lock.locked()

    def force_sync_now(self) -> bool:
        if not self.connectivity.is_online():
            log.info("manual_sync_skipped reason=offline")
            return False
        return self.drain()

    def _drain_pass(self) -> None:
        try:
            pending = self._load_sales(PENDING_SALES)
        except StorageUnavailable as e:
            log.warning("drain_aborted reason=store_unavailable error=%s", e)
            return

        log.info("drain_started pending=%s", len(pending))
        synced = failed = 0
        for sale in pending:
            try:
                self._deliver(sale)
                synced += 1
            except TransportError as e:
                failed += 1
                log.warning("sale_sync_failed sale_id=%s error=%s", sale.id, e)
                self.events.publish(SALE_SYNC_FAILED, {"saleId": sale.id, "error": str(e)})
            except StorageUnavailable as e:
                failed += 1
                log.error("sale_relocation_failed sale_id=%s error=%s", sale.id, e)
            except Exception as e:
                failed += 1
                log.exception("sale_sync_crashed sale_id=%s", sale.id)
                self.events.publish(SALE_SYNC_FAILED, {"saleId": sale.id, "error": str(e)})

        self._record_last_sync()
        log.info("drain_finished synced=%s failed=%s", synced, failed)
        self.events.publish(SYNC_COMPLETED, {"synced": synced, "failed": failed})
        self._publish_pending_count()

    def _deliver(self, sale: Sale) -> None:
        try:
            self.gateway.create_sale(sale.to_payload(), sale.id)
            outcome = "created"
        except DuplicateError:
            outcome = "duplicate"

        with self.uow_factory() as uow:
            uow.relocate_to_synced(sale)
        log.info("sale_synced sale_id=%s outcome=%s", sale.id, outcome)
        self.events.publish(SALE_SYNCED, {"saleId": sale.id})

    def _record_last_sync(self) -> None:
        if self.settings is None:
            return
        try:
            self.settings.set("last_sync_at", utc_now_iso())
        except StorageUnavailable as e:
            log.warning("last_sync_not_stored error=%s", e)

    # ---------- History ----------
    def _load_sales(self, partition: str) -> list[Sale]:
        sales: list[Sale] = []
        for raw in self.store.get_all(partition):
            try:
                sales.append(Sale.from_dict(raw))
            except ValidationError as e:
                log.warning("sale_row_unreadable partition=%s id=%s error=%s", partition, raw.get("id"), e)
        sales.sort(key=lambda s: s.created_at, reverse=True)
        return sales

    def synced_sales(self) -> list[Sale]:
        try:
            return self._load_sales(SYNCED_SALES)
        except StorageUnavailable as e:
            log.warning("synced_sales_unavailable error=%s", e)
            return []

    def pending_sales(self) -> list[Sale]:
        """Pending sales, newest first, excluding any already confirmed."""
        try:
            pending = self._load_sales(PENDING_SALES)
            if not pending:
                return []
            confirmed = {s.id for s in self._load_sales(SYNCED_SALES)}
        except StorageUnavailable as e:
            log.warning("pending_sales_unavailable error=%s", e)
            return []
        return [s for s in pending if s.id not in confirmed]

    def pending_count(self) -> int:
        return len(self.pending_sales())

    def remove_pending(self, sale_id: str) -> None:
        if self.store.get(PENDING_SALES, sale_id) is None:
            raise NotFoundError(f"Pending sale {sale_id} not found.")
        self.store.delete(PENDING_SALES, sale_id)
        log.warning("pending_sale_removed sale_id=%s", sale_id)
        self._publish_pending_count()

    def last_sync_at(self) -> Optional[str]:
        if self.settings is None:
            return None
        return self.settings.get("last_sync_at")

    def _publish_pending_count(self) -> None:
        self.events.publish(PENDING_COUNT_CHANGED, {"count": self.pending_count()})
