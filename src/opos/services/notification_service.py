from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from opos.services.event_bus import (
    CONNECTIVITY_CHANGED,
    SALE_SYNC_FAILED,
    SALE_SYNCED,
    SYNC_COMPLETED,
    EventBus,
)

log = logging.getLogger("opos.notifications")


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    tag: str
    data: dict = field(default_factory=dict)


def log_sink(n: Notification) -> None:
    log.info("notification tag=%s title=%s body=%s", n.tag, n.title, n.body)


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


class NotificationService:
    """Turns sync events into cashier-facing notifications."""

    def __init__(
        self,
        events: EventBus,
        settings,
        reconciler=None,
        catalog=None,
        sink: Optional[Callable[[Notification], None]] = None,
    ):
        self.events = events
        self.settings = settings
        self.reconciler = reconciler
        self.catalog = catalog
        self.sink = sink or log_sink
        self._unsubscribers: list[Callable[[], None]] = []

    def start(self) -> None:
        if self._unsubscribers:
            return
        for topic, handler in (
            (SALE_SYNCED, self._on_sale_synced),
            (SALE_SYNC_FAILED, self._on_sale_failed),
            (SYNC_COMPLETED, self._on_sync_completed),
            (CONNECTIVITY_CHANGED, self._on_connectivity),
        ):
            self._unsubscribers.append(self.events.subscribe(topic, handler))

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def enabled(self) -> bool:
        return bool(self.settings.get("notifications_enabled", True))

    def notify(self, n: Notification) -> bool:
        if not self.enabled():
            return False
        self.sink(n)
        return True

    def _on_sale_synced(self, _topic: str, event: dict) -> None:
        sale_id = str(event.get("saleId", ""))
        self.notify(Notification(
            title="Sale Synced Successfully!",
            body=f"Sale #{sale_id[-8:]} has been synced to the server.",
            tag="sync-success",
            data={"saleId": sale_id},
        ))

    def _on_sale_failed(self, _topic: str, event: dict) -> None:
        sale_id = str(event.get("saleId", ""))
        self.notify(Notification(
            title="Sync Failed",
            body=f"Failed to sync sale #{sale_id[-8:]}. Will retry when online.",
            tag="sync-error",
            data={"saleId": sale_id, "error": event.get("error")},
        ))

    def _on_sync_completed(self, _topic: str, event: dict) -> None:
        count = int(event.get("synced", 0))
        if count == 0 or int(event.get("failed", 0)) > 0:
            return
        self.notify(Notification(
            title="All Sales Synced!",
            body=f"Successfully synced {count} pending sale{_plural(count)} to the server.",
            tag="batch-sync-complete",
            data={"count": count},
        ))

    def _on_connectivity(self, _topic: str, event: dict) -> None:
        if not event.get("online"):
            self.notify(Notification(
                title="Offline Mode Active",
                body="You're now offline. Sales will be saved locally and synced when you're back online.",
                tag="offline-mode",
            ))
            return
        pending = self.reconciler.pending_count() if self.reconciler is not None else 0
        if pending > 0:
            self.notify(Notification(
                title="Back Online!",
                body=f"You're back online. Syncing {pending} pending sale{_plural(pending)}...",
                tag="back-online",
                data={"pendingCount": pending},
            ))

    def check_low_stock(self) -> int:
        if self.catalog is None:
            return 0
        threshold = int(self.settings.get("low_stock_threshold", 10))
        sent = 0
        for p in self.catalog.low_stock(threshold):
            if self.notify(Notification(
                title="Low Stock Alert!",
                body=f"{p.name} is running low ({p.stock} remaining). Consider restocking.",
                tag="low-stock",
                data={"productName": p.name, "stock": p.stock},
            )):
                sent += 1
        return sent
