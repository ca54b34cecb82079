from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from opos.config import SyncSettings
from opos.domain.errors import StorageUnavailable
from opos.repositories.contracts import LocalStore
from opos.repositories.memory_repo import MemoryStore
from opos.repositories.sqlite_repo import SqliteStore
from opos.services.background_service import BackgroundTrigger, NullWakeSource, WakeSource
from opos.services.cart_service import CartService
from opos.services.catalog_service import CatalogService
from opos.services.connectivity_service import ConnectivityMonitor
from opos.services.event_bus import CONNECTIVITY_CHANGED, EventBus
from opos.services.notification_service import NotificationService
from opos.services.operations_service import OperationsService
from opos.services.remote_gateway import HttpRemoteGateway
from opos.services.reporting_service import ReportingService
from opos.services.sales_service import SalesService
from opos.services.settings_service import SettingsService
from opos.services.sync_service import SyncReconciler

log = logging.getLogger(__name__)


@dataclass
class AppContainer:
    store: LocalStore
    events: EventBus
    gateway: object
    connectivity: ConnectivityMonitor
    settings: SettingsService
    reconciler: SyncReconciler
    trigger: BackgroundTrigger
    catalog: CatalogService
    cart: CartService
    sales: SalesService
    notifications: NotificationService
    reporting: ReportingService
    operations: OperationsService
    _started: bool = field(default=False, repr=False)

    def start(self, probe: bool = True) -> None:
        """Start background components: notifications, probe loop, sync timer."""
        if self._started:
            return
        self.notifications.start()
        if probe:
            self.connectivity.start()
        self.trigger.start()
        self._started = True
        log.info("app_started")

    def stop(self) -> None:
        if not self._started:
            return
        self.trigger.stop()
        self.connectivity.stop()
        self.notifications.stop()
        self._started = False
        log.info("app_stopped")


def build_store(db_path: Path | str | None) -> LocalStore:
    if db_path is None:
        log.info("store_selected kind=memory")
        return MemoryStore()

    store = SqliteStore(db_path)
    try:
        store.init_db()
    except StorageUnavailable as e:
        # Kept anyway: every call raises StorageUnavailable and callers degrade.
        log.error("store_unavailable path=%s error=%s", db_path, e)
    return store


def build_container(
    db_path: Path | str | None,
    settings: SyncSettings | None = None,
    gateway=None,
    wake_source: WakeSource | None = None,
    logs_dir: Path | str | None = None,
    store: LocalStore | None = None,
    drain_on_reconnect: bool = True,
) -> AppContainer:
    settings = settings or SyncSettings()
    store = store if store is not None else build_store(db_path)
    events = EventBus()
    gateway = gateway or HttpRemoteGateway(settings.api_base_url, timeout=settings.http_timeout)

    connectivity = ConnectivityMonitor(events, gateway=gateway, probe_interval=settings.probe_interval)
    app_settings = SettingsService(store)
    reconciler = SyncReconciler(store, gateway, connectivity, events, settings=app_settings)
    trigger = BackgroundTrigger(reconciler, interval=settings.sync_interval, wake_source=wake_source or NullWakeSource())
    catalog = CatalogService(store, gateway, connectivity)
    cart = CartService(store)
    sales = SalesService(cart, reconciler, trigger)
    notifications = NotificationService(events, app_settings, reconciler=reconciler, catalog=catalog)
    reporting = ReportingService(reconciler)

    if logs_dir is None:
        logs_dir = Path(db_path).parent / "logs" if db_path is not None else Path.cwd() / "logs"
    operations = OperationsService(store, reconciler, connectivity, db_path=db_path, logs_dir=logs_dir)

    def _drain_on_reconnect(_topic: str, event: dict) -> None:
        if event.get("online"):
            trigger.fire("connectivity")

    if drain_on_reconnect:
        events.subscribe(CONNECTIVITY_CHANGED, _drain_on_reconnect)

    return AppContainer(
        store=store,
        events=events,
        gateway=gateway,
        connectivity=connectivity,
        settings=app_settings,
        reconciler=reconciler,
        trigger=trigger,
        catalog=catalog,
        cart=cart,
        sales=sales,
        notifications=notifications,
        reporting=reporting,
        operations=operations,
    )
