from .background_service import BackgroundTrigger, NullWakeSource, SignalWakeSource
from .cart_service import CartService
from .catalog_service import CatalogService
from .connectivity_service import ConnectivityMonitor, ConnectivityStatus
from .event_bus import EventBus
from .notification_service import Notification, NotificationService
from .operations_service import OperationsService
from .remote_gateway import HttpRemoteGateway
from .reporting_service import ReportingService
from .sales_service import SalesService
from .settings_service import SettingsService
from .sync_service import SyncReconciler

__all__ = [
    "BackgroundTrigger",
    "NullWakeSource",
    "SignalWakeSource",
    "CartService",
    "CatalogService",
    "ConnectivityMonitor",
    "ConnectivityStatus",
    "EventBus",
    "Notification",
    "NotificationService",
    "OperationsService",
    "HttpRemoteGateway",
    "ReportingService",
    "SalesService",
    "SettingsService",
    "SyncReconciler",
]
