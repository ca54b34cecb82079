from __future__ import annotations

import logging
from typing import Any

from opos.domain.errors import StorageUnavailable
from opos.repositories.contracts import SETTINGS

log = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "notifications_enabled": True,
    "low_stock_threshold": 10,
    "last_sync_at": None,
}


class SettingsService:
    def __init__(self, store):
        self.store = store

    def get(self, key: str, default: Any = None) -> Any:
        fallback = DEFAULTS.get(key) if default is None else default
        try:
            row = self.store.get(SETTINGS, key)
        except StorageUnavailable as e:
            log.warning("setting_read_failed key=%s error=%s", key, e)
            return fallback
        if row is None:
            return fallback
        return row.get("value", fallback)

    def set(self, key: str, value: Any) -> None:
        self.store.put(SETTINGS, {"key": key, "value": value})

    def all(self) -> dict[str, Any]:
        out = dict(DEFAULTS)
        try:
            rows = self.store.get_all(SETTINGS)
        except StorageUnavailable as e:
            log.warning("settings_read_failed error=%s", e)
            return out
        for row in rows:
            out[str(row["key"])] = row.get("value")
        return out
