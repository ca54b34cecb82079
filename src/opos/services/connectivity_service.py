from __future__ import annotations

import logging
import threading
from enum import Enum

from opos.domain.errors import TransportError
from opos.services.event_bus import CONNECTIVITY_CHANGED, EventBus

log = logging.getLogger("opos.sync")


class ConnectivityStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ConnectivityMonitor:
    """Last known reachability of the remote API.

    The status is a hint: it starts OFFLINE and only changes on an
    environment signal (``set_online``) or a probe result. Callers that
    talk to the remote still treat a transport failure as authoritative.
    """

    def __init__(self, events: EventBus, gateway=None, probe_interval: float = 15.0):
        self.events = events
        self.gateway = gateway
        self.probe_interval = float(probe_interval)

        self._lock = threading.Lock()
        self._online = False
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def status(self) -> ConnectivityStatus:
        with self._lock:
            return ConnectivityStatus.ONLINE if self._online else ConnectivityStatus.OFFLINE

    def is_online(self) -> bool:
        return self.status() is ConnectivityStatus.ONLINE

    def set_online(self, online: bool) -> bool:
        """Apply a reachability signal. Returns True when the status changed."""
        online = bool(online)
        with self._lock:
            changed = online != self._online
            self._online = online
        if changed:
            status = ConnectivityStatus.ONLINE if online else ConnectivityStatus.OFFLINE
            log.info("connectivity_changed status=%s", status.value)
            self.events.publish(CONNECTIVITY_CHANGED, {"status": status.value, "online": online})
        return changed

    def probe(self) -> ConnectivityStatus:
        if self.gateway is None:
            return self.status()
        try:
            self.gateway.health()
            self.set_online(True)
        except TransportError as e:
            log.debug("connectivity_probe_failed error=%s", e)
            self.set_online(False)
        return self.status()

    # ---------- Background loop ----------
    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="opos-connectivity")
        self._thread.start()
        log.info("connectivity_monitor_started interval=%.0fs", self.probe_interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.probe()
            except Exception:
                log.exception("connectivity_probe_crashed")
            self._stop.wait(self.probe_interval)
