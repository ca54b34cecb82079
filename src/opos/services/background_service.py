from __future__ import annotations

import logging
import signal
import threading
from typing import Callable, Protocol

log = logging.getLogger("opos.sync")


class WakeSource(Protocol):
    def register(self, callback: Callable[[], None]) -> bool: ...
    def unregister(self) -> None: ...


class NullWakeSource:
    """Hosting context without an external wake mechanism."""

    def register(self, callback: Callable[[], None]) -> bool:
        return False

    def unregister(self) -> None:
        return None


class SignalWakeSource:
    """Wake a drain when the process receives a POSIX signal (SIGUSR1 by default).

    ``kill -USR1 <pid>`` from a scheduler or push receiver nudges the sync.
    Handlers can only be installed from the main thread, and the signal does
    not exist on every platform; both cases make ``register`` fail.
    """

    def __init__(self, signum: int | None = None):
        self.signum = signum if signum is not None else getattr(signal, "SIGUSR1", None)
        self._previous = None

    def register(self, callback: Callable[[], None]) -> bool:
        if self.signum is None:
            raise OSError("Wake signal is not supported on this platform.")
        self._previous = signal.signal(self.signum, lambda _signum, _frame: callback())
        return True

    def unregister(self) -> None:
        if self.signum is None or self._previous is None:
            return
        try:
            signal.signal(self.signum, self._previous)
        except ValueError as e:
            log.warning("wake_signal_restore_failed error=%s", e)
        self._previous = None


class BackgroundTrigger:
    """Runs drains without a foreground action.

    A daemon timer thread drains every ``interval`` seconds; an external
    wake signal or ``request_background_sync`` makes it drain early. The
    timer is the guaranteed path, the wake source is best-effort.
    """

    def __init__(self, reconciler, interval: float = 30.0, wake_source: WakeSource | None = None):
        self.reconciler = reconciler
        self.interval = float(interval)
        self.wake_source = wake_source or NullWakeSource()

        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: threading.Thread | None = None
        self.wake_registered = False

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop.clear()
        self._wake.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="opos-sync-timer")
        self._thread.start()
        self.wake_registered = self._register_wake_source()
        log.info("background_trigger_started interval=%.0fs wake=%s", self.interval, self.wake_registered)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if self.wake_registered:
            self.wake_source.unregister()
            self.wake_registered = False

    def _register_wake_source(self) -> bool:
        try:
            return bool(self.wake_source.register(self.request_background_sync))
        except (OSError, ValueError, RuntimeError) as e:
            log.warning("wake_signal_registration_failed error=%s", e)
            return False

    def request_background_sync(self) -> bool:
        """Ask the timer thread to drain as soon as possible. Never raises."""
        if not self.is_running():
            log.debug("background_sync_not_available reason=not_running")
            return False
        self._wake.set()
        return True

    def fire(self, reason: str = "manual") -> bool:
        """Run one drain in the calling thread; errors are logged, not raised."""
        try:
            ran = self.reconciler.drain()
        except Exception:
            log.exception("background_drain_failed reason=%s", reason)
            return False
        log.debug("background_drain reason=%s ran=%s", reason, ran)
        return ran

    def _loop(self) -> None:
        while not self._stop.is_set():
            woken = self._wake.wait(self.interval)
            if self._stop.is_set():
                break
            self._wake.clear()
            self.fire("wake" if woken else "timer")
