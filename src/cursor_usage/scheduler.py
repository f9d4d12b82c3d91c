from __future__ import annotations

"""Named repeating timers on the engine's event loop.

Design:
 - One handle per name; starting a name cancels its previous handle first,
   so a name never has two live timers.
 - Timers re-arm themselves before running the callback.
 - ``call_later`` defaults to the running asyncio loop's and can be replaced
   (tests drive a simulated clock through it).
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Protocol

_log = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


CallLater = Callable[[float, Callable[[], None]], TimerHandle]


class Scheduler:
    def __init__(self, call_later: Optional[CallLater] = None) -> None:
        self._call_later = call_later
        self._handles: Dict[str, TimerHandle] = {}
        self._intervals: Dict[str, float] = {}

    # --- Public API -----------------------------------------------------
    def start(self, name: str, interval: float, callback: Callable[[], Any]) -> None:
        if interval <= 0:
            raise ValueError(f"timer {name!r} needs a positive interval, got {interval}")
        self.cancel(name)
        self._intervals[name] = interval
        _log.debug("starting timer %s every %ss", name, interval)
        self._arm(name, interval, callback)

    def cancel(self, name: str) -> bool:
        handle = self._handles.pop(name, None)
        self._intervals.pop(name, None)
        if handle is None:
            return False
        _log.debug("cancelling timer %s", name)
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for name in list(self._handles):
            self.cancel(name)

    def is_active(self, name: str) -> bool:
        return name in self._handles

    def interval(self, name: str) -> Optional[float]:
        return self._intervals.get(name)

    # --- Internal -------------------------------------------------------
    def _arm(self, name: str, interval: float, callback: Callable[[], Any]) -> None:
        call_later = self._call_later or asyncio.get_running_loop().call_later
        handle: TimerHandle

        def fire() -> None:
            if self._handles.get(name) is not handle:
                return
            self._arm(name, interval, callback)
            callback()

        handle = call_later(interval, fire)
        self._handles[name] = handle


__all__ = ["Scheduler", "CallLater", "TimerHandle"]
