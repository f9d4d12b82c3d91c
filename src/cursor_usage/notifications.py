from __future__ import annotations

"""Lifecycle of the single "update available" notification.

Invariants:
 - At most one tracked notification at a time.
 - The destroy subscription exists exactly while its handle is tracked.
 - ``notified_version`` is cleared whenever the handle is.

A destroy event can arrive late, after a replacement has already been
shown; ``on_external_destroy`` ignores handles that are no longer tracked.
"""

import logging
from typing import Any, Callable, Optional, Protocol

_log = logging.getLogger(__name__)

DestroyCallback = Callable[["NotificationHandle"], None]
Dispatch = Callable[..., Any]


class NotificationHandle(Protocol):
    def connect_destroy(self, callback: DestroyCallback) -> int: ...

    def disconnect(self, token: int) -> None: ...

    def destroy(self) -> None: ...


class NotificationSink(Protocol):
    def show(
        self, title: str, body: str, action_label: str, action: Callable[[], None]
    ) -> NotificationHandle: ...


def _call_now(fn: Callable[..., Any], *args: Any) -> Any:
    return fn(*args)


class NotificationLifecycle:
    def __init__(self, sink: NotificationSink, dispatch: Dispatch | None = None):
        self._sink = sink
        # destroy events may originate on another thread; dispatch hops back
        self._dispatch: Dispatch = dispatch or _call_now
        self._handle: Optional[NotificationHandle] = None
        self._destroy_token: Optional[int] = None
        self._notified_version: Optional[str] = None

    # --- Properties -----------------------------------------------------
    @property
    def notified_version(self) -> Optional[str]:
        return self._notified_version

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> Optional[NotificationHandle]:
        return self._handle

    # --- Public API -----------------------------------------------------
    def show(
        self,
        version: str,
        title: str,
        body: str,
        action_label: str,
        action: Callable[[], None],
    ) -> NotificationHandle:
        if self._handle is not None:
            _log.debug("replacing notification for %s", self._notified_version)
            self._teardown()
        handle = self._sink.show(title, body, action_label, action)
        self._destroy_token = handle.connect_destroy(
            lambda h: self._dispatch(self.on_external_destroy, h)
        )
        self._handle = handle
        self._notified_version = version
        _log.info("update notification shown for %s", version)
        return handle

    def clear(self) -> None:
        if self._handle is not None:
            _log.debug("clearing notification for %s", self._notified_version)
            self._teardown()
        self._notified_version = None

    def on_external_destroy(self, handle: NotificationHandle) -> None:
        if handle is not self._handle:
            _log.debug("stale notification destroyed; tracked state unchanged")
            return
        _log.debug("tracked notification dismissed externally")
        self._handle = None
        self._destroy_token = None
        self._notified_version = None

    # --- Internal -------------------------------------------------------
    def _teardown(self) -> None:
        handle, token = self._handle, self._destroy_token
        self._handle = None
        self._destroy_token = None
        self._notified_version = None
        if handle is None:
            return
        if token is not None:
            try:
                handle.disconnect(token)
            except (KeyError, ValueError, RuntimeError, TypeError) as e:
                _log.debug("destroy handler already disconnected: %s", e)
        handle.destroy()


__all__ = [
    "NotificationHandle",
    "NotificationSink",
    "NotificationLifecycle",
]
