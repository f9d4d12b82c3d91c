from __future__ import annotations

"""Runs the polling engine on a dedicated asyncio loop thread.

The Qt thread owns the widgets; the loop thread owns the engine and its
HTTP client. ``refresh`` and ``stop`` may be called from the Qt thread.
"""

import asyncio
import logging
import shlex
import sys
import threading
from typing import Callable, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from .engine import Renderer, UsageEngine
from .http_client import HelperRequestClient, RequestClient, SessionRequestClient
from .notifications import NotificationSink
from .settings_store import HELPER_COMMAND, HTTP_CLIENT, SettingsStore

_log = logging.getLogger(__name__)

BUNDLED_HELPER = [sys.executable, "-m", "cursor_usage.http_helper"]


def build_client(settings: SettingsStore) -> RequestClient:
    """Pick the request strategy from the ``http-client`` setting."""
    kind = settings.get_string(HTTP_CLIENT).strip().lower()
    if kind == "session":
        _log.info("using in-process HTTP session")
        return SessionRequestClient()
    if kind != "helper":
        _log.warning("unknown http-client %r; using helper", kind)
    command = shlex.split(settings.get_string(HELPER_COMMAND)) or BUNDLED_HELPER
    _log.info("using HTTP helper %s", command[0])
    return HelperRequestClient(command)


class EngineHost(QObject):
    status_changed = pyqtSignal(str)

    def __init__(
        self,
        settings: SettingsStore,
        renderer: Renderer,
        sink: NotificationSink,
        open_url: Callable[[str], object] | None = None,
    ) -> None:
        super().__init__()
        self._settings = settings
        self._renderer = renderer
        self._sink = sink
        self._open_url = open_url
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._ready = threading.Event()
        self.engine: Optional[UsageEngine] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._ready.clear()
        self._thread = threading.Thread(target=self._thread_main, name="CursorUsage-Engine", daemon=True)
        self._thread.start()
        self._ready.wait(timeout=5.0)

    def stop(self) -> None:
        loop, event = self._loop, self._stop_event
        if loop is not None and event is not None and loop.is_running():
            loop.call_soon_threadsafe(event.set)
        if self._thread:
            self._thread.join(timeout=5.0)
        self._thread = None
        self._loop = None
        self.engine = None

    def refresh(self) -> None:
        if self.engine is not None:
            self.engine.refresh()

    # Background thread ----------------------------------------------------

    def _thread_main(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._run())
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    async def _run(self) -> None:
        self._stop_event = asyncio.Event()
        client = build_client(self._settings)
        engine = UsageEngine(
            self._settings,
            client,
            self._renderer,
            self._sink,
            open_url=self._open_url,
        )
        self.engine = engine
        try:
            engine.start()
            self.status_changed.emit("running")
            self._ready.set()
            await self._stop_event.wait()
        finally:
            self._ready.set()
            engine.dispose()
            await client.aclose()
            self.status_changed.emit("stopped")


__all__ = ["EngineHost", "build_client", "BUNDLED_HELPER"]
