from __future__ import annotations

"""Tray indicator, renderer bridge and notification sink.

The engine runs on its own loop thread. Everything here lives on the Qt
thread; calls coming from the engine cross over through queued signals.

 - QtRenderer: ``render(snapshot)`` -> ``snapshot_ready`` signal.
 - QtNotificationSink: tray balloon messages exposed as notification
   handles; clicking the balloon runs the action and destroys the handle.
 - TrayIndicator: system tray icon + menu built from the latest snapshot.
"""

import itertools
import logging
import threading
from typing import Callable, Dict, Optional

from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtGui import QIcon
from PyQt6.QtWidgets import QApplication, QMenu, QSystemTrayIcon

from .display import (
    format_rfc3339,
    model_copy_text,
    panel_title,
    ranking_copy_text,
    ranking_lines,
    reset_cycle,
    summarize_quota,
)
from .models import PanelSnapshot

_log = logging.getLogger(__name__)

APP_TITLE = "Cursor Usage"

ICON_NAMES = {
    "100": "battery-level-100-symbolic",
    "90": "battery-level-90-symbolic",
    "80": "battery-level-80-symbolic",
    "70": "battery-level-70-symbolic",
    "60": "battery-level-60-symbolic",
    "50": "battery-level-50-symbolic",
    "40": "battery-level-40-symbolic",
    "30": "battery-level-30-symbolic",
    "low": "battery-low-symbolic",
    "action": "battery-action-symbolic",
}
IDLE_ICON = "emblem-system-symbolic"


class QtRenderer(QObject):
    snapshot_ready = pyqtSignal(object)  # PanelSnapshot

    def render(self, snapshot: PanelSnapshot) -> None:
        self.snapshot_ready.emit(snapshot)


class TrayNotification:
    """Handle for one balloon message; destroy callbacks fire at most once."""

    def __init__(self, sink: "QtNotificationSink", title: str, body: str, action: Callable[[], None]):
        self._sink = sink
        self.title = title
        self.body = body
        self.action = action
        self._callbacks: Dict[int, Callable[["TrayNotification"], None]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def connect_destroy(self, callback: Callable[["TrayNotification"], None]) -> int:
        with self._lock:
            token = next(self._ids)
            self._callbacks[token] = callback
        return token

    def disconnect(self, token: int) -> None:
        with self._lock:
            if self._callbacks.pop(token, None) is None:
                raise KeyError(f"handler {token} is not connected")

    def destroy(self) -> None:
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        self._sink._forget(self)
        for cb in callbacks:
            cb(self)


class QtNotificationSink(QObject):
    _show_requested = pyqtSignal(object)  # TrayNotification

    def __init__(self, tray: QSystemTrayIcon) -> None:
        super().__init__()
        self._tray = tray
        self._current: Optional[TrayNotification] = None
        self._show_requested.connect(self._do_show)
        self._tray.messageClicked.connect(self._on_message_clicked)

    def show(self, title: str, body: str, action_label: str, action: Callable[[], None]) -> TrayNotification:
        handle = TrayNotification(self, title, f"{body}\n\n{action_label}: click this message", action)
        self._show_requested.emit(handle)
        return handle

    # --- Qt thread ------------------------------------------------------
    def _do_show(self, handle: TrayNotification) -> None:  # pragma: no cover UI
        if handle.destroyed:
            return
        self._current = handle
        self._tray.showMessage(handle.title, handle.body, QSystemTrayIcon.MessageIcon.Information, 0)

    def _on_message_clicked(self) -> None:  # pragma: no cover UI
        handle = self._current
        if handle is None or handle.destroyed:
            return
        try:
            handle.action()
        except Exception:
            _log.exception("notification action failed")
        handle.destroy()

    def _forget(self, handle: TrayNotification) -> None:
        if self._current is handle:
            self._current = None


class TrayIndicator(QObject):  # pragma: no cover - UI heavy
    def __init__(
        self,
        on_refresh: Callable[[], None],
        on_preferences: Callable[[], None],
        on_quit: Callable[[], None],
    ) -> None:
        super().__init__()
        self._on_refresh = on_refresh
        self._on_preferences = on_preferences
        self._on_quit = on_quit

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(QIcon.fromTheme(IDLE_ICON))
        self.tray.setToolTip(f"{APP_TITLE}: Loading...")
        self._menu = QMenu()
        self.tray.setContextMenu(self._menu)
        self.tray.activated.connect(self._on_activated)
        self.tray.setVisible(True)
        self.apply_snapshot(None)

    # --- Public API -----------------------------------------------------
    def apply_snapshot(self, snapshot: Optional[PanelSnapshot]) -> None:
        self._menu.clear()
        title = self._menu.addAction(APP_TITLE)
        title.setEnabled(False)
        if snapshot is None or snapshot.usage is None:
            self.tray.setToolTip(f"{APP_TITLE}: {panel_title(snapshot) if snapshot else 'Loading...'}")
            self._add_common_actions()
            return

        summary = summarize_quota(snapshot.usage, snapshot.monthly_quota)
        self.tray.setIcon(QIcon.fromTheme(ICON_NAMES[summary.icon_tier], QIcon.fromTheme(IDLE_ICON)))
        self.tray.setToolTip(f"{APP_TITLE}: {panel_title(snapshot)}")
        _log.debug(
            "display: %s requests, used %s%%, remaining %s%%, quota %s, tier %s",
            summary.num_requests,
            summary.used_percent,
            summary.remaining_percent,
            summary.monthly_quota,
            summary.icon_tier,
        )

        if snapshot.usage.start_of_month:
            try:
                cycle = reset_cycle(snapshot.usage.start_of_month)
                self._add_info(
                    f"Reset Start: {format_rfc3339(cycle.start)}\n"
                    f"Reset Next: {format_rfc3339(cycle.next_reset)}\n"
                    f"Days Passed: {cycle.days_passed}/{cycle.total_days} ({cycle.days_passed_percent}%)"
                )
            except ValueError:
                _log.warning("bad startOfMonth %r", snapshot.usage.start_of_month)
        self._add_info(
            f"Premium Requests Used: {summary.num_requests} / {summary.monthly_quota} ({summary.used_percent}%)"
        )

        lines = ranking_lines(snapshot.team_info, snapshot.user_analytics)
        if lines:
            self._menu.addSeparator()
            lines_text, tabs_text = ranking_copy_text(snapshot.team_info, snapshot.user_analytics)
            for text, copy in ((lines[0], lines_text), (lines[1], lines_text), (lines[2], tabs_text), (lines[3], tabs_text)):
                self._add_copyable(text, copy)

        for model, usage in snapshot.usage.models.items():
            self._menu.addSeparator()
            self._add_copyable(
                f"{model}\nRequests: {usage.num_requests}\nTokens: {usage.num_tokens}",
                model_copy_text(model, usage.num_requests, usage.num_tokens),
            )
        self._add_common_actions()

    def on_engine_status(self, status: str) -> None:
        _log.info("engine %s", status)
        if status != "running":
            self.tray.setToolTip(f"{APP_TITLE}: engine {status}")

    # --- Internal -------------------------------------------------------
    def _add_info(self, text: str) -> None:
        act = self._menu.addAction(text)
        act.setEnabled(False)

    def _add_copyable(self, text: str, copy_text: str) -> None:
        act = self._menu.addAction(text)
        act.triggered.connect(lambda _checked=False, t=copy_text: self._copy(t))

    def _copy(self, text: str) -> None:
        QApplication.clipboard().setText(text)
        _log.debug("copied to clipboard: %s", text)

    def _add_common_actions(self) -> None:
        self._menu.addSeparator()
        self._menu.addAction("Refresh").triggered.connect(lambda: self._on_refresh())
        self._menu.addSeparator()
        self._menu.addAction("Preferences").triggered.connect(lambda: self._on_preferences())
        self._menu.addAction("Quit").triggered.connect(lambda: self._on_quit())

    def _on_activated(self, reason: QSystemTrayIcon.ActivationReason) -> None:
        if reason == QSystemTrayIcon.ActivationReason.Trigger:
            self._on_refresh()


__all__ = ["QtRenderer", "QtNotificationSink", "TrayNotification", "TrayIndicator", "ICON_NAMES"]
