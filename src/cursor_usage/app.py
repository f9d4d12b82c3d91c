from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QUrl
from PyQt6.QtGui import QDesktopServices
from PyQt6.QtWidgets import QApplication

from .database_manager import DBConfig, DatabaseManager
from .engine_host import EngineHost
from .keys import KeyringSecretStore, redact
from .logging_setup import configure_logging
from .preferences import PreferencesDialog
from .settings_store import COOKIE, DEBUG_MODE, SettingsStore
from .tray import QtNotificationSink, QtRenderer, TrayIndicator


APP_NAME = "Cursor Usage"
HOME_ENV = "CURSOR_USAGE_HOME"


@dataclass(slots=True)
class AppState:
    data_dir: Path
    db: DatabaseManager
    settings: SettingsStore


def get_data_dir() -> Path:
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / "cursor-usage"


def get_app_state() -> AppState:  # pragma: no cover - touches the user's data dir
    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    db = DatabaseManager(DBConfig(path=data_dir / "settings.sqlite"))
    db.init_db()
    settings = SettingsStore(db, secrets=KeyringSecretStore(data_dir))
    # Logging first, level follows debug-mode
    configure_logging(data_dir, logging.DEBUG if settings.get_boolean(DEBUG_MODE) else logging.INFO)
    logging.getLogger(__name__).info(
        "app_state_created", extra={"_json_cookie": redact(settings.get_string(COOKIE))}
    )
    return AppState(data_dir=data_dir, db=db, settings=settings)


def _open_url(url: str) -> bool:  # pragma: no cover UI
    return QDesktopServices.openUrl(QUrl(url))


def run(argv: Optional[list[str]] = None) -> int:  # pragma: no cover UI
    if argv is None:
        argv = sys.argv
    app = QApplication(argv)
    app.setApplicationName(APP_NAME)
    app.setQuitOnLastWindowClosed(False)
    state = get_app_state()

    renderer = QtRenderer()
    prefs: dict[str, PreferencesDialog] = {}
    host: EngineHost

    def open_preferences() -> None:
        dlg = prefs.get("dialog")
        if dlg is None:
            dlg = PreferencesDialog(state.settings)
            prefs["dialog"] = dlg
        dlg.show()
        dlg.raise_()
        dlg.activateWindow()

    indicator = TrayIndicator(
        on_refresh=lambda: host.refresh(),
        on_preferences=open_preferences,
        on_quit=app.quit,
    )
    renderer.snapshot_ready.connect(indicator.apply_snapshot)
    sink = QtNotificationSink(indicator.tray)
    host = EngineHost(state.settings, renderer.render, sink, open_url=_open_url)
    host.status_changed.connect(indicator.on_engine_status)
    app.aboutToQuit.connect(host.stop)
    app.aboutToQuit.connect(state.db.close)
    host.start()

    if not state.settings.get_string(COOKIE):
        open_preferences()
    return app.exec()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(run())
