from __future__ import annotations

"""Preferences dialog (cookie, quota, intervals, update checks)."""

import json
import logging

from PyQt6.QtWidgets import (
    QCheckBox,
    QDialog,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QSpinBox,
    QVBoxLayout,
)

from .settings_store import (
    CHECK_UPDATE,
    COOKIE,
    DEBUG_MODE,
    MONTHLY_QUOTA,
    TRIGGER_CHECK_UPDATE,
    UPDATE_INTERVAL,
    USER,
    USER_ID,
    SettingsStore,
)

_log = logging.getLogger(__name__)

COOKIE_PREFIX = "WorkosCursorSessionToken="


class PreferencesDialog(QDialog):  # pragma: no cover UI heavy
    def __init__(self, settings: SettingsStore, parent=None):
        super().__init__(parent)
        self._settings = settings
        self.setWindowTitle("Cursor Usage Preferences")

        layout = QVBoxLayout(self)
        form = QFormLayout()
        self.cookie_edit = QLineEdit(); self.cookie_edit.setEchoMode(QLineEdit.EchoMode.Password)
        self.cookie_edit.setPlaceholderText(f"{COOKIE_PREFIX}...")
        self.user_id_edit = QLineEdit(); self.user_id_edit.setPlaceholderText("derived from cookie when empty")
        self.quota_spin = QSpinBox(); self.quota_spin.setRange(1, 100_000)
        self.interval_spin = QSpinBox(); self.interval_spin.setRange(1, 86_400); self.interval_spin.setSuffix(" s")
        form.addRow("Cookie:", self.cookie_edit)
        form.addRow("User ID:", self.user_id_edit)
        form.addRow("Monthly quota:", self.quota_spin)
        form.addRow("Update interval:", self.interval_spin)
        layout.addLayout(form)

        self.check_update_cb = QCheckBox("Check for new Cursor versions")
        self.debug_cb = QCheckBox("Debug logging")
        layout.addWidget(self.check_update_cb)
        layout.addWidget(self.debug_cb)

        self.error_label = QLabel(""); self.error_label.setStyleSheet("color: #c0392b;")
        self.user_label = QLabel(""); self.user_label.setWordWrap(True)
        layout.addWidget(self.error_label)
        layout.addWidget(self.user_label)

        btn_row = QHBoxLayout()
        self.btn_check_now = QPushButton("Check Now")
        self.btn_save = QPushButton("Save")
        self.btn_close = QPushButton("Close")
        for b in (self.btn_check_now, self.btn_save, self.btn_close):
            btn_row.addWidget(b)
        btn_row.addStretch(1)
        layout.addLayout(btn_row)

        self._load_settings()

        self.btn_check_now.clicked.connect(self._check_now)
        self.btn_save.clicked.connect(self._save)
        self.btn_close.clicked.connect(self.close)

    # --- Core ---------------------------------------------------------
    def _load_settings(self):
        self.cookie_edit.setText(self._settings.get_string(COOKIE))
        self.user_id_edit.setText(self._settings.get_string(USER_ID))
        self.quota_spin.setValue(self._settings.get_int(MONTHLY_QUOTA))
        self.interval_spin.setValue(self._settings.get_int(UPDATE_INTERVAL))
        self.check_update_cb.setChecked(self._settings.get_boolean(CHECK_UPDATE))
        self.debug_cb.setChecked(self._settings.get_boolean(DEBUG_MODE))
        self._show_user_info()

    def _show_user_info(self):
        raw = self._settings.get_string(USER)
        if not raw:
            self.user_label.setText("Account: unknown")
            return
        try:
            info = json.loads(raw)
        except ValueError:
            self.user_label.setText("Account: unreadable")
            return
        self.user_label.setText(
            f"User ID: {info.get('sub') or 'unknown'}\n"
            f"Email: {info.get('email') or 'unknown'}\n"
            f"Updated At: {info.get('updated_at') or 'unknown'}"
        )

    def _save(self):
        cookie = self.cookie_edit.text().strip()
        if cookie and not cookie.startswith(COOKIE_PREFIX):
            self.error_label.setText(f"Cookie should start with {COOKIE_PREFIX}")
            return
        self.error_label.setText("")
        if cookie != self._settings.get_string(COOKIE):
            self._settings.set_string(COOKIE, cookie)
        if self.user_id_edit.text().strip() != self._settings.get_string(USER_ID):
            self._settings.set_string(USER_ID, self.user_id_edit.text().strip())
        if self.quota_spin.value() != self._settings.get_int(MONTHLY_QUOTA):
            self._settings.set_int(MONTHLY_QUOTA, self.quota_spin.value())
        if self.interval_spin.value() != self._settings.get_int(UPDATE_INTERVAL):
            self._settings.set_int(UPDATE_INTERVAL, self.interval_spin.value())
        if self.check_update_cb.isChecked() != self._settings.get_boolean(CHECK_UPDATE):
            self._settings.set_boolean(CHECK_UPDATE, self.check_update_cb.isChecked())
        if self.debug_cb.isChecked() != self._settings.get_boolean(DEBUG_MODE):
            self._settings.set_boolean(DEBUG_MODE, self.debug_cb.isChecked())
        _log.info("preferences saved")

    def _check_now(self):
        # false then true so the engine always sees a rising edge
        self._settings.set_boolean(TRIGGER_CHECK_UPDATE, False)
        self._settings.set_boolean(TRIGGER_CHECK_UPDATE, True)


__all__ = ["PreferencesDialog"]
