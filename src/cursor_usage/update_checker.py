from __future__ import annotations

"""Cursor release checker driving the update notification.

One ``check`` call is one cycle: local version -> platform/device hash ->
remote version -> compare -> show, keep or clear the notification. Every
failure, and an HTTP 204 "no update" answer, ends the cycle with the
notification state untouched.
"""

import logging
import webbrowser
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union

from .commands import (
    CommandRunner,
    detect_platform,
    get_local_version,
    get_machine_hash,
    run_command,
)
from .http_client import RequestClient, RequestError
from .notifications import NotificationLifecycle
from .settings_store import CHECK_UPDATE, UPDATE_URL_TEMPLATE, SettingsStore
from .versioning import compare_versions, extract_version

_log = logging.getLogger(__name__)

CHANGELOG_URL = "https://www.cursor.com/changelog"
NOTIFICATION_TITLE = "Cursor Update Available"
NOTIFICATION_ACTION = "View Changelog"


class UpdateOutcome(str, Enum):
    DISABLED = "disabled"
    ABORTED = "aborted"
    NO_UPDATE = "no_update"
    UP_TO_DATE = "up_to_date"
    NOTIFIED = "notified"
    ALREADY_NOTIFIED = "already_notified"


@dataclass(slots=True)
class UpdateInfo:
    current: str
    latest: str


def update_headers(local_version: str) -> dict[str, str]:
    return {
        "user-agent": f"Cursor/{local_version}",
        "sec-fetch-site": "none",
        "sec-fetch-mode": "no-cors",
        "sec-fetch-dest": "empty",
        "accept-language": "en-US",
        "priority": "u=4, i",
    }


class UpdateChecker:
    def __init__(
        self,
        client: RequestClient,
        settings: SettingsStore,
        notifications: NotificationLifecycle,
        runner: CommandRunner = run_command,
        open_url: Callable[[str], object] | None = None,
    ):
        self._client = client
        self._settings = settings
        self._notifications = notifications
        self._runner = runner
        self._open_url = open_url or webbrowser.open

    # --- Public API -----------------------------------------------------
    async def check(self) -> UpdateOutcome:
        _log.debug("checking for updates")
        try:
            return await self._check()
        except Exception:
            _log.exception("error checking for updates")
            return UpdateOutcome.ABORTED

    async def latest_version(self, local_version: str) -> Union[str, UpdateOutcome]:
        """Remote version string, or ``NO_UPDATE`` (HTTP 204) / ``ABORTED``."""
        template = self._settings.get_string(UPDATE_URL_TEMPLATE)
        machine_hash = ""
        if "{machine_hash}" in template:
            machine_hash = await get_machine_hash(self._runner) or ""
            if not machine_hash:
                _log.info("machine hash unavailable; skipping update check")
                return UpdateOutcome.ABORTED
        platform = await detect_platform(self._runner)
        url = template.format(
            platform=platform, local_version=local_version, machine_hash=machine_hash
        )
        _log.debug("update url: %s", url)
        try:
            resp = await self._client.request(url, "GET", update_headers(local_version))
        except RequestError as e:
            _log.warning("update request failed: %s", e)
            return UpdateOutcome.ABORTED
        if resp.status == 204:
            _log.debug("no update available; %s is current", local_version)
            return UpdateOutcome.NO_UPDATE
        if resp.status != 200:
            _log.warning("update source returned HTTP %s: %s", resp.status, resp.body[:200])
            return UpdateOutcome.ABORTED
        latest = extract_version(resp.body)
        if not latest:
            _log.warning("could not parse a version from the update response")
            return UpdateOutcome.ABORTED
        return latest

    # --- Internal -------------------------------------------------------
    async def _check(self) -> UpdateOutcome:
        if not self._settings.get_boolean(CHECK_UPDATE):
            _log.debug("update checking is disabled")
            return UpdateOutcome.DISABLED
        local = await get_local_version(self._runner)
        if not local:
            return UpdateOutcome.ABORTED
        latest = await self.latest_version(local)
        if isinstance(latest, UpdateOutcome):
            return latest
        _log.debug("latest version %s, local version %s", latest, local)

        if compare_versions(latest, local) <= 0:
            if self._notifications.active:
                _log.info("cursor %s is up to date; clearing update notification", local)
            self._notifications.clear()
            return UpdateOutcome.UP_TO_DATE

        if self._notifications.active and self._notifications.notified_version == latest:
            _log.debug("notification for %s already shown", latest)
            return UpdateOutcome.ALREADY_NOTIFIED
        info = UpdateInfo(current=local, latest=latest)
        self._notifications.show(
            info.latest,
            NOTIFICATION_TITLE,
            f"A new version ({info.latest}) of Cursor is available. "
            f"You are currently using version {info.current}.",
            NOTIFICATION_ACTION,
            self._open_changelog,
        )
        return UpdateOutcome.NOTIFIED

    def _open_changelog(self) -> None:
        _log.debug("opening changelog")
        self._open_url(CHANGELOG_URL)


__all__ = ["UpdateChecker", "UpdateInfo", "UpdateOutcome", "update_headers", "CHANGELOG_URL"]
