from __future__ import annotations

"""Polling engine: owns the panel state, timers and settings subscriptions.

Design:
 - Lives on a single asyncio loop. Anything arriving from another thread
   (settings writes from the preferences dialog, notification dismissals)
   is hopped onto the loop with ``call_soon_threadsafe``.
 - Each usage or update cycle is an independent task. Only the final
   publish step touches ``_snapshot`` and it always replaces it wholesale,
   so overlapping cycles need no locking; the last one to finish wins.
 - ``dispose`` cancels both timers, releases every settings subscription
   exactly once and tears down the tracked notification.
"""

import asyncio
import dataclasses
import json
import logging
from datetime import datetime
from typing import Any, Callable, Coroutine, List, Optional, Set

from .commands import CommandRunner, run_command
from .http_client import RequestClient
from .logging_setup import set_debug
from .models import DisplayState, PanelSnapshot
from .notifications import NotificationLifecycle, NotificationSink
from .scheduler import CallLater, Scheduler
from .settings_store import (
    CHECK_UPDATE,
    COOKIE,
    DEBUG_MODE,
    DEFAULT_MONTHLY_QUOTA,
    DEFAULT_UPDATE_INTERVAL,
    MONTHLY_QUOTA,
    TRIGGER_CHECK_UPDATE,
    UPDATE_INTERVAL,
    USER,
    USER_ID,
    SettingsStore,
)
from .update_checker import UpdateChecker, UpdateOutcome
from .usage_fetcher import UsageFetcher, UsageResult

_log = logging.getLogger(__name__)

USAGE_TIMER = "usage-refresh"
UPDATE_TIMER = "update-check"
UPDATE_CHECK_INTERVAL = 1800  # seconds

Renderer = Callable[[PanelSnapshot], None]


class UsageEngine:
    def __init__(
        self,
        settings: SettingsStore,
        client: RequestClient,
        renderer: Renderer,
        notification_sink: NotificationSink,
        *,
        runner: CommandRunner = run_command,
        open_url: Callable[[str], object] | None = None,
        call_later: CallLater | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._render = renderer
        self._scheduler = Scheduler(call_later)
        self._notifications = NotificationLifecycle(notification_sink, dispatch=self._dispatch)
        self._fetcher = UsageFetcher(client, clock)
        self._checker = UpdateChecker(client, settings, self._notifications, runner, open_url)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscriptions: List[int] = []
        self._tasks: Set[asyncio.Task] = set()
        self._started = False
        self._disposed = False
        self._snapshot = PanelSnapshot(DisplayState.LOADING, monthly_quota=self._monthly_quota())

    # --- Properties -----------------------------------------------------
    @property
    def snapshot(self) -> PanelSnapshot:
        return self._snapshot

    @property
    def notifications(self) -> NotificationLifecycle:
        return self._notifications

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    # --- Lifecycle ------------------------------------------------------
    def start(self) -> None:
        """Must be called on the engine loop (from a coroutine or loop callback)."""
        if self._started:
            return
        self._loop = asyncio.get_running_loop()
        self._started = True
        set_debug(self._settings.get_boolean(DEBUG_MODE))

        self._watch(UPDATE_INTERVAL, self._start_usage_timer)
        self._watch(MONTHLY_QUOTA, self.refresh)
        self._watch(USER_ID, self.refresh)
        self._watch(COOKIE, self._on_cookie_changed)
        self._watch(DEBUG_MODE, self._on_debug_mode_changed)
        self._watch(CHECK_UPDATE, self._start_update_timer)
        self._watch(TRIGGER_CHECK_UPDATE, self._on_trigger_check_update)

        self._publish_snapshot(self._snapshot)
        self.refresh()
        self._start_usage_timer()
        self._start_update_timer()
        self.refresh_profile()
        _log.info("engine started")

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._scheduler.cancel_all()
        for token in self._subscriptions:
            self._settings.unsubscribe(token)
        self._subscriptions.clear()
        self._notifications.clear()
        for task in list(self._tasks):
            task.cancel()
        _log.info("engine disposed")

    # --- Commands (UI and timers) ---------------------------------------
    # Safe to call from any thread; the cycle itself starts on the engine loop.
    def refresh(self) -> None:
        self._dispatch(self._spawn, self.update_usage)

    def check_updates_now(self) -> None:
        self._dispatch(self._spawn, self.check_for_updates)

    def refresh_profile(self) -> None:
        self._dispatch(self._spawn, self.update_user_info)

    # --- Cycles ---------------------------------------------------------
    async def update_usage(self) -> PanelSnapshot:
        cookie = self._settings.get_string(COOKIE)
        user_id = self._settings.get_string(USER_ID)
        try:
            result = await self._fetcher.fetch(cookie, user_id)
        except Exception:
            _log.exception("usage cycle failed")
            result = UsageResult(DisplayState.ERROR)
        return self._apply(result)

    async def check_for_updates(self) -> UpdateOutcome:
        outcome = await self._checker.check()
        _log.debug("update check finished: %s", outcome.value)
        return outcome

    async def update_user_info(self) -> None:
        cookie = self._settings.get_string(COOKIE)
        if not cookie:
            _log.debug("cookie is not set, skipping user info update")
            return
        try:
            profile = await self._fetcher.fetch_profile(cookie)
            if profile is None:
                _log.debug("no user info found")
                return
            self._settings.set_string(USER, json.dumps(profile.raw))
        except Exception:
            _log.exception("error updating user info")

    # --- Internal: state ------------------------------------------------
    def _apply(self, result: UsageResult) -> PanelSnapshot:
        if self._disposed:
            return self._snapshot
        quota = self._monthly_quota()
        if result.state is DisplayState.NOT_CONFIGURED:
            return self._snapshot
        if result.state is DisplayState.OK:
            snapshot = PanelSnapshot(
                DisplayState.OK,
                usage=result.usage,
                team_info=result.team_info,
                user_analytics=result.user_analytics,
                monthly_quota=quota,
            )
        else:
            snapshot = dataclasses.replace(self._snapshot, state=result.state, monthly_quota=quota)
        self._publish_snapshot(snapshot)
        return snapshot

    def _publish_snapshot(self, snapshot: PanelSnapshot) -> None:
        self._snapshot = snapshot
        try:
            self._render(snapshot)
        except Exception:
            _log.exception("renderer failed")

    def _monthly_quota(self) -> int:
        quota = self._settings.get_int(MONTHLY_QUOTA)
        return quota if quota > 0 else DEFAULT_MONTHLY_QUOTA

    # --- Internal: timers -----------------------------------------------
    def _start_usage_timer(self) -> None:
        interval = self._settings.get_int(UPDATE_INTERVAL)
        if interval <= 0:
            interval = DEFAULT_UPDATE_INTERVAL
        _log.debug("usage timer interval %ss", interval)
        self._scheduler.start(USAGE_TIMER, interval, self.refresh)

    def _start_update_timer(self) -> None:
        self._scheduler.cancel(UPDATE_TIMER)
        if not self._settings.get_boolean(CHECK_UPDATE):
            _log.debug("update checking is disabled")
            return
        self._scheduler.start(UPDATE_TIMER, UPDATE_CHECK_INTERVAL, self.check_updates_now)
        self.check_updates_now()

    # --- Internal: settings reactions -----------------------------------
    def _on_cookie_changed(self) -> None:
        self.refresh()
        self.refresh_profile()

    def _on_debug_mode_changed(self) -> None:
        enabled = self._settings.get_boolean(DEBUG_MODE)
        set_debug(enabled)
        _log.info("debug mode changed to %s", enabled)

    def _on_trigger_check_update(self) -> None:
        if not self._settings.get_boolean(TRIGGER_CHECK_UPDATE):
            return
        self._settings.set_boolean(TRIGGER_CHECK_UPDATE, False)
        self.check_updates_now()

    # --- Internal: plumbing ---------------------------------------------
    def _watch(self, key: str, handler: Callable[[], None]) -> None:
        def on_change(_key: str) -> None:
            self._dispatch(self._guarded, handler)

        self._subscriptions.append(self._settings.subscribe(key, on_change))

    def _guarded(self, handler: Callable[[], None]) -> None:
        if self._disposed:
            return
        try:
            handler()
        except Exception:
            _log.exception("settings handler failed")

    def _dispatch(self, fn: Callable[..., Any], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            fn(*args)
            return
        loop.call_soon_threadsafe(fn, *args)

    def _spawn(self, factory: Callable[[], Coroutine[Any, Any, Any]]) -> None:
        if self._disposed or self._loop is None:
            return
        task = self._loop.create_task(factory())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


__all__ = ["UsageEngine", "Renderer", "USAGE_TIMER", "UPDATE_TIMER", "UPDATE_CHECK_INTERVAL"]
