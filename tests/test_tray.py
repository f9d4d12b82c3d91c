import pytest
from conftest import FakeSink

from cursor_usage.engine_host import EngineHost
from cursor_usage.models import DisplayState, PanelSnapshot
from cursor_usage.notifications import NotificationLifecycle
from cursor_usage.settings_store import CHECK_UPDATE
from cursor_usage.tray import QtRenderer, TrayNotification


class StubSink:
    def __init__(self):
        self.forgotten = []
        self.shown = []

    def show(self, title, body, action_label, action):
        handle = TrayNotification(self, title, body, action)
        self.shown.append(handle)
        return handle

    def _forget(self, handle):
        self.forgotten.append(handle)


def test_renderer_emits_snapshot(qtbot):
    renderer = QtRenderer()
    snapshot = PanelSnapshot(DisplayState.LOADING)
    with qtbot.waitSignal(renderer.snapshot_ready, timeout=1000) as blocker:
        renderer.render(snapshot)
    assert blocker.args == [snapshot]


def test_tray_notification_destroy_fires_once():
    sink = StubSink()
    handle = sink.show("Update", "body", "View Changelog", lambda: None)
    seen = []
    token = handle.connect_destroy(seen.append)
    handle.connect_destroy(lambda h: seen.append("second"))

    handle.disconnect(token)
    with pytest.raises(KeyError):
        handle.disconnect(token)

    handle.destroy()
    handle.destroy()
    assert seen == ["second"]
    assert handle.destroyed
    assert sink.forgotten == [handle]


def test_lifecycle_with_tray_handles():
    sink = StubSink()
    lifecycle = NotificationLifecycle(sink)
    lifecycle.show("0.46.0", "Update", "first", "View Changelog", lambda: None)
    lifecycle.show("0.47.0", "Update", "second", "View Changelog", lambda: None)
    first, second = sink.shown
    assert first.destroyed and not second.destroyed

    second.destroy()
    assert not lifecycle.active
    assert lifecycle.notified_version is None


def test_engine_host_reports_running_then_stopped(qtbot, settings):
    settings.set_boolean(CHECK_UPDATE, False)
    host = EngineHost(settings, lambda snapshot: None, FakeSink())
    seen = []
    host.status_changed.connect(seen.append)

    host.start()
    qtbot.waitUntil(lambda: seen == ["running"], timeout=5000)
    assert host.engine is not None

    host.stop()
    qtbot.waitUntil(lambda: seen == ["running", "stopped"], timeout=5000)
    assert host.engine is None
