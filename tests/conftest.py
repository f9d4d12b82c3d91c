import asyncio
import os
from pathlib import Path
import sys
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

# Run Qt headless when no display is available
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# Ensure src/ is on sys.path for direct test invocation without an editable install
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cursor_usage.commands import CommandResult
from cursor_usage.database_manager import DBConfig, DatabaseManager
from cursor_usage.http_client import RequestError
from cursor_usage.settings_store import SettingsStore


@pytest.fixture()
def db(tmp_path: Path):
    config = DBConfig(path=tmp_path / "test.sqlite")
    manager = DatabaseManager(config)
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture()
def settings(db: DatabaseManager) -> SettingsStore:
    return SettingsStore(db)


# --- Shared fakes -----------------------------------------------------------


class FakeClient:
    """Request client answering from a url-prefix -> response table."""

    def __init__(self, routes: Optional[Dict[str, object]] = None):
        self.routes: Dict[str, object] = dict(routes or {})
        self.calls: List[Tuple[str, str, dict, str, Optional[str]]] = []

    async def request(self, url, method="GET", headers=None, cookie="", body=None):
        self.calls.append((url, method, dict(headers or {}), cookie, body))
        for prefix, answer in self.routes.items():
            if url.startswith(prefix):
                if isinstance(answer, Exception):
                    raise answer
                if callable(answer):
                    return answer(url, method, body)
                return answer
        raise RequestError(f"no route for {url}")

    async def aclose(self):
        return None

    def urls(self) -> List[str]:
        return [c[0] for c in self.calls]

    def count(self, prefix: str) -> int:
        return sum(1 for u in self.urls() if u.startswith(prefix))


class FakeRunner:
    def __init__(self, outputs: Optional[Dict[str, CommandResult]] = None):
        self.outputs = dict(outputs or {})
        self.calls: List[Tuple[str, ...]] = []

    async def __call__(self, argv: Sequence[str]) -> CommandResult:
        self.calls.append(tuple(argv))
        return self.outputs.get(argv[0], CommandResult(1, "", f"{argv[0]}: not found"))

    def count(self, program: str) -> int:
        return sum(1 for c in self.calls if c[0] == program)


def ok(stdout: str) -> CommandResult:
    return CommandResult(0, stdout, "")


class FakeHandle:
    def __init__(self, title: str, log: List[str]):
        self.title = title
        self.callbacks: Dict[int, Callable] = {}
        self.destroyed = False
        self._next = 0
        self._log = log

    def connect_destroy(self, callback):
        self._next += 1
        self.callbacks[self._next] = callback
        self._log.append(f"connect:{self.title}")
        return self._next

    def disconnect(self, token):
        if token not in self.callbacks:
            raise KeyError(token)
        del self.callbacks[token]
        self._log.append(f"disconnect:{self.title}")

    def destroy(self):
        self.destroyed = True
        self._log.append(f"destroy:{self.title}")
        for cb in list(self.callbacks.values()):
            cb(self)

    def dismiss(self):
        """User closes the notification outside the engine's control."""
        self.destroy()


class FakeSink:
    def __init__(self):
        self.log: List[str] = []
        self.handles: List[FakeHandle] = []

    def show(self, title, body, action_label, action):
        handle = FakeHandle(f"{title}#{len(self.handles) + 1}", self.log)
        handle.body = body
        handle.action = action
        self.handles.append(handle)
        self.log.append(f"show:{handle.title}")
        return handle


class FakeTimerHandle:
    def __init__(self, clock: "FakeTimers", when: float, callback):
        self.clock = clock
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimers:
    """Simulated ``call_later``; ``advance`` fires due timers in order."""

    def __init__(self):
        self.now = 0.0
        self.handles: List[FakeTimerHandle] = []

    def call_later(self, delay, callback):
        handle = FakeTimerHandle(self, self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def pending(self) -> List[FakeTimerHandle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.pending() if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            handle.cancelled = True
            self.now = handle.when
            handle.callback()
        self.now = target


async def drain(rounds: int = 50) -> None:
    """Let queued callbacks and spawned cycle tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture()
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def timers() -> FakeTimers:
    return FakeTimers()
