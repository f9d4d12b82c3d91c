from __future__ import annotations

"""Local command execution used by the update checker.

All commands run through ``asyncio.create_subprocess_exec`` so the loop stays
responsive while they execute. Callers can swap in any ``CommandRunner``.
"""

import asyncio
import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

_log = logging.getLogger(__name__)

DEFAULT_PLATFORM = "linux-x64"
PLATFORM_BY_ARCH = {
    "x86_64": "linux-x64",
    "aarch64": "linux-arm64",
    "arm64": "linux-arm64",
}


class CommandError(Exception):
    pass


@dataclass(slots=True)
class CommandResult:
    exit_status: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_status == 0


CommandRunner = Callable[[Sequence[str]], Awaitable[CommandResult]]


async def run_command(argv: Sequence[str]) -> CommandResult:
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandError(f"cannot run {argv[0]}: {e}") from e
    out, err = await proc.communicate()
    return CommandResult(
        exit_status=proc.returncode if proc.returncode is not None else -1,
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
    )


async def get_local_version(runner: CommandRunner = run_command) -> Optional[str]:
    """First line of ``cursor --version``, or None when unavailable."""
    try:
        result = await runner(["cursor", "--version"])
    except CommandError as e:
        _log.info("cursor --version failed: %s (PATH=%s)", e, os.environ.get("PATH", "<unset>"))
        return None
    if not result.success:
        _log.info("cursor --version exited %s: %s", result.exit_status, result.stderr.strip())
        return None
    lines = result.stdout.splitlines()
    version = lines[0].strip() if lines else ""
    _log.debug("local version: %r", version)
    return version or None


async def detect_platform(runner: CommandRunner = run_command) -> str:
    try:
        result = await runner(["uname", "-m"])
    except CommandError as e:
        _log.info("uname failed: %s; defaulting to %s", e, DEFAULT_PLATFORM)
        return DEFAULT_PLATFORM
    if not result.success:
        return DEFAULT_PLATFORM
    arch = result.stdout.strip()
    platform = PLATFORM_BY_ARCH.get(arch)
    if platform is None:
        _log.info("unsupported architecture %r, defaulting to %s", arch, DEFAULT_PLATFORM)
        return DEFAULT_PLATFORM
    return platform


async def get_machine_hash(runner: CommandRunner = run_command) -> Optional[str]:
    """SHA-256 hex digest of ``/etc/machine-id``."""
    try:
        result = await runner(["cat", "/etc/machine-id"])
    except CommandError as e:
        _log.info("machine id unavailable: %s", e)
        return None
    machine_id = result.stdout.strip() if result.success else ""
    if not machine_id:
        _log.info("machine id is empty or unreadable")
        return None
    return hashlib.sha256(machine_id.encode("utf-8")).hexdigest()


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "run_command",
    "get_local_version",
    "detect_platform",
    "get_machine_hash",
    "DEFAULT_PLATFORM",
]
