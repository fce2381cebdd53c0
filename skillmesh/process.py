"""Subprocess runner with a wall-clock watchdog and cooperative cancellation.

Every external command (git, ssh, scp, sshpass, wsl) goes through
:func:`run_command`. The child is polled in short slices; once the
deadline passes or the cancel token is set, it is killed and the partial
stderr is reported.
"""

import logging
import os
import subprocess
import sys
import threading
import time
from dataclasses import dataclass

from skillmesh.config import PROCESS_POLL_INTERVAL
from skillmesh.errors import CommandCancelledError, CommandTimeoutError

logger = logging.getLogger(__name__)


class CancelToken:
    """Thread-safe flag a caller sets to abort running commands."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CommandCancelledError("operation cancelled")


@dataclass
class CommandResult:
    """Exit status and decoded output of a finished command."""

    returncode: int
    stdout: str
    stderr: str
    raw_stdout: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _creation_flags() -> int:
    if sys.platform == "win32":
        return getattr(subprocess, "CREATE_NO_WINDOW", 0)
    return 0


def run_command(
    args: list[str],
    timeout: float,
    *,
    input: str | bytes | None = None,
    env: dict[str, str] | None = None,
    cwd: str | None = None,
    cancel: CancelToken | None = None,
    poll_interval: float = PROCESS_POLL_INTERVAL,
) -> CommandResult:
    """Run a command to completion, killing it on timeout or cancellation.

    Args:
        args: Program and arguments (never passed through a shell).
        timeout: Wall-clock budget in seconds.
        input: Data written to stdin, which is closed afterwards.
        env: Extra environment variables layered over os.environ.
        cwd: Working directory.
        cancel: Optional token checked between polls.
        poll_interval: Seconds between watchdog checks.

    Returns:
        CommandResult. A non-zero exit status is not an error here.

    Raises:
        FileNotFoundError: If the program does not exist.
        CommandTimeoutError: If the deadline passed.
        CommandCancelledError: If the token was set.
    """
    if cancel is not None:
        cancel.raise_if_cancelled()

    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)

    data = input.encode("utf-8") if isinstance(input, str) else input
    command_text = " ".join(args[:2])
    logger.debug(f"Running: {command_text} (timeout {timeout}s)")

    proc = subprocess.Popen(
        args,
        stdin=subprocess.PIPE if data is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=full_env,
        cwd=cwd,
        creationflags=_creation_flags(),
    )

    deadline = time.monotonic() + timeout
    pending_input = data
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            _, stderr = _kill(proc)
            logger.warning(f"Command timed out after {timeout}s: {command_text}")
            raise CommandTimeoutError(timeout, _decode(stderr), command_text)
        if cancel is not None and cancel.cancelled:
            _kill(proc)
            logger.info(f"Command cancelled: {command_text}")
            raise CommandCancelledError(f"cancelled: {command_text}")
        try:
            stdout, stderr = proc.communicate(
                input=pending_input, timeout=min(poll_interval, remaining)
            )
        except subprocess.TimeoutExpired:
            # Input is sent only on the first call
            pending_input = None
            continue
        return CommandResult(
            returncode=proc.returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            raw_stdout=stdout or b"",
        )


def _kill(proc: subprocess.Popen) -> tuple[bytes, bytes]:
    proc.kill()
    try:
        stdout, stderr = proc.communicate(timeout=5)
    except subprocess.TimeoutExpired:
        return b"", b""
    return stdout or b"", stderr or b""
