"""
WSL transport and detection.

Commands run as ``wsl -d <distro> --exec bash -c <script>``. Uploads are
plain ``cp`` inside the distro from the ``/mnt/<drive>/...`` view of the
Windows file.
"""

from __future__ import annotations

import glob
import logging
import os
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from skillmesh.config import REMOTE_COMMAND_TIMEOUT, REMOTE_UPLOAD_TIMEOUT
from skillmesh.errors import RemoteCommandError, SkillMeshError
from skillmesh.path_utils import expand_local_path
from skillmesh.process import CancelToken, CommandResult, run_command
from skillmesh.remote.transport import RemoteTransport, remote_path

logger = logging.getLogger(__name__)

WSL_BIN = "wsl"
DETECT_TIMEOUT = 15

_DRIVE_RE = re.compile(r"^([A-Za-z]):(/|$)")
_MISSING_SOURCE_MARKERS = ("cannot stat", "No such file")


@dataclass
class WSLDetectResult:
    available: bool
    distros: list[str] = field(default_factory=list)
    error: str | None = None


def windows_to_wsl_path(path: str) -> str:
    """``C:\\Users\\me\\x`` -> ``/mnt/c/Users/me/x`` (env tokens expanded first)."""
    expanded = str(expand_local_path(path)).replace("\\", "/")
    match = _DRIVE_RE.match(expanded)
    if not match:
        return expanded
    drive = match.group(1).lower()
    rest = expanded[2:].lstrip("/")
    return f"/mnt/{drive}/{rest}" if rest else f"/mnt/{drive}"


def decode_wsl_output(data: bytes) -> str:
    """``wsl.exe`` writes UTF-16LE to pipes; detect it by a BOM or the NUL in byte 2."""
    if data.startswith(b"\xff\xfe") or (len(data) >= 2 and data[1] == 0):
        return data.decode("utf-16-le", errors="replace").lstrip("\ufeff")
    return data.decode("utf-8", errors="replace")


def _wsl(args: list[str], timeout: float = DETECT_TIMEOUT) -> CommandResult:
    return run_command([WSL_BIN, *args], timeout)


def get_wsl_distros() -> list[str]:
    """Installed distro names, in ``wsl --list`` order."""
    result = _wsl(["--list", "--quiet"])
    if not result.ok:
        raise RemoteCommandError("wsl --list failed", decode_wsl_output(result.raw_stdout))
    text = decode_wsl_output(result.raw_stdout)
    return [
        line.replace("\x00", "").strip()
        for line in text.splitlines()
        if line.replace("\x00", "").strip()
    ]


def parse_distro_state(listing: str, distro: str) -> str:
    """State of ``distro`` in ``wsl --list --verbose`` output.

    Returns "Running", "Stopped" or "Unknown".
    """
    for raw in listing.splitlines():
        line = raw.replace("\x00", "").strip()
        if not line or line.upper().startswith("NAME"):
            continue
        if line.startswith("*"):
            line = line[1:].strip()
        columns = line.split()
        if len(columns) >= 2 and columns[0] == distro:
            state = columns[1]
            if state.lower() == "running":
                return "Running"
            if state.lower() == "stopped":
                return "Stopped"
            return "Unknown"
    return "Unknown"


def get_distro_state(distro: str) -> str:
    try:
        result = _wsl(["--list", "--verbose"])
    except (OSError, SkillMeshError) as e:
        logger.debug(f"wsl --list --verbose failed: {e}")
        return "Unknown"
    if not result.ok:
        return "Unknown"
    return parse_distro_state(decode_wsl_output(result.raw_stdout), distro)


def detect_wsl() -> WSLDetectResult:
    """Check that WSL is installed and list its distros."""
    try:
        status = _wsl(["--status"])
    except FileNotFoundError:
        return WSLDetectResult(available=False, error="WSL is not installed")
    except SkillMeshError as e:
        return WSLDetectResult(available=False, error=str(e))
    if not status.ok:
        return WSLDetectResult(
            available=False,
            error=decode_wsl_output(status.raw_stdout).strip() or "WSL is not available",
        )

    try:
        distros = get_wsl_distros()
    except SkillMeshError as e:
        return WSLDetectResult(available=False, error=str(e))
    if not distros:
        return WSLDetectResult(available=False, error="No WSL distribution installed")
    return WSLDetectResult(available=True, distros=distros)


class WSLTransport(RemoteTransport):
    """Run commands inside one WSL distribution."""

    kind = "wsl"

    def __init__(self, distro: str, cancel: CancelToken | None = None) -> None:
        super().__init__(cancel)
        self.distro = distro

    def describe(self) -> str:
        return f"wsl:{self.distro}"

    def command(self, script: str) -> list[str]:
        return [WSL_BIN, "-d", self.distro, "--exec", "bash", "-c", script]

    def run(
        self,
        script: str,
        *,
        input: str | None = None,
        timeout: float = REMOTE_COMMAND_TIMEOUT,
    ) -> CommandResult:
        try:
            return run_command(self.command(script), timeout, input=input, cancel=self.cancel)
        except FileNotFoundError as e:
            raise RemoteCommandError("WSL is not installed") from e

    def upload_dir(self, local: Path, remote: str) -> None:
        src = shlex.quote(windows_to_wsl_path(str(local)))
        q = remote_path(remote)
        self.run_checked(
            f'rm -rf {q} 2>/dev/null; mkdir -p "$(dirname {q})" && cp -r {src} {q}',
            f"copy {local}",
            timeout=REMOTE_UPLOAD_TIMEOUT,
        )

    def upload_file(self, local: Path, remote: str) -> None:
        src = shlex.quote(windows_to_wsl_path(str(local)))
        q = remote_path(remote)
        self.run_checked(
            f'mkdir -p "$(dirname {q})" && cp -f {src} {q}',
            f"copy {local}",
            timeout=REMOTE_UPLOAD_TIMEOUT,
        )

    def upload_pattern(self, local_glob: str, remote_dir: str) -> list[str]:
        matches = sorted(p for p in glob.glob(local_glob) if os.path.isfile(p))
        if not matches:
            return []

        base = remote_dir.rstrip("/")
        sources = " ".join(shlex.quote(windows_to_wsl_path(p)) for p in matches)
        result = self.run(
            f"mkdir -p {remote_path(base)} && cp -f {sources} {remote_path(base)}/",
            timeout=REMOTE_UPLOAD_TIMEOUT,
        )
        if not result.ok:
            stderr = result.stderr.strip()
            if any(marker in stderr for marker in _MISSING_SOURCE_MARKERS):
                logger.debug(f"Pattern {local_glob} vanished before copy: {stderr}")
                return []
            raise RemoteCommandError(f"copy {local_glob} failed: {stderr}", stderr)
        return [f"{p} -> {base}/{os.path.basename(p)}" for p in matches]
