"""
Command-execution transport shared by the SSH and WSL backends.

Every remote operation is a single POSIX shell script run in a fresh
process; nothing is kept between calls. Paths are always passed through
:func:`remote_path` before they reach a script, so a skill or file name
containing shell metacharacters is never interpreted.
"""

from __future__ import annotations

import logging
import shlex
from abc import ABC, abstractmethod
from pathlib import Path

from skillmesh.config import REMOTE_COMMAND_TIMEOUT
from skillmesh.errors import RemoteCommandError
from skillmesh.process import CancelToken, CommandResult

logger = logging.getLogger(__name__)


def remote_path(path: str) -> str:
    """Quote a remote path for a POSIX shell.

    A leading ``~`` is kept outside the quotes as ``"$HOME"`` so it still
    expands::

        remote_path("~/.claude/skills/a b") -> "$HOME"/'.claude/skills/a b'
        remote_path("/tmp/x;rm -rf /")     -> '/tmp/x;rm -rf /'
    """
    if path == "~":
        return '"$HOME"'
    if path.startswith("~/"):
        rest = path[2:]
        return '"$HOME"/' + shlex.quote(rest) if rest else '"$HOME"/'
    return shlex.quote(path)


class RemoteTransport(ABC):
    """Primitive operations against one remote target.

    Subclasses provide :meth:`run` and the three upload methods; the
    file primitives are built on top of :meth:`run`.

    Args:
        cancel: Token checked by every spawned command.
    """

    #: Event prefix and status key ("ssh" or "wsl")
    kind = "remote"

    def __init__(self, cancel: CancelToken | None = None) -> None:
        self.cancel = cancel

    # ── to implement ──────────────────────────────────────

    @abstractmethod
    def run(
        self,
        script: str,
        *,
        input: str | None = None,
        timeout: float = REMOTE_COMMAND_TIMEOUT,
    ) -> CommandResult:
        """Run ``script`` with the remote shell. Non-zero exit is not raised."""

    @abstractmethod
    def upload_dir(self, local: Path, remote: str) -> None:
        """Replace the remote directory ``remote`` with a copy of ``local``."""

    @abstractmethod
    def upload_file(self, local: Path, remote: str) -> None:
        """Copy one local file to ``remote``, creating parent directories."""

    @abstractmethod
    def upload_pattern(self, local_glob: str, remote_dir: str) -> list[str]:
        """Copy every file matching ``local_glob`` into ``remote_dir``.

        Returns ``"local -> remote"`` entries for the files copied; an
        empty list when nothing matched.
        """

    def describe(self) -> str:
        return self.kind

    # ── helpers ───────────────────────────────────────────

    def run_checked(
        self,
        script: str,
        what: str,
        *,
        input: str | None = None,
        timeout: float = REMOTE_COMMAND_TIMEOUT,
    ) -> CommandResult:
        """Run ``script`` and raise RemoteCommandError on a non-zero exit."""
        result = self.run(script, input=input, timeout=timeout)
        if not result.ok:
            stderr = result.stderr.strip()
            message = f"{what} failed on {self.describe()}"
            if stderr:
                message = f"{message}: {stderr}"
            raise RemoteCommandError(message, stderr)
        return result

    # ── primitives ────────────────────────────────────────

    def read_file(self, path: str) -> str:
        """Content of a remote file, empty when it does not exist."""
        q = remote_path(path)
        result = self.run_checked(f"if [ -f {q} ]; then cat {q}; fi", f"read {path}")
        return result.stdout

    def write_file(self, path: str, content: str) -> None:
        q = remote_path(path)
        self.run_checked(
            f'mkdir -p "$(dirname {q})" && cat > {q}', f"write {path}", input=content
        )

    def list_dir(self, path: str) -> list[str]:
        """Entry names of a remote directory, empty when it does not exist."""
        q = remote_path(path)
        result = self.run_checked(f"if [ -d {q} ]; then ls -1A {q}; fi", f"list {path}")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def remove_path(self, path: str) -> None:
        self.run_checked(f"rm -rf {remote_path(path)}", f"remove {path}")

    def remove_link(self, path: str) -> None:
        """Remove ``path`` only if it is a symlink."""
        q = remote_path(path)
        self.run_checked(f"if [ -L {q} ]; then rm -f {q}; fi", f"unlink {path}")

    def create_symlink(self, target: str, link: str) -> None:
        """Make ``link`` a symlink to ``target``, replacing what was there."""
        t = remote_path(target)
        q = remote_path(link)
        self.run_checked(
            f'mkdir -p "$(dirname {q})" && rm -rf {q} && ln -s {t} {q}',
            f"symlink {link}",
        )

    def symlink_points_to(self, link: str, expected: str) -> bool:
        """True when ``link`` is a symlink whose target is ``expected``."""
        q = remote_path(link)
        e = remote_path(expected)
        result = self.run(
            f'if [ -L {q} ] && [ "$(readlink {q})" = {e} ]; then echo yes; else echo no; fi'
        )
        return result.ok and result.stdout.strip() == "yes"
