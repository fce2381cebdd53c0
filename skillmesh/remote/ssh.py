"""SSH transport: ``ssh`` for commands, ``scp`` for uploads, ``sshpass`` for passwords."""

from __future__ import annotations

import glob
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from skillmesh.config import REMOTE_COMMAND_TIMEOUT, REMOTE_UPLOAD_TIMEOUT, SSH_CONNECT_TIMEOUT
from skillmesh.errors import RemoteCommandError, SkillMeshError
from skillmesh.models import SSHConnection
from skillmesh.path_utils import expand_local_path
from skillmesh.process import CancelToken, CommandResult, run_command
from skillmesh.remote.transport import RemoteTransport, remote_path

logger = logging.getLogger(__name__)

CONNECTED_MARKER = "__connected__"


@dataclass
class ConnectionTestResult:
    """Outcome of :func:`check_connection`"""

    connected: bool
    error: str | None = None
    server_info: str | None = None


class SSHTransport(RemoteTransport):
    """Run commands on ``connection`` through the system OpenSSH client."""

    kind = "ssh"

    def __init__(self, connection: SSHConnection, cancel: CancelToken | None = None) -> None:
        super().__init__(cancel)
        self.connection = connection

    def describe(self) -> str:
        return f"{self.connection.username}@{self.connection.host}"

    # ── command construction ──────────────────────────────

    def _uses_password(self) -> bool:
        conn = self.connection
        return conn.auth_method == "password" and bool(conn.password)

    def _options(self, port_flag: str) -> list[str]:
        conn = self.connection
        args = [
            port_flag,
            str(conn.port),
            "-o",
            "StrictHostKeyChecking=accept-new",
            "-o",
            f"ConnectTimeout={SSH_CONNECT_TIMEOUT}",
        ]
        if conn.auth_method == "key" and conn.private_key_path:
            args += ["-i", str(expand_local_path(conn.private_key_path))]
            if not conn.passphrase:
                args += ["-o", "BatchMode=yes"]
        return args

    def _wrap(self, program: str, args: list[str]) -> list[str]:
        if self._uses_password():
            return ["sshpass", "-p", self.connection.password, program, *args]
        return [program, *args]

    def ssh_command(self, script: str) -> list[str]:
        """argv for running ``script`` on the remote host."""
        return self._wrap("ssh", [*self._options("-p"), self.describe(), script])

    def scp_command(self, local: str, remote: str, recursive: bool = False) -> list[str]:
        """argv for copying ``local`` to ``remote`` on the host."""
        args = self._options("-P")
        if recursive:
            args.append("-r")
        return self._wrap("scp", [*args, local, self.destination(remote)])

    def destination(self, remote: str) -> str:
        return f"{self.describe()}:{remote}"

    # ── RemoteTransport ───────────────────────────────────

    def run(
        self,
        script: str,
        *,
        input: str | None = None,
        timeout: float = REMOTE_COMMAND_TIMEOUT,
    ) -> CommandResult:
        try:
            return run_command(
                self.ssh_command(script), timeout, input=input, cancel=self.cancel
            )
        except FileNotFoundError as e:
            program = "sshpass" if self._uses_password() else "ssh"
            raise RemoteCommandError(f"{program} is not installed") from e

    def _scp(self, local: str, remote: str, recursive: bool = False) -> None:
        try:
            result = run_command(
                self.scp_command(local, remote, recursive),
                REMOTE_UPLOAD_TIMEOUT,
                cancel=self.cancel,
            )
        except FileNotFoundError as e:
            raise RemoteCommandError("scp is not installed") from e
        if not result.ok:
            stderr = result.stderr.strip()
            raise RemoteCommandError(f"scp {local} -> {remote} failed: {stderr}", stderr)

    def upload_dir(self, local: Path, remote: str) -> None:
        q = remote_path(remote)
        self.run_checked(f'mkdir -p "$(dirname {q})" && rm -rf {q}', f"prepare {remote}")
        self._scp(str(local), remote, recursive=True)

    def upload_file(self, local: Path, remote: str) -> None:
        q = remote_path(remote)
        self.run_checked(f'mkdir -p "$(dirname {q})"', f"prepare {remote}")
        self._scp(str(local), remote)

    def upload_pattern(self, local_glob: str, remote_dir: str) -> list[str]:
        matches = sorted(p for p in glob.glob(local_glob) if os.path.isfile(p))
        if not matches:
            return []

        base = remote_dir.rstrip("/")
        self.run_checked(f"mkdir -p {remote_path(base)}", f"prepare {remote_dir}")
        synced: list[str] = []
        for local in matches:
            remote = f"{base}/{os.path.basename(local)}"
            try:
                self._scp(local, remote)
            except RemoteCommandError as e:
                logger.warning(f"Failed to upload {local}: {e}")
                continue
            synced.append(f"{local} -> {remote}")
        return synced


def check_connection(
    connection: SSHConnection, timeout: float = REMOTE_COMMAND_TIMEOUT
) -> ConnectionTestResult:
    """Open a session, echo a marker and report ``uname -a``."""
    transport = SSHTransport(connection)
    try:
        result = transport.run(f"echo {CONNECTED_MARKER} && uname -a", timeout=timeout)
    except SkillMeshError as e:
        return ConnectionTestResult(connected=False, error=str(e))

    if result.ok and CONNECTED_MARKER in result.stdout:
        info = next(
            (
                line.strip()
                for line in result.stdout.splitlines()
                if line.strip() and CONNECTED_MARKER not in line
            ),
            None,
        )
        logger.info(f"SSH connection ok: {transport.describe()}")
        return ConnectionTestResult(connected=True, server_info=info)

    error = result.stderr.strip() or "Connection failed"
    logger.warning(f"SSH connection failed: {transport.describe()}: {error}")
    return ConnectionTestResult(connected=False, error=error)
