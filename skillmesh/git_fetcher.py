"""Shallow git clone / fetch through the system git binary."""

import logging
import os
import subprocess
import time
from pathlib import Path

from skillmesh.config import (
    GIT_CLONE_TIMEOUT,
    GIT_FETCH_TIMEOUT,
    GIT_HTTP_LOW_SPEED_LIMIT,
    GIT_HTTP_LOW_SPEED_TIME,
)
from skillmesh.errors import (
    CommandTimeoutError,
    GitCheckoutError,
    GitCloneError,
    GitFetchError,
    GitNotFoundError,
    GitResetError,
    GitRevParseError,
    GitTimeoutError,
)
from skillmesh.process import CancelToken, CommandResult, run_command

logger = logging.getLogger(__name__)

GIT_BIN_ENV_VARS = ("SKILLS_GIT_BIN", "SKILLS_GIT_PATH")
GIT_BIN_CANDIDATES = ("git", "/usr/bin/git", "/opt/homebrew/bin/git", "/usr/local/bin/git")


def _timeout_from_env(env_var: str, default: int) -> int:
    value = os.environ.get(env_var, "").strip()
    if value.isdigit():
        return int(value)
    return default


def git_bin_works(bin_path: str) -> bool:
    """Check that ``<bin> --version`` runs and exits 0."""
    try:
        result = subprocess.run(
            [bin_path, "--version"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return result.returncode == 0


class GitFetcher:
    """Clone or update repositories in the git cache.

    All configuration is explicit; nothing is shared between instances.

    Args:
        proxy_url: HTTP(S) proxy injected into git's environment.
        clone_timeout: Budget for ``git clone`` (SKILLS_GIT_TIMEOUT_SECS).
        fetch_timeout: Budget for every other git call
            (SKILLS_GIT_FETCH_TIMEOUT_SECS).
        git_bin: Explicit git executable, skipping discovery.
    """

    def __init__(
        self,
        proxy_url: str | None = None,
        clone_timeout: int | None = None,
        fetch_timeout: int | None = None,
        git_bin: str | None = None,
    ) -> None:
        self.proxy_url = proxy_url or None
        self.clone_timeout = clone_timeout or _timeout_from_env(
            "SKILLS_GIT_TIMEOUT_SECS", GIT_CLONE_TIMEOUT
        )
        self.fetch_timeout = fetch_timeout or _timeout_from_env(
            "SKILLS_GIT_FETCH_TIMEOUT_SECS", GIT_FETCH_TIMEOUT
        )
        self._git_bin = git_bin
        self._git_bin_resolved = git_bin is not None

    # ── discovery ─────────────────────────────────────────

    def resolve_git_bin(self) -> str | None:
        """Find a working git executable (cached after the first call)."""
        if self._git_bin_resolved:
            return self._git_bin

        found = None
        for env_var in GIT_BIN_ENV_VARS:
            value = os.environ.get(env_var, "").strip()
            if value and git_bin_works(value):
                logger.info(f"Using git from {env_var}: {value}")
                found = value
                break
        if found is None:
            for candidate in GIT_BIN_CANDIDATES:
                if git_bin_works(candidate):
                    logger.info(f"Using git binary: {candidate}")
                    found = candidate
                    break
        if found is None:
            logger.warning("No usable git binary found")

        self._git_bin = found
        self._git_bin_resolved = True
        return found

    def git_env(self) -> dict[str, str]:
        """Environment for every git invocation."""
        env = {
            "GIT_TERMINAL_PROMPT": "0",
            "GIT_ASKPASS": "echo",
            "GIT_HTTP_LOW_SPEED_LIMIT": str(GIT_HTTP_LOW_SPEED_LIMIT),
            "GIT_HTTP_LOW_SPEED_TIME": str(GIT_HTTP_LOW_SPEED_TIME),
        }
        if self.proxy_url:
            for key in ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy"):
                env[key] = self.proxy_url
        return env

    def _git(
        self, args: list[str], timeout: int, cancel: CancelToken | None
    ) -> CommandResult:
        git_bin = self.resolve_git_bin()
        if git_bin is None:
            raise GitNotFoundError()
        try:
            return run_command(
                [git_bin, *args], timeout, env=self.git_env(), cancel=cancel
            )
        except CommandTimeoutError as e:
            raise GitTimeoutError(timeout, e.stderr) from e
        except FileNotFoundError as e:
            raise GitNotFoundError() from e

    # ── clone / fetch ─────────────────────────────────────

    def clone_or_fetch(
        self,
        repo_url: str,
        dest: Path,
        branch: str | None = None,
        cancel: CancelToken | None = None,
    ) -> str:
        """Bring ``dest`` to the tip of ``repo_url`` and return HEAD's commit.

        Raises:
            GitNotFoundError: No git executable.
            GitCommandError: A git subcommand failed (subclass per step).
            GitTimeoutError: A step exceeded its budget.
            CommandCancelledError: The token was set.
        """
        if self.resolve_git_bin() is None:
            raise GitNotFoundError()

        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        started = time.monotonic()
        d = str(dest)

        if dest.exists():
            out = self._git(["-C", d, "fetch", "--prune", "origin"], self.fetch_timeout, cancel)
            if not out.ok:
                raise GitFetchError(stderr=out.stderr)

            if branch:
                out = self._git(
                    ["-C", d, "checkout", "-B", branch, f"origin/{branch}"],
                    self.fetch_timeout,
                    cancel,
                )
                if not out.ok:
                    raise GitCheckoutError(branch, stderr=out.stderr)
            else:
                out = self._git(["-C", d, "reset", "--hard", "FETCH_HEAD"], self.fetch_timeout, cancel)
                if not out.ok:
                    raise GitResetError(stderr=out.stderr)
        else:
            args = ["clone", "--depth", "1", "--filter=blob:none", "--no-tags"]
            if branch:
                args += ["--branch", branch, "--single-branch"]
            args += [repo_url, d]
            out = self._git(args, self.clone_timeout, cancel)
            if not out.ok:
                raise GitCloneError(repo_url, stderr=out.stderr)

        if branch:
            out = self._git(["-C", d, "checkout", branch], self.fetch_timeout, cancel)
            if not out.ok and out.stderr.strip():
                logger.warning(f"git checkout {branch} warning: {out.stderr.strip()}")

        revision = self.head_revision(dest, cancel)
        logger.info(
            f"git ok in {time.monotonic() - started:.1f}s url={repo_url} rev={revision[:12]}"
        )
        return revision

    def head_revision(self, dest: Path, cancel: CancelToken | None = None) -> str:
        """Commit id of HEAD in an existing clone."""
        out = self._git(["-C", str(dest), "rev-parse", "HEAD"], self.fetch_timeout, cancel)
        if not out.ok:
            raise GitRevParseError(stderr=out.stderr)
        return out.stdout.strip()
