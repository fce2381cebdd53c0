"""Error taxonomy for skillmesh.

Conflict and unavailable errors render as ``CODE|detail`` so callers
(CLI, UI) can branch on the prefix instead of parsing prose:

    TARGET_EXISTS|/home/me/.claude/skills/my-skill
    MULTI_SKILLS|[{"name": "a", "subpath": "skills/a", ...}]
    TOOL_NOT_INSTALLED|cursor
    GIT_NOT_FOUND

Everything else renders as a plain message chained with its cause.
"""

from __future__ import annotations

import json
from typing import Any

# Prefixes the boundary layer passes through verbatim
PASSTHROUGH_CODES = frozenset({"MULTI_SKILLS", "TARGET_EXISTS", "TOOL_NOT_INSTALLED"})


class SkillMeshError(Exception):
    """Base class for all skillmesh errors."""

    code = "ERROR"

    def __init__(self, message: str = "", detail: str | None = None) -> None:
        self.detail = detail
        super().__init__(message or self.code)


class PrefixedError(SkillMeshError):
    """Error whose string form is ``CODE|part|part``."""

    def __init__(self, *parts: str) -> None:
        self.parts = [p for p in parts if p]
        super().__init__("|".join([self.code, *self.parts]))


# ── configuration ─────────────────────────────────────────


class ConfigurationError(SkillMeshError):
    """Missing home directory, invalid or empty path, bad setting value."""

    code = "CONFIGURATION"


# ── conflict ──────────────────────────────────────────────


class ConflictError(PrefixedError):
    """Base class for errors the caller resolves by prompting the user."""


class TargetExistsError(ConflictError):
    """A path already exists and overwrite was not requested."""

    code = "TARGET_EXISTS"

    def __init__(self, path: Any) -> None:
        self.path = str(path)
        super().__init__(self.path)


class MultipleSkillsError(ConflictError):
    """A git source holds several skills; the caller must pick one."""

    code = "MULTI_SKILLS"

    def __init__(self, candidates: list[Any]) -> None:
        self.candidates = list(candidates)
        payload = json.dumps(
            [
                {"name": c.name, "description": c.description, "subpath": c.subpath}
                for c in self.candidates
            ],
            ensure_ascii=False,
        )
        super().__init__(payload)


# ── unavailable ───────────────────────────────────────────


class UnavailableError(PrefixedError):
    """A required tool or binary is not present on this machine."""


class ToolNotInstalledError(UnavailableError):
    code = "TOOL_NOT_INSTALLED"

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(tool)


class GitNotFoundError(UnavailableError):
    code = "GIT_NOT_FOUND"


# ── transport ─────────────────────────────────────────────


class TransportError(SkillMeshError):
    """An external command (git, ssh, wsl) ran and failed."""

    code = "TRANSPORT"

    def __init__(self, message: str, stderr: str = "") -> None:
        self.stderr = stderr.strip()
        super().__init__(message, detail=self.stderr or None)


class GitCommandError(PrefixedError):
    """A git subcommand exited non-zero. ``stderr`` holds its output."""

    code = "GIT_COMMAND_FAILED"

    def __init__(self, *parts: str, stderr: str = "") -> None:
        self.stderr = stderr.strip()
        super().__init__(*parts, self.stderr)


class GitCloneError(GitCommandError):
    code = "GIT_CLONE_FAILED"


class GitFetchError(GitCommandError):
    code = "GIT_FETCH_FAILED"


class GitCheckoutError(GitCommandError):
    code = "GIT_CHECKOUT_FAILED"


class GitResetError(GitCommandError):
    code = "GIT_RESET_FAILED"


class GitRevParseError(GitCommandError):
    code = "GIT_REVPARSE_FAILED"


class RemoteCommandError(TransportError):
    """An ssh/scp/wsl invocation failed."""

    code = "REMOTE_COMMAND_FAILED"


# ── timeout / cancellation ────────────────────────────────


class CommandTimeoutError(SkillMeshError):
    """A child process exceeded its wall-clock budget and was killed."""

    code = "TIMEOUT"

    def __init__(self, timeout: float, stderr: str = "", command: str = "") -> None:
        self.timeout = timeout
        self.stderr = stderr.strip()
        self.command = command
        super().__init__(
            f"command timed out after {timeout:g}s: {command}".rstrip(": "),
            detail=self.stderr or None,
        )


class GitTimeoutError(PrefixedError):
    code = "GIT_TIMEOUT"

    def __init__(self, timeout: float, stderr: str = "") -> None:
        self.timeout = timeout
        self.stderr = stderr.strip()
        super().__init__(f"{int(timeout)}", self.stderr)


class CommandCancelledError(SkillMeshError):
    """A CancelToken was set while a child process was running."""

    code = "CANCELLED"


# ── domain ────────────────────────────────────────────────


class SkillNotFoundError(SkillMeshError):
    code = "SKILL_NOT_FOUND"


class NoSkillFoundError(SkillMeshError):
    """A source (directory or repository) holds no SKILL.md."""

    code = "NO_SKILL_FOUND"


class SourceMissingError(SkillMeshError):
    """The original source of a managed skill is gone."""

    code = "SOURCE_MISSING"


class McpConfigError(SkillMeshError):
    """A remote MCP config file could not be parsed or is not an object."""

    code = "MCP_CONFIG_INVALID"


class PartialCleanupError(SkillMeshError):
    """The record was deleted but some directories could not be cleaned."""

    code = "PARTIAL_CLEANUP"

    def __init__(self, failures: list[str]) -> None:
        self.failures = failures
        super().__init__(
            "Deleted managed record, but some directories could not be cleaned:\n- "
            + "\n- ".join(failures)
        )


def error_code(exc: BaseException) -> str | None:
    """Return the machine-readable code of a skillmesh error, else None."""
    if isinstance(exc, SkillMeshError):
        return exc.code
    return None


def format_error(exc: BaseException) -> str:
    """Render an exception for the boundary layer.

    Conflict and unavailable codes are returned untouched so the caller can
    split on ``|``. Other errors are rendered with their cause chain.
    """
    first = str(exc)
    if isinstance(exc, PrefixedError) and exc.code in PASSTHROUGH_CODES:
        return first

    parts = [first]
    cause = exc.__cause__ or exc.__context__
    while cause is not None:
        text = str(cause)
        if text and text not in parts:
            parts.append(text)
        cause = cause.__cause__ or cause.__context__
    return ": ".join(parts)
