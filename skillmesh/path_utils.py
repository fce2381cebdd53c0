"""
Path normalization for tool directories and file mappings.

User-entered paths are stored in a portable form:

    ~/.claude/skills          home relative
    %APPDATA%/Code/User       platform config directory relative
    /opt/tools/skills         literal absolute path

and resolved back to the native form on the current machine.
"""

import os
import re
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

HOME_TOKEN = "~"
APPDATA_TOKEN = "%APPDATA%"

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


class PathType(str, Enum):
    """Kind of a normalized path."""

    HOME_RELATIVE = "home_relative"
    APPDATA_RELATIVE = "appdata_relative"
    ABSOLUTE = "absolute"


@dataclass(frozen=True)
class NormalizedPath:
    """A path with its base token stripped (always ``/`` separated)."""

    path: str
    path_type: PathType


def home_dir() -> Path:
    return Path.home()


def config_dir() -> Path:
    """Return the platform configuration directory.

    ``%APPDATA%`` on Windows, ``~/Library/Application Support`` on macOS,
    ``$XDG_CONFIG_HOME`` or ``~/.config`` elsewhere.
    """
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata)
        return home_dir() / "AppData" / "Roaming"
    if sys.platform == "darwin":
        return home_dir() / "Library" / "Application Support"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return home_dir() / ".config"


def _strip_base(normalized: str, base: Path) -> str | None:
    base_str = str(base).replace("\\", "/").rstrip("/")
    if not base_str:
        return None
    if normalized == base_str:
        return ""
    if normalized.startswith(base_str + "/"):
        return normalized[len(base_str):].lstrip("/")
    return None


def normalize_path(value: str) -> NormalizedPath:
    """Normalize a user-input path for storage.

    Rules, in order:
    1. ``~`` or ``~/...``                       -> home relative
    2. ``%APPDATA%`` or ``%APPDATA%/...``       -> config relative
    3. absolute path under the home directory   -> home relative
    4. absolute path under the config directory -> config relative
    5. anything else                            -> absolute, kept as-is
    """
    normalized = value.strip().replace("\\", "/")

    if normalized == HOME_TOKEN:
        return NormalizedPath("", PathType.HOME_RELATIVE)
    if normalized.startswith("~/"):
        return NormalizedPath(normalized[2:], PathType.HOME_RELATIVE)

    upper = normalized.upper()
    if upper == APPDATA_TOKEN:
        return NormalizedPath("", PathType.APPDATA_RELATIVE)
    if upper.startswith(APPDATA_TOKEN + "/"):
        return NormalizedPath(normalized[len(APPDATA_TOKEN) + 1:], PathType.APPDATA_RELATIVE)

    rest = _strip_base(normalized, home_dir())
    if rest is not None:
        return NormalizedPath(rest, PathType.HOME_RELATIVE)

    rest = _strip_base(normalized, config_dir())
    if rest is not None:
        return NormalizedPath(rest, PathType.APPDATA_RELATIVE)

    return NormalizedPath(normalized, PathType.ABSOLUTE)


def to_storage_path(normalized: NormalizedPath) -> str:
    """Render a NormalizedPath in its stored form."""
    if normalized.path_type is PathType.HOME_RELATIVE:
        return f"~/{normalized.path}" if normalized.path else HOME_TOKEN
    if normalized.path_type is PathType.APPDATA_RELATIVE:
        return f"{APPDATA_TOKEN}/{normalized.path}" if normalized.path else APPDATA_TOKEN
    return normalized.path


def to_platform_path(value: str) -> str:
    """Convert ``/`` separators to the native separator."""
    if os.sep == "/":
        return value
    return value.replace("/", os.sep)


def _is_absolute(normalized: str) -> bool:
    return normalized.startswith("/") or bool(_DRIVE_RE.match(normalized))


def resolve_storage_path(storage_path: str) -> Path:
    """Resolve a stored path to an absolute native path.

    Never fails: plain relative paths are treated as home relative and
    anything else is returned as a literal path.
    """
    raw = storage_path.strip()
    normalized = raw.replace("\\", "/")

    if normalized == HOME_TOKEN:
        return home_dir()
    if normalized.startswith("~/"):
        return home_dir() / to_platform_path(normalized[2:])

    upper = normalized.upper()
    if upper == APPDATA_TOKEN:
        return config_dir()
    if upper.startswith(APPDATA_TOKEN + "/"):
        return config_dir() / to_platform_path(normalized[len(APPDATA_TOKEN) + 1:])

    if _is_absolute(normalized):
        return Path(raw)

    if not normalized:
        return Path(raw)

    return home_dir() / to_platform_path(normalized)


def resolve(normalized: NormalizedPath) -> Path:
    return resolve_storage_path(to_storage_path(normalized))


def is_root_directory(storage_path: str) -> bool:
    """True when the path is the home or config directory itself.

    Such paths are never scanned for skills.
    """
    raw = storage_path.strip()
    if not raw:
        return True
    normalized = raw.replace("\\", "/")
    if normalized == HOME_TOKEN or normalized.upper() == APPDATA_TOKEN:
        return True
    resolved = resolve_storage_path(raw)
    return resolved == home_dir() or resolved == config_dir()


def expand_local_path(value: str) -> Path:
    """Expand a file-mapping path on the local machine.

    Handles ``~``, ``$HOME``, ``%USERPROFILE%``, ``%APPDATA%`` and
    ``%LOCALAPPDATA%``.
    """
    home = str(home_dir())
    result = value.strip()

    if result == "~":
        return Path(home)
    if result.startswith("~/") or result.startswith("~\\"):
        result = home + result[1:]

    replacements = {
        "$HOME": home,
        "%USERPROFILE%": os.environ.get("USERPROFILE", home),
        "%APPDATA%": os.environ.get("APPDATA", str(config_dir())),
        "%LOCALAPPDATA%": os.environ.get(
            "LOCALAPPDATA", str(home_dir() / "AppData" / "Local")
        ),
    }
    for token, replacement in replacements.items():
        pattern = re.compile(re.escape(token), re.IGNORECASE)
        result = pattern.sub(lambda _m, r=replacement: r, result)

    return Path(to_platform_path(result.replace("\\", "/")))
