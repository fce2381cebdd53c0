"""
Centralized path management for skillmesh.

Provides functions to get standard paths for the record database, the
default central repository, the git cache and logs. All paths can be
overridden via environment variables.
"""

import os
import sys
from pathlib import Path


def _resolve_path(env_var: str, default: Path) -> str:
    """Resolve a path from an environment variable or fall back to a default.

    If the environment variable is set, its value is expanded
    (``~`` and ``$VAR`` substitution) and returned. Otherwise the
    *default* path is returned.

    Args:
        env_var: Name of the environment variable to check.
        default: Default path when the environment variable is unset.

    Returns:
        Resolved path string.
    """
    env_path = os.environ.get(env_var)
    if env_path:
        return str(Path(os.path.expanduser(os.path.expandvars(env_path))))
    return str(default)


def get_home_dir() -> str:
    """Get the skillmesh home directory (~/.skillmesh).

    Override with SKILLMESH_HOME environment variable.
    """
    return _resolve_path("SKILLMESH_HOME", Path.home() / ".skillmesh")


def get_app_data_dir() -> str:
    """Get the application data directory.

    The default central repository lives under this directory.
    Override with SKILLMESH_DATA_DIR environment variable.
    """
    return _resolve_path("SKILLMESH_DATA_DIR", Path(get_home_dir()) / "data")


def get_cache_dir() -> str:
    """Get the application cache directory (git clones live here).

    Override with SKILLMESH_CACHE_DIR environment variable.
    """
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        default = base / "skillmesh" / "cache"
    elif sys.platform == "darwin":
        default = Path.home() / "Library" / "Caches" / "skillmesh"
    else:
        xdg = os.environ.get("XDG_CACHE_HOME")
        default = (Path(xdg) if xdg else Path.home() / ".cache") / "skillmesh"
    return _resolve_path("SKILLMESH_CACHE_DIR", default)


def get_db_path() -> str:
    """Get the path to the record database.

    Override with SKILLMESH_DB_PATH environment variable.
    """
    return _resolve_path("SKILLMESH_DB_PATH", Path(get_home_dir()) / "skillmesh.db")


def get_log_dir() -> str:
    """Get the log directory.

    Override with SKILLMESH_LOG_DIR environment variable.
    """
    return _resolve_path("SKILLMESH_LOG_DIR", Path(get_home_dir()) / "logs")
