"""Location of the central skill repository."""

import logging
from pathlib import Path

from skillmesh.config import CENTRAL_DIR_NAME
from skillmesh.errors import ConfigurationError
from skillmesh.paths import get_app_data_dir
from skillmesh.skill_store import SkillStore

logger = logging.getLogger(__name__)


def expand_home(value: str) -> Path:
    """Expand a leading ``~`` or ``~/``.

    Raises:
        ConfigurationError: If the value is empty.
    """
    trimmed = value.strip()
    if not trimmed:
        raise ConfigurationError("storage path is empty")
    if trimmed == "~":
        return Path.home()
    if trimmed.startswith("~/"):
        return Path.home() / trimmed[2:]
    return Path(trimmed)


def get_path(store: SkillStore) -> Path:
    """Configured central repository, else ``<app data>/skills``."""
    configured = store.get_settings().central_repo_path
    if configured and configured.strip():
        return expand_home(configured)
    return Path(get_app_data_dir()) / CENTRAL_DIR_NAME


def ensure(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def set_path(store: SkillStore, value: str) -> Path:
    """Validate, create and persist a new central repository location."""
    path = expand_home(value)
    if not path.is_absolute():
        raise ConfigurationError(f"central repository path must be absolute: {value}")
    ensure(path)
    store.set_setting("central_repo_path", str(path))
    logger.info(f"Central repository set to {path}")
    return path


def is_inside(path: Path, root: Path) -> bool:
    """True when ``path`` is ``root`` or lies below it (after resolving)."""
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def resolve_skill_central_path(central_path: str, central_dir: Path) -> Path:
    """Locate a skill directory even after the repository was moved.

    Falls back to ``central_dir / <basename>`` when the stored path is gone.
    """
    stored = Path(central_path)
    if stored.exists():
        return stored
    relocated = central_dir / stored.name
    if relocated.exists():
        logger.debug(f"Resolved moved skill {stored} -> {relocated}")
        return relocated
    return stored
