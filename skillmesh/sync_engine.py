"""Project central skill directories into tool directories.

A target is realized as a symlink when possible, a directory junction on
Windows when symlinks are not permitted, or a full copy.
"""

import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from skillmesh.content_hash import SKIPPED_NAMES
from skillmesh.errors import TargetExistsError
from skillmesh.tool_adapters import adapter_by_key

logger = logging.getLogger(__name__)

COPY_IGNORE = shutil.ignore_patterns(*SKIPPED_NAMES)


class SyncMode(str, Enum):
    """How a skill target is realized."""

    AUTO = "auto"
    SYMLINK = "symlink"
    JUNCTION = "junction"
    COPY = "copy"


@dataclass
class SyncOutcome:
    """Result of syncing one skill to one tool"""

    mode_used: SyncMode
    target_path: Path
    replaced: bool = False


def _is_junction(path: Path) -> bool:
    isjunction = getattr(os.path, "isjunction", None)
    return bool(isjunction and isjunction(path))


def is_link(path: Path) -> bool:
    """True for symlinks and junctions, dangling or not."""
    return os.path.islink(path) or _is_junction(path)


def is_link_to(path: Path, source: Path) -> bool:
    """True when ``path`` is a link resolving to ``source``."""
    if not is_link(path):
        return False
    return os.path.realpath(path) == os.path.realpath(source)


def remove_path(path: str | Path) -> None:
    """Remove a link, junction, file or tree. Missing paths are ignored.

    Links are removed without touching what they point to.
    """
    p = Path(path)
    if not os.path.lexists(p):
        return
    if is_link(p):
        try:
            os.unlink(p)
        except (IsADirectoryError, PermissionError):
            # Windows junctions are removed as directories
            os.rmdir(p)
    elif p.is_dir():
        shutil.rmtree(p)
    else:
        p.unlink()
    logger.debug(f"Removed {p}")


def copy_dir(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, target, ignore=COPY_IGNORE)


def _create_symlink(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(source, target, target_is_directory=True)


def _create_junction(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    result = subprocess.run(
        ["cmd", "/c", "mklink", "/J", str(target), str(source)],
        capture_output=True,
        text=True,
        creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
    )
    if result.returncode != 0:
        raise OSError(f"mklink /J failed: {result.stderr.strip() or result.stdout.strip()}")


class LocalSyncEngine:
    """Creates, checks and removes skill targets on the local machine."""

    def __init__(self, platform: str | None = None) -> None:
        self.platform = platform or sys.platform

    def _auto_mode(self, tool: str) -> SyncMode:
        adapter = adapter_by_key(tool)
        if adapter is not None and not adapter.supports_symlink:
            return SyncMode.COPY
        return SyncMode.SYMLINK

    def _link_with_fallback(self, source: Path, target: Path) -> SyncMode:
        try:
            _create_symlink(source, target)
            return SyncMode.SYMLINK
        except OSError as e:
            logger.info(f"Symlink failed for {target}: {e}")

        if self.platform == "win32":
            try:
                _create_junction(source, target)
                return SyncMode.JUNCTION
            except OSError as e:
                logger.info(f"Junction failed for {target}: {e}")

        copy_dir(source, target)
        return SyncMode.COPY

    def sync(
        self,
        tool: str,
        source_dir: Path,
        target_path: Path,
        overwrite: bool = False,
        mode: SyncMode = SyncMode.AUTO,
    ) -> SyncOutcome:
        """Make ``target_path`` present ``source_dir`` to ``tool``.

        Re-syncing a target that already links to the source is a no-op.

        Raises:
            TargetExistsError: If something else occupies the target and
                ``overwrite`` is False.
        """
        source_dir = Path(source_dir)
        target_path = Path(target_path)
        mode = SyncMode(mode)

        if not source_dir.is_dir():
            raise FileNotFoundError(f"source directory not found: {source_dir}")

        if is_link_to(target_path, source_dir):
            used = SyncMode.JUNCTION if _is_junction(target_path) else SyncMode.SYMLINK
            logger.debug(f"{tool}: {target_path} already linked")
            return SyncOutcome(used, target_path, replaced=False)

        replaced = False
        if os.path.lexists(target_path):
            if not overwrite:
                raise TargetExistsError(target_path)
            remove_path(target_path)
            replaced = True

        if mode is SyncMode.AUTO:
            mode = self._auto_mode(tool)
            if mode is SyncMode.SYMLINK:
                mode = self._link_with_fallback(source_dir, target_path)
                logger.info(f"Synced {source_dir.name} to {tool} via {mode.value}: {target_path}")
                return SyncOutcome(mode, target_path, replaced=replaced)

        if mode is SyncMode.COPY:
            copy_dir(source_dir, target_path)
        elif mode is SyncMode.JUNCTION:
            _create_junction(source_dir, target_path)
        else:
            _create_symlink(source_dir, target_path)
        used = mode

        logger.info(f"Synced {source_dir.name} to {tool} via {used.value}: {target_path}")
        return SyncOutcome(used, target_path, replaced=replaced)

    def unsync(self, target_path: str | Path) -> None:
        remove_path(target_path)

    def resync_copy(self, source_dir: Path, target_path: Path) -> None:
        """Replace a copy target with the current source content."""
        remove_path(target_path)
        copy_dir(Path(source_dir), Path(target_path))
