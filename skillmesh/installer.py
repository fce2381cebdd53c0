"""Install skills into the central repository and keep them up to date.

Sources:
- a local directory (``local``), or one adopted from a tool directory
  (``import``)
- a git repository, holding one skill at its root or several in
  subdirectories (``git``)
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from skillmesh.central_repo import ensure, is_inside, resolve_skill_central_path
from skillmesh.config import DEFAULT_GIT_CACHE_TTL_SECS, GIT_SCAN_MAX_DEPTH, SKILL_MANIFEST
from skillmesh.content_hash import hash_dir
from skillmesh.errors import (
    ConfigurationError,
    MultipleSkillsError,
    NoSkillFoundError,
    PartialCleanupError,
    SkillMeshError,
    SkillNotFoundError,
    SourceMissingError,
    TargetExistsError,
    ToolNotInstalledError,
)
from skillmesh.git_cache import GitCache
from skillmesh.git_fetcher import GitFetcher
from skillmesh.models import GitSkillCandidate, Skill, SkillTarget
from skillmesh.process import CancelToken
from skillmesh.skill_store import SkillStore, now_ms
from skillmesh.sync_engine import COPY_IGNORE, LocalSyncEngine, SyncMode, remove_path
from skillmesh.tool_adapters import (
    ToolAdapter,
    adapter_by_key,
    default_tool_adapters,
    is_tool_installed,
    resolve_skills_dir,
)

logger = logging.getLogger(__name__)

SCAN_SKIP_DIRS = frozenset({".git", "node_modules"})

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---", re.DOTALL)
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class InstallResult:
    """A skill registered in the central repository"""

    skill_id: str
    name: str
    central_path: Path
    content_hash: str


@dataclass
class UpdateResult:
    """Outcome of re-reading a skill from its source"""

    skill_id: str
    name: str
    content_hash: str
    source_revision: str | None = None
    changed: bool = False
    updated_targets: list[str] = field(default_factory=list)


@dataclass
class ToolSyncResult:
    """A skill target written for one tool"""

    tool: str
    mode_used: str
    target_path: Path
    replaced: bool = False


# ──────────────────────────────────────────────────────────
# SKILL.md helpers
# ──────────────────────────────────────────────────────────


def parse_skill_frontmatter(path: Path) -> dict[str, Any] | None:
    """Return the YAML frontmatter of a SKILL.md as a dict, or None."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return None

    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.debug(f"Invalid frontmatter in {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def sanitize_skill_name(name: str) -> str:
    """Make a name safe to use as a single directory component."""
    cleaned = _UNSAFE_NAME_RE.sub("-", name.strip()).strip("-.")
    return cleaned or "skill"


def read_skill_name(skill_dir: Path, fallback: str | None = None) -> str:
    """Frontmatter ``name`` if present, else ``fallback`` or the dir name."""
    meta = parse_skill_frontmatter(skill_dir / SKILL_MANIFEST) or {}
    name = meta.get("name")
    if isinstance(name, str) and name.strip():
        return sanitize_skill_name(name)
    return sanitize_skill_name(fallback or skill_dir.name)


def repo_name_from_url(repo_url: str) -> str:
    tail = repo_url.rstrip("/").rsplit("/", 1)[-1]
    if tail.endswith(".git"):
        tail = tail[:-4]
    return sanitize_skill_name(tail.rsplit(":", 1)[-1])


def scan_candidates(repo_dir: Path, repo_name: str | None = None) -> list[GitSkillCandidate]:
    """Find skill directories in a cloned repository.

    A SKILL.md at the root means the whole repository is one skill.
    Otherwise every directory down to GIT_SCAN_MAX_DEPTH holding a
    SKILL.md is a candidate, sorted by subpath.
    """

    def candidate(skill_dir: Path, subpath: str, fallback: str | None) -> GitSkillCandidate:
        meta = parse_skill_frontmatter(skill_dir / SKILL_MANIFEST) or {}
        description = meta.get("description")
        return GitSkillCandidate(
            name=read_skill_name(skill_dir, fallback),
            subpath=subpath,
            description=str(description) if description is not None else None,
        )

    if (repo_dir / SKILL_MANIFEST).is_file():
        return [candidate(repo_dir, ".", repo_name)]

    found: list[GitSkillCandidate] = []
    for dirpath, dirnames, filenames in os.walk(repo_dir):
        current = Path(dirpath)
        depth = len(current.relative_to(repo_dir).parts)
        dirnames[:] = sorted(d for d in dirnames if d not in SCAN_SKIP_DIRS)
        if depth >= GIT_SCAN_MAX_DEPTH:
            dirnames[:] = []
        if depth > 0 and SKILL_MANIFEST in filenames:
            found.append(candidate(current, current.relative_to(repo_dir).as_posix(), None))

    found.sort(key=lambda c: c.subpath)
    return found


# ──────────────────────────────────────────────────────────
# Installer
# ──────────────────────────────────────────────────────────


class SkillInstaller:
    """Turns local directories and git repositories into managed skills.

    Args:
        store: Record persistence.
        central_dir: Root of the central repository.
        git_fetcher: Configured GitFetcher.
        cache_root: Root of the git clone cache.
        sync_engine: Used to refresh targets after an update.
        adapters: Tool descriptors (built-ins when omitted).
        cache_ttl_secs: Window in which a cached clone is reused as-is.
    """

    def __init__(
        self,
        store: SkillStore,
        central_dir: Path,
        git_fetcher: GitFetcher,
        cache_root: Path | None = None,
        sync_engine: LocalSyncEngine | None = None,
        adapters: list[ToolAdapter] | None = None,
        cache_ttl_secs: int = DEFAULT_GIT_CACHE_TTL_SECS,
    ) -> None:
        self.store = store
        self.central_dir = Path(central_dir)
        self.git_fetcher = git_fetcher
        self.git_cache = GitCache(cache_root)
        self.sync_engine = sync_engine or LocalSyncEngine()
        self.adapters = adapters if adapters is not None else default_tool_adapters()
        self.cache_ttl_secs = cache_ttl_secs

    # ── local ─────────────────────────────────────────────

    def install_from_local(
        self,
        source_dir: Path,
        overwrite: bool = False,
        source_type: str = "local",
    ) -> InstallResult:
        """Copy a local skill directory into the central repository.

        Raises:
            TargetExistsError: The name is taken and ``overwrite`` is False.
        """
        source = Path(source_dir).expanduser()
        if not source.is_dir():
            raise NoSkillFoundError(f"source is not a directory: {source}")
        return self._install_dir(
            source,
            read_skill_name(source),
            overwrite,
            source_type=source_type,
            source_ref=str(source.resolve()),
        )

    def import_existing(self, path: Path, overwrite: bool = False) -> InstallResult:
        """Adopt a skill found in a tool directory."""
        return self.install_from_local(path, overwrite=overwrite, source_type="import")

    def _install_dir(
        self,
        source: Path,
        name: str,
        overwrite: bool,
        **meta: Any,
    ) -> InstallResult:
        central = ensure(self.central_dir)
        dest = central / name
        if not is_inside(dest, central):
            raise ConfigurationError(f"skill path escapes the central repository: {dest}")

        existing = self.store.get_skill_by_name(name)
        if (os.path.lexists(dest) or existing is not None) and not overwrite:
            raise TargetExistsError(dest)

        self._replace_dir(source, dest)
        content_hash = hash_dir(dest)

        now = now_ms()
        skill = existing or Skill(name=name, created_at=now)
        skill.central_path = str(dest)
        skill.content_hash = content_hash
        skill.updated_at = now
        skill.status = "ok"
        skill.source_subpath = None
        skill.source_branch = None
        skill.source_revision = None
        for key, value in meta.items():
            setattr(skill, key, value)
        skill_id = self.store.upsert_skill(skill)

        logger.info(f"Installed skill '{name}' ({skill.source_type}) into {dest}")
        return InstallResult(skill_id, name, dest, content_hash)

    @staticmethod
    def _replace_dir(source: Path, dest: Path) -> None:
        """Copy ``source`` next to ``dest`` first, then swap it in."""
        staging = dest.parent / f".{dest.name}.staging-{uuid.uuid4().hex[:8]}"
        shutil.copytree(source, staging, ignore=COPY_IGNORE)
        try:
            remove_path(dest)
            staging.rename(dest)
        except OSError:
            shutil.rmtree(staging, ignore_errors=True)
            raise

    # ── git ───────────────────────────────────────────────

    def _fetch(
        self,
        repo_url: str,
        branch: str | None,
        force: bool = False,
        cancel: CancelToken | None = None,
    ) -> tuple[Path, str]:
        repo_dir = self.git_cache.repo_dir(repo_url, branch)
        if not force and self.git_cache.is_fresh(repo_dir, self.cache_ttl_secs):
            logger.debug(f"Reusing cached clone of {repo_url}")
            return repo_dir, self.git_fetcher.head_revision(repo_dir, cancel)

        revision = self.git_fetcher.clone_or_fetch(repo_url, repo_dir, branch, cancel)
        self.git_cache.touch(repo_dir, repo_url, branch)
        return repo_dir, revision

    def list_git_candidates(
        self,
        repo_url: str,
        branch: str | None = None,
        cancel: CancelToken | None = None,
    ) -> list[GitSkillCandidate]:
        repo_dir, _ = self._fetch(repo_url, branch, cancel=cancel)
        return scan_candidates(repo_dir, repo_name_from_url(repo_url))

    def install_from_git(
        self,
        repo_url: str,
        branch: str | None = None,
        overwrite: bool = False,
        cancel: CancelToken | None = None,
    ) -> InstallResult:
        """Install the single skill of a repository.

        Raises:
            NoSkillFoundError: No SKILL.md in the repository.
            MultipleSkillsError: Several candidates; pick one with
                install_from_selection.
        """
        repo_dir, revision = self._fetch(repo_url, branch, cancel=cancel)
        candidates = scan_candidates(repo_dir, repo_name_from_url(repo_url))
        if not candidates:
            raise NoSkillFoundError(f"no {SKILL_MANIFEST} found in {repo_url}")
        if len(candidates) > 1:
            raise MultipleSkillsError(candidates)
        return self._install_git_subpath(
            repo_dir, repo_url, branch, candidates[0].subpath, revision, overwrite
        )

    def install_from_selection(
        self,
        repo_url: str,
        subpath: str,
        branch: str | None = None,
        overwrite: bool = False,
        cancel: CancelToken | None = None,
    ) -> InstallResult:
        repo_dir, revision = self._fetch(repo_url, branch, cancel=cancel)
        return self._install_git_subpath(repo_dir, repo_url, branch, subpath, revision, overwrite)

    def _git_source_dir(self, repo_dir: Path, subpath: str | None) -> Path:
        if not subpath or subpath == ".":
            return repo_dir
        source = repo_dir / subpath
        if not is_inside(source, repo_dir):
            raise ConfigurationError(f"subpath escapes the repository: {subpath}")
        return source

    def _install_git_subpath(
        self,
        repo_dir: Path,
        repo_url: str,
        branch: str | None,
        subpath: str,
        revision: str,
        overwrite: bool,
    ) -> InstallResult:
        source = self._git_source_dir(repo_dir, subpath)
        if not (source / SKILL_MANIFEST).is_file():
            raise NoSkillFoundError(f"no {SKILL_MANIFEST} in {subpath}")

        fallback = repo_name_from_url(repo_url) if source == repo_dir else None
        return self._install_dir(
            source,
            read_skill_name(source, fallback),
            overwrite,
            source_type="git",
            source_ref=repo_url,
            source_subpath=subpath,
            source_branch=branch,
            source_revision=revision,
        )

    # ── update ────────────────────────────────────────────

    def update_from_source(
        self, skill_id: str, cancel: CancelToken | None = None
    ) -> UpdateResult:
        """Re-read a skill from where it came from.

        An unchanged hash is a no-op apart from refreshing the revision.
        Otherwise the central copy is replaced in place and every ``ok``
        target is refreshed.
        """
        skill = self.store.get_skill(skill_id)
        if skill is None:
            raise SkillNotFoundError(f"skill not found: {skill_id}")

        revision = skill.source_revision
        if skill.source_type == "git":
            if not skill.source_ref:
                raise SourceMissingError(f"skill '{skill.name}' has no repository URL")
            repo_dir, revision = self._fetch(
                skill.source_ref, skill.source_branch, force=True, cancel=cancel
            )
            source = self._git_source_dir(repo_dir, skill.source_subpath)
        else:
            if not skill.source_ref:
                raise SourceMissingError(f"skill '{skill.name}' has no source path")
            source = Path(skill.source_ref)

        if not source.is_dir():
            raise SourceMissingError(f"source no longer exists: {source}")

        new_hash = hash_dir(source)
        skill.source_revision = revision

        if new_hash == skill.content_hash:
            self.store.upsert_skill(skill)
            logger.info(f"Skill '{skill.name}' is up to date")
            return UpdateResult(skill.id, skill.name, new_hash, revision, changed=False)

        central_path = resolve_skill_central_path(skill.central_path, self.central_dir)
        self._replace_dir(source, central_path)
        skill.central_path = str(central_path)
        skill.content_hash = hash_dir(central_path)
        skill.updated_at = now_ms()
        skill.status = "ok"
        self.store.upsert_skill(skill)

        updated = self._refresh_targets(skill, central_path)
        logger.info(f"Updated skill '{skill.name}', refreshed: {', '.join(updated) or 'none'}")
        return UpdateResult(
            skill.id, skill.name, skill.content_hash, revision, changed=True, updated_targets=updated
        )

    def _refresh_targets(self, skill: Skill, central_path: Path) -> list[str]:
        updated: list[str] = []
        for target in self.store.list_targets(skill.id):
            if target.status != "ok":
                continue
            target_path = Path(target.target_path)
            try:
                if target.mode == SyncMode.COPY.value:
                    self.sync_engine.resync_copy(central_path, target_path)
                    mode = SyncMode.COPY
                else:
                    outcome = self.sync_engine.sync(
                        target.tool, central_path, target_path, overwrite=True,
                        mode=SyncMode(target.mode),
                    )
                    mode = outcome.mode_used
            except (OSError, SkillMeshError) as e:
                logger.warning(f"Failed to refresh {target.tool} target {target_path}: {e}")
                target.status = "error"
                target.error_message = str(e)
                self.store.upsert_skill_target(target)
                continue

            target.mode = mode.value
            target.synced_at = now_ms()
            target.error_message = None
            self.store.upsert_skill_target(target)
            updated.append(target.tool)
        return updated

    # ── tool targets ──────────────────────────────────────

    def _adapter(self, tool: str) -> ToolAdapter:
        adapter = adapter_by_key(tool, self.adapters)
        if adapter is None:
            raise ConfigurationError(f"unknown tool: {tool}")
        return adapter

    def sync_to_tool(
        self,
        skill_id: str,
        tool: str,
        overwrite: bool = False,
        mode: SyncMode = SyncMode.AUTO,
    ) -> ToolSyncResult:
        """Project a managed skill into a tool's skills directory.

        Raises:
            ToolNotInstalledError: The tool is not detected.
            TargetExistsError: Something else occupies the target.
        """
        skill = self.store.get_skill(skill_id)
        if skill is None:
            raise SkillNotFoundError(f"skill not found: {skill_id}")
        adapter = self._adapter(tool)
        if not is_tool_installed(adapter):
            raise ToolNotInstalledError(adapter.key)

        source = resolve_skill_central_path(skill.central_path, self.central_dir)
        target_path = resolve_skills_dir(adapter) / skill.name
        outcome = self.sync_engine.sync(tool, source, target_path, overwrite=overwrite, mode=mode)

        now = now_ms()
        self.store.upsert_skill_target(
            SkillTarget(
                skill_id=skill.id,
                tool=tool,
                target_path=str(outcome.target_path),
                mode=outcome.mode_used.value,
                status="ok",
                synced_at=now,
            )
        )
        skill.last_sync_at = now
        self.store.upsert_skill(skill)
        return ToolSyncResult(tool, outcome.mode_used.value, outcome.target_path, outcome.replaced)

    def unsync_from_tool(self, skill_id: str, tool: str) -> bool:
        """Remove a skill's target. A tool that is not installed is left alone."""
        adapter = adapter_by_key(tool, self.adapters)
        if adapter is not None and not is_tool_installed(adapter):
            return False
        target = self.store.get_target(skill_id, tool)
        if target is None:
            return False
        self.sync_engine.unsync(target.target_path)
        self.store.delete_target(skill_id, tool)
        logger.info(f"Unsynced {skill_id} from {tool}")
        return True

    # ── delete ────────────────────────────────────────────

    def delete_skill(self, skill_id: str) -> None:
        """Remove every target, the central copy and the records.

        The records are always removed. Paths that could not be deleted,
        targets or the central copy, are reported afterwards.

        Raises:
            PartialCleanupError: After the records are gone, if some paths
                could not be removed.
        """
        failures: list[str] = []
        for target in self.store.list_targets(skill_id):
            try:
                remove_path(target.target_path)
            except OSError as e:
                failures.append(f"{target.target_path}: {e}")

        skill = self.store.get_skill(skill_id)
        if skill is not None:
            central_path = resolve_skill_central_path(skill.central_path, self.central_dir)
            if skill.central_path and central_path.exists():
                try:
                    remove_path(central_path)
                except OSError as e:
                    failures.append(f"{central_path}: {e}")
            logger.info(f"Deleted skill '{skill.name}'")
        self.store.delete_skill(skill_id)

        if failures:
            raise PartialCleanupError(failures)
