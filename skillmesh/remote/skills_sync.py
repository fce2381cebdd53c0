"""
Mirror the central skill repository onto a remote target.

Remote layout::

    ~/.skillmesh/skills/<name>/              copy of the central directory
    ~/.skillmesh/skills/<name>/.synced_hash  content hash of the last upload
    ~/<tool skills dir>/<name>               symlink to the copy above

A skill is uploaded only when its content hash differs from the remote
marker. Per-skill failures are collected and never stop the run.
"""

from __future__ import annotations

import logging
from pathlib import Path

from skillmesh.central_repo import resolve_skill_central_path
from skillmesh.config import REMOTE_CENTRAL_DIR, REMOTE_HASH_MARKER
from skillmesh.errors import CommandCancelledError, SkillMeshError
from skillmesh.events import SKILLS_CHANGED, SYNC_PROGRESS, EventBus, event_name
from skillmesh.models import Skill, SyncProgress, SyncResult
from skillmesh.process import CancelToken
from skillmesh.remote.transport import RemoteTransport
from skillmesh.skill_store import SkillStore
from skillmesh.tool_adapters import (
    ToolAdapter,
    default_tool_adapters,
    remote_skills_dir,
    skill_tool_keys,
)

logger = logging.getLogger(__name__)


class RemoteSkillsSync:
    """One full skills sync run against ``transport``.

    Args:
        transport: SSH or WSL transport.
        store: Source of skills and their enabled tools.
        central_dir: Local central repository root.
        adapters: Tool descriptors; defaults to the built-ins.
        events: Receives ``<kind>-sync-progress`` and ``<kind>-skills-changed``.
        label: Name used in log lines; defaults to the transport's.
    """

    def __init__(
        self,
        transport: RemoteTransport,
        store: SkillStore,
        central_dir: Path,
        adapters: list[ToolAdapter] | None = None,
        events: EventBus | None = None,
        label: str | None = None,
        remote_root: str = REMOTE_CENTRAL_DIR,
    ) -> None:
        self.transport = transport
        self.store = store
        self.central_dir = Path(central_dir)
        self.adapters = adapters if adapters is not None else default_tool_adapters()
        self.events = events
        self.label = label or transport.describe()
        self.remote_root = remote_root.rstrip("/")

    # ── paths ─────────────────────────────────────────────

    def remote_skill_dir(self, name: str) -> str:
        return f"{self.remote_root}/{name}"

    def remote_link(self, tool: str, name: str) -> str | None:
        skills_dir = remote_skills_dir(tool, self.adapters)
        if skills_dir is None:
            return None
        if not skills_dir.startswith(("~/", "/")):
            skills_dir = f"~/{skills_dir}"
        return f"{skills_dir.rstrip('/')}/{name}"

    # ── events ────────────────────────────────────────────

    def _progress(self, current: int, total: int, item: str) -> None:
        if self.events is None:
            return
        message = f"Skills: {current}/{total}" + (f" - {item}" if current else "")
        self.events.emit(
            event_name(self.transport.kind, SYNC_PROGRESS),
            SyncProgress(
                phase="skills",
                current_item=item,
                current=current,
                total=total,
                message=message,
            ),
        )

    # ── run ───────────────────────────────────────────────

    def run(self, cancel: CancelToken | None = None) -> SyncResult:
        if cancel is not None:
            self.transport.cancel = cancel

        result = SyncResult()
        skills = self.store.list_skills()
        enabled_tools = self.store.enabled_tools_by_skill()
        total = len(skills)
        logger.info(
            f"Skills sync to {self.label}: {total} skills, central_dir={self.central_dir}"
        )
        self._progress(0, total, "Preparing...")

        self._remove_orphans({s.name for s in skills}, result)

        changed: list[str] = []
        for index, skill in enumerate(skills, start=1):
            if cancel is not None:
                cancel.raise_if_cancelled()
            self._progress(index, total, skill.name)
            try:
                if self._sync_skill(skill, enabled_tools.get(skill.id, []), result):
                    changed.append(skill.name)
            except CommandCancelledError:
                raise
            except (SkillMeshError, OSError) as e:
                logger.warning(f"Skills sync to {self.label} failed for {skill.name}: {e}")
                result.add_error(f"{skill.name}: {e}")

        if changed and self.events is not None:
            self.events.emit(event_name(self.transport.kind, SKILLS_CHANGED), changed)

        logger.info(
            f"Skills sync to {self.label} completed: {result.transferred} uploaded, "
            f"{len(result.skipped_files)} skipped, {len(result.errors)} errors"
        )
        return result

    def _remove_orphans(self, local_names: set[str], result: SyncResult) -> None:
        """Delete remote copies (and their links) of skills no longer managed."""
        try:
            remote_names = self.transport.list_dir(self.remote_root)
        except CommandCancelledError:
            raise
        except SkillMeshError as e:
            result.add_error(f"list {self.remote_root}: {e}")
            return

        for name in remote_names:
            if name in local_names:
                continue
            logger.info(f"Removing remote skill {name} from {self.label}")
            try:
                for tool in skill_tool_keys(self.adapters):
                    link = self.remote_link(tool, name)
                    if link is not None:
                        self.transport.remove_link(link)
                self.transport.remove_path(self.remote_skill_dir(name))
            except CommandCancelledError:
                raise
            except SkillMeshError as e:
                result.add_error(f"remove {name}: {e}")

    def _sync_skill(self, skill: Skill, tools: list[str], result: SyncResult) -> bool:
        """Upload one skill if its hash changed and fix its tool links.

        Returns True when the skill was uploaded.
        """
        source = resolve_skill_central_path(skill.central_path, self.central_dir)
        if not source.is_dir():
            logger.info(f"Skills sync: skip {skill.name}, source not found: {source}")
            result.skipped_files.append(skill.name)
            return False

        remote_dir = self.remote_skill_dir(skill.name)
        marker = f"{remote_dir}/{REMOTE_HASH_MARKER}"
        local_hash = skill.content_hash or ""
        remote_hash = self.transport.read_file(marker).strip()

        uploaded = False
        if not local_hash or remote_hash != local_hash:
            logger.info(f"Uploading {skill.name} to {self.label}:{remote_dir}")
            self.transport.upload_dir(source, remote_dir)
            self.transport.write_file(marker, local_hash)
            result.synced_files.append(f"{source} -> {remote_dir}")
            result.transferred += 1
            uploaded = True

        enabled = set(tools)
        for tool in skill_tool_keys(self.adapters):
            link = self.remote_link(tool, skill.name)
            if link is None:
                continue
            if tool in enabled:
                if not self.transport.symlink_points_to(link, remote_dir):
                    self.transport.create_symlink(remote_dir, link)
            else:
                self.transport.remove_link(link)
        return uploaded
