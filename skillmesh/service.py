"""
Async command layer over the skill installer and remote sync.

Every public coroutine is one logical operation: it takes the store
lock, runs the blocking work (git, filesystem copies, ssh/wsl
subprocesses) in a worker thread and returns a plain result. Errors are
:class:`~skillmesh.errors.SkillMeshError` subclasses; unexpected OS
errors are wrapped with the operation name so ``format_error`` can
render ``"<operation> failed: <cause>"``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, TypeVar

from skillmesh import central_repo
from skillmesh.errors import (
    CommandCancelledError,
    ConfigurationError,
    SkillMeshError,
    SkillNotFoundError,
)
from skillmesh.events import SKILLS_CHANGED, SYNC_COMPLETED, EventBus, event_name
from skillmesh.git_cache import GitCache, validate_cleanup_days
from skillmesh.git_fetcher import GitFetcher
from skillmesh.installer import (
    InstallResult,
    SkillInstaller,
    ToolSyncResult,
    UpdateResult,
)
from skillmesh.models import (
    FileMapping,
    GitSkillCandidate,
    RemoteSyncConfig,
    Skill,
    SkillTarget,
    SSHConnection,
    SyncResult,
)
from skillmesh.onboarding import OnboardingPlan, build_onboarding_plan
from skillmesh.paths import get_db_path
from skillmesh.process import CancelToken
from skillmesh.records import SQLiteRecordStore
from skillmesh.remote.file_sync import default_file_mappings, resolve_dynamic_paths, sync_mappings
from skillmesh.remote.mcp_sync import sync_mcp
from skillmesh.remote.skills_sync import RemoteSkillsSync
from skillmesh.remote.ssh import ConnectionTestResult, SSHTransport, check_connection
from skillmesh.remote.transport import RemoteTransport
from skillmesh.remote.wsl import WSLDetectResult, WSLTransport, detect_wsl
from skillmesh.skill_store import SkillStore
from skillmesh.sync_engine import LocalSyncEngine, SyncMode
from skillmesh.tool_adapters import ToolAdapter, ToolStatus, default_tool_adapters, get_tool_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

SSH = "ssh"
WSL = "wsl"
REMOTE_KINDS = (SSH, WSL)


@dataclass
class ManagedSkill:
    """A skill together with its tool targets"""

    skill: Skill
    targets: list[SkillTarget] = field(default_factory=list)


class SkillService:
    """Entry point used by the CLI (or any other front end).

    Args:
        store: Record persistence facade.
        adapters: Tool descriptors; built-ins when omitted.
        events: Bus receiving progress, warning and completion events.
        git_fetcher: Injected fetcher; built from settings when omitted.
        cache_root: Git clone cache root.
        sync_engine: Local link/copy engine.
        auto_remote_sync: Mirror skills to the enabled remote targets after
            every local change.
    """

    def __init__(
        self,
        store: SkillStore,
        adapters: list[ToolAdapter] | None = None,
        events: EventBus | None = None,
        git_fetcher: GitFetcher | None = None,
        cache_root: Path | None = None,
        sync_engine: LocalSyncEngine | None = None,
        auto_remote_sync: bool = False,
    ) -> None:
        self.store = store
        self.adapters = adapters if adapters is not None else default_tool_adapters()
        self.events = events or EventBus()
        self.git_cache = GitCache(cache_root)
        self.sync_engine = sync_engine or LocalSyncEngine()
        self._git_fetcher = git_fetcher
        self.auto_remote_sync = auto_remote_sync
        self._lock = asyncio.Lock()
        self._cancel: CancelToken | None = None

    @classmethod
    def open(cls, db_path: str | None = None, **kwargs: Any) -> SkillService:
        """Service over the SQLite record database (default location)."""
        return cls(SkillStore(SQLiteRecordStore(db_path or get_db_path())), **kwargs)

    # ── plumbing ──────────────────────────────────────────

    async def _call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        async with self._lock:
            try:
                return await asyncio.to_thread(functools.partial(func, *args, **kwargs))
            except SkillMeshError:
                raise
            except OSError as e:
                logger.error(f"{operation} failed: {e}")
                raise SkillMeshError(f"{operation} failed") from e

    def _central_dir(self) -> Path:
        return central_repo.ensure(central_repo.get_path(self.store))

    def _installer(self) -> SkillInstaller:
        settings = self.store.get_settings()
        fetcher = self._git_fetcher or GitFetcher(proxy_url=settings.proxy_url)
        return SkillInstaller(
            self.store,
            self._central_dir(),
            fetcher,
            cache_root=self.git_cache.root,
            sync_engine=self.sync_engine,
            adapters=self.adapters,
            cache_ttl_secs=settings.git_cache_ttl_secs,
        )

    def _new_cancel(self) -> CancelToken:
        self._cancel = CancelToken()
        return self._cancel

    def cancel(self) -> None:
        """Abort the running git or remote operation, if any."""
        if self._cancel is not None:
            self._cancel.cancel()

    async def _skills_changed(self) -> None:
        self.events.emit(SKILLS_CHANGED, None)
        if not self.auto_remote_sync:
            return
        for kind in REMOTE_KINDS:
            try:
                await self.remote_skills_sync(kind)
            except SkillMeshError as e:
                logger.warning(f"Automatic {kind} skills sync failed: {e}")

    # ── tools / listing ───────────────────────────────────

    async def get_tool_status(self) -> ToolStatus:
        return await self._call("detect tools", get_tool_status, self.store, self.adapters)

    async def list_skills(self) -> list[ManagedSkill]:
        def work() -> list[ManagedSkill]:
            return [
                ManagedSkill(skill, self.store.list_targets(skill.id))
                for skill in self.store.list_skills()
            ]

        return await self._call("list skills", work)

    async def find_skill(self, ref: str) -> Skill:
        """Look a skill up by id, then by name."""

        def work() -> Skill:
            skill = self.store.get_skill(ref) or self.store.get_skill_by_name(ref)
            if skill is None:
                raise SkillNotFoundError(f"skill not found: {ref}")
            return skill

        return await self._call("find skill", work)

    # ── central repository ────────────────────────────────

    async def get_central_repo_path(self) -> Path:
        return await self._call("read central repository", self._central_dir)

    async def set_central_repo_path(self, value: str) -> Path:
        return await self._call(
            "set central repository", central_repo.set_path, self.store, value
        )

    # ── install / update / delete ─────────────────────────

    async def install_local(self, path: str, overwrite: bool = False) -> InstallResult:
        def work() -> InstallResult:
            return self._installer().install_from_local(Path(path), overwrite=overwrite)

        result = await self._call("install", work)
        await self._skills_changed()
        return result

    async def list_git_candidates(
        self, repo_url: str, branch: str | None = None
    ) -> list[GitSkillCandidate]:
        cancel = self._new_cancel()

        def work() -> list[GitSkillCandidate]:
            return self._installer().list_git_candidates(repo_url, branch, cancel=cancel)

        return await self._call("list git skills", work)

    async def install_git(
        self, repo_url: str, branch: str | None = None, overwrite: bool = False
    ) -> InstallResult:
        cancel = self._new_cancel()

        def work() -> InstallResult:
            return self._installer().install_from_git(
                repo_url, branch, overwrite=overwrite, cancel=cancel
            )

        result = await self._call("install from git", work)
        await self._skills_changed()
        return result

    async def install_git_selection(
        self,
        repo_url: str,
        subpath: str,
        branch: str | None = None,
        overwrite: bool = False,
    ) -> InstallResult:
        cancel = self._new_cancel()

        def work() -> InstallResult:
            return self._installer().install_from_selection(
                repo_url, subpath, branch, overwrite=overwrite, cancel=cancel
            )

        result = await self._call("install from git", work)
        await self._skills_changed()
        return result

    async def update_skill(self, skill_id: str) -> UpdateResult:
        cancel = self._new_cancel()

        def work() -> UpdateResult:
            return self._installer().update_from_source(skill_id, cancel=cancel)

        result = await self._call("update", work)
        if result.changed:
            await self._skills_changed()
        return result

    async def delete_skill(self, skill_id: str) -> None:
        def work() -> None:
            self._installer().delete_skill(skill_id)

        try:
            await self._call("delete", work)
        finally:
            await self._skills_changed()

    # ── tool targets ──────────────────────────────────────

    async def sync_to_tool(
        self,
        skill_id: str,
        tool: str,
        overwrite: bool = False,
        mode: SyncMode = SyncMode.AUTO,
    ) -> ToolSyncResult:
        def work() -> ToolSyncResult:
            return self._installer().sync_to_tool(skill_id, tool, overwrite=overwrite, mode=mode)

        result = await self._call("sync", work)
        await self._skills_changed()
        return result

    async def unsync_from_tool(self, skill_id: str, tool: str) -> bool:
        def work() -> bool:
            return self._installer().unsync_from_tool(skill_id, tool)

        removed = await self._call("unsync", work)
        if removed:
            await self._skills_changed()
        return removed

    # ── onboarding ────────────────────────────────────────

    async def onboarding_plan(self) -> OnboardingPlan:
        def work() -> OnboardingPlan:
            managed = [path for _, path in self.store.list_all_target_paths()]
            return build_onboarding_plan(self.adapters, managed, self._central_dir())

        return await self._call("scan tools", work)

    async def import_existing(self, path: str, overwrite: bool = False) -> InstallResult:
        def work() -> InstallResult:
            return self._installer().import_existing(Path(path), overwrite=overwrite)

        result = await self._call("import", work)
        await self._skills_changed()
        return result

    # ── git cache ─────────────────────────────────────────

    def git_cache_path(self) -> Path:
        return self.git_cache.root

    async def clear_git_cache(self) -> int:
        return await self._call("clear git cache", self.git_cache.clear)

    async def cleanup_git_cache(self, days: int | None = None) -> int:
        def work() -> int:
            max_days = (
                validate_cleanup_days(days)
                if days is not None
                else self.store.get_settings().git_cache_cleanup_days
            )
            return self.git_cache.cleanup(timedelta(days=max_days))

        return await self._call("clean git cache", work)

    async def get_git_cache_cleanup_days(self) -> int:
        return await self._call(
            "read settings", lambda: self.store.get_settings().git_cache_cleanup_days
        )

    async def set_git_cache_cleanup_days(self, days: int) -> int:
        def work() -> int:
            self.store.set_settings(git_cache_cleanup_days=validate_cleanup_days(days))
            return days

        return await self._call("save settings", work)

    async def set_git_cache_ttl_secs(self, secs: int) -> int:
        def work() -> int:
            if secs < 0:
                raise ConfigurationError("cache TTL must not be negative")
            self.store.set_settings(git_cache_ttl_secs=secs)
            return secs

        return await self._call("save settings", work)

    # ── remote configuration ──────────────────────────────

    async def remote_status(self, kind: str) -> RemoteSyncConfig:
        _check_kind(kind)
        return await self._call("read sync status", self.store.get_remote_config, kind)

    async def configure_ssh(
        self, connection: SSHConnection, enabled: bool = True
    ) -> SSHConnection:
        """Save a connection and make it the active one."""

        def work() -> SSHConnection:
            self.store.save_connection(connection)
            config = self.store.get_remote_config(SSH)
            config.active_connection_id = connection.id
            config.enabled = enabled
            self.store.save_remote_config(SSH, config)
            return connection

        return await self._call("save SSH connection", work)

    async def configure_wsl(self, distro: str, enabled: bool = True) -> RemoteSyncConfig:
        def work() -> RemoteSyncConfig:
            config = self.store.get_remote_config(WSL)
            config.distro = distro
            config.enabled = enabled
            self.store.save_remote_config(WSL, config)
            return config

        return await self._call("save WSL config", work)

    async def set_remote_options(
        self,
        kind: str,
        enabled: bool | None = None,
        sync_skills: bool | None = None,
        sync_mcp: bool | None = None,
    ) -> RemoteSyncConfig:
        _check_kind(kind)

        def work() -> RemoteSyncConfig:
            config = self.store.get_remote_config(kind)
            if enabled is not None:
                config.enabled = enabled
            if sync_skills is not None:
                config.sync_skills = sync_skills
            if sync_mcp is not None:
                config.sync_mcp = sync_mcp
            self.store.save_remote_config(kind, config)
            return config

        return await self._call("save sync config", work)

    def file_mappings(self, kind: str) -> list[FileMapping]:
        """Stored mappings of a transport, seeded with the defaults on first use."""
        mappings = self.store.list_file_mappings(kind)
        if not mappings:
            mappings = default_file_mappings()
            self.store.reset_file_mappings(kind, mappings)
        return mappings

    async def ssh_test(self, connection_id: str | None = None) -> ConnectionTestResult:
        def work() -> ConnectionTestResult:
            conn_id = connection_id or self.store.get_remote_config(SSH).active_connection_id
            connection = self.store.get_connection(conn_id) if conn_id else None
            if connection is None:
                return ConnectionTestResult(False, "No active SSH connection configured")
            return check_connection(connection)

        return await self._call("test SSH connection", work)

    async def wsl_detect(self) -> WSLDetectResult:
        return await asyncio.to_thread(detect_wsl)

    # ── remote sync ───────────────────────────────────────

    async def ssh_sync(self, module: str | None = None) -> SyncResult:
        return await self._remote_sync(SSH, module)

    async def wsl_sync(self, module: str | None = None) -> SyncResult:
        return await self._remote_sync(WSL, module)

    async def _remote_sync(self, kind: str, module: str | None) -> SyncResult:
        cancel = self._new_cancel()
        return await self._call(f"{kind} sync", self._run_remote_sync, kind, module, cancel)

    async def remote_skills_sync(self, kind: str) -> SyncResult | None:
        """Mirror only the skills to one transport, as after a local change.

        Returns None when the transport is disabled, has skills mirroring
        turned off or has no target configured.
        """
        _check_kind(kind)
        cancel = self._new_cancel()
        return await self._call(
            f"{kind} skills sync", self._run_skills_mirror, kind, cancel
        )

    def _transport(
        self, kind: str, config: RemoteSyncConfig, cancel: CancelToken
    ) -> RemoteTransport | None:
        if kind == SSH:
            connection = (
                self.store.get_connection(config.active_connection_id)
                if config.active_connection_id
                else None
            )
            return SSHTransport(connection, cancel) if connection is not None else None
        return WSLTransport(config.distro, cancel) if config.distro else None

    def _run_remote_sync(
        self, kind: str, module: str | None, cancel: CancelToken
    ) -> SyncResult:
        """Files, then MCP, then skills. Status is persisted whatever happens."""
        label = kind.upper()
        result = SyncResult()
        try:
            config = self.store.get_remote_config(kind)
            if not config.enabled:
                result.add_error(f"{label} sync is not enabled")
            else:
                transport = self._transport(kind, config, cancel)
                if transport is None:
                    result.add_error(
                        "No active SSH connection configured"
                        if kind == SSH
                        else "No WSL distro configured"
                    )
                else:
                    self._sync_with(transport, config, module, cancel, result)
        except CommandCancelledError as e:
            result.add_error(str(e))
        except (SkillMeshError, OSError, ValueError) as e:
            logger.error(f"{label} sync failed: {e}")
            result.add_error(f"{label} sync failed: {e}")
        except Exception as e:
            result.add_error(f"{label} sync failed: {e}")
            self._finish_remote_sync(kind, result)
            raise

        self._finish_remote_sync(kind, result)
        logger.info(
            f"{label} sync finished: success={result.success} "
            f"synced={len(result.synced_files)} errors={len(result.errors)}"
        )
        return result

    def _finish_remote_sync(self, kind: str, result: SyncResult) -> None:
        self.store.update_sync_status(kind, result)
        self.events.emit(event_name(kind, SYNC_COMPLETED), result)

    def _run_skills_mirror(self, kind: str, cancel: CancelToken) -> SyncResult | None:
        label = kind.upper()
        config = self.store.get_remote_config(kind)
        if not config.enabled or not config.sync_skills:
            logger.info(
                f"{label} skills sync skipped: enabled={config.enabled}, "
                f"sync_skills={config.sync_skills}"
            )
            return None
        transport = self._transport(kind, config, cancel)
        if transport is None:
            logger.warning(f"{label} skills sync skipped: no target configured")
            return None

        try:
            result = RemoteSkillsSync(
                transport, self.store, self._central_dir(), self.adapters, self.events
            ).run(cancel)
        except CommandCancelledError as e:
            result = SyncResult()
            result.add_error(str(e))
        except (SkillMeshError, OSError) as e:
            logger.error(f"{label} skills sync failed: {e}")
            result = SyncResult()
            result.add_error(f"{label} skills sync failed: {e}")
        self._finish_remote_sync(kind, result)
        return result

    def _sync_with(
        self,
        transport: RemoteTransport,
        config: RemoteSyncConfig,
        module: str | None,
        cancel: CancelToken,
        result: SyncResult,
    ) -> None:
        mappings = resolve_dynamic_paths(self.file_mappings(transport.kind))
        result.extend(sync_mappings(transport, mappings, module, self.events))

        if config.sync_mcp:
            try:
                mcp = sync_mcp(
                    transport,
                    self.store.list_mcp_servers(),
                    mappings,
                    self.events,
                    already_synced=result.synced_files,
                )
                result.synced_files.extend(mcp.synced_files)
            except CommandCancelledError:
                raise
            except (SkillMeshError, OSError) as e:
                logger.warning(f"MCP sync failed: {e}")
                result.add_error(f"MCP sync: {e}")

        if config.sync_skills:
            try:
                skills = RemoteSkillsSync(
                    transport,
                    self.store,
                    self._central_dir(),
                    self.adapters,
                    self.events,
                ).run(cancel)
            except CommandCancelledError:
                raise
            except (SkillMeshError, OSError) as e:
                logger.warning(f"Skills sync failed: {e}")
                result.add_error(f"Skills sync: {e}")
            else:
                result.synced_files.extend(skills.synced_files)
                result.skipped_files.extend(skills.skipped_files)
                result.transferred += skills.transferred
                for error in skills.errors:
                    result.add_error(f"Skills sync: {error}")


def _check_kind(kind: str) -> None:
    if kind not in REMOTE_KINDS:
        raise ConfigurationError(f"unknown remote kind: {kind}")
