"""
Record models for skills, targets, settings and remote sync.

Records written by older releases used camelCase keys. Every decoder
accepts the snake_case key first and falls back to the camelCase one,
so stored data never needs a migration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from skillmesh.config import (
    DEFAULT_GIT_CACHE_CLEANUP_DAYS,
    DEFAULT_GIT_CACHE_TTL_SECS,
    MAX_GIT_CACHE_CLEANUP_DAYS,
)

SourceType = Literal["local", "git", "import"]
SyncModeName = Literal["symlink", "junction", "copy", "auto"]
SyncStatus = Literal["never", "success", "error"]


def _alias(snake: str, camel: str) -> AliasChoices:
    return AliasChoices(snake, camel)


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        """Serialize with canonical snake_case keys."""
        return self.model_dump(mode="json")


# ============================================================
# Skills
# ============================================================


class Skill(_Record):
    """A skill installed in the central repository"""

    id: str = ""
    name: str
    source_type: SourceType = Field("local", validation_alias=_alias("source_type", "sourceType"))
    source_ref: str | None = Field(None, validation_alias=_alias("source_ref", "sourceRef"))
    source_subpath: str | None = Field(
        None, validation_alias=_alias("source_subpath", "sourceSubpath")
    )
    source_branch: str | None = Field(
        None, validation_alias=_alias("source_branch", "sourceBranch")
    )
    source_revision: str | None = Field(
        None, validation_alias=_alias("source_revision", "sourceRevision")
    )
    central_path: str = Field("", validation_alias=_alias("central_path", "centralPath"))
    content_hash: str | None = Field(None, validation_alias=_alias("content_hash", "contentHash"))
    created_at: int = Field(0, validation_alias=_alias("created_at", "createdAt"))
    updated_at: int = Field(0, validation_alias=_alias("updated_at", "updatedAt"))
    last_sync_at: int | None = Field(None, validation_alias=_alias("last_sync_at", "lastSyncAt"))
    status: str = "ok"


class SkillTarget(_Record):
    """Projection of a skill into one tool's skills directory"""

    id: str = ""
    skill_id: str = Field(validation_alias=_alias("skill_id", "skillId"))
    tool: str
    target_path: str = Field(validation_alias=_alias("target_path", "targetPath"))
    mode: SyncModeName = "symlink"
    status: str = "ok"
    synced_at: int | None = Field(None, validation_alias=_alias("synced_at", "syncedAt"))
    error_message: str | None = Field(
        None, validation_alias=_alias("error_message", "errorMessage")
    )


class SkillSettings(_Record):
    """Single merged settings record (skill_settings:skills)"""

    central_repo_path: str = Field(
        "", validation_alias=_alias("central_repo_path", "centralRepoPath")
    )
    git_cache_cleanup_days: int = Field(
        DEFAULT_GIT_CACHE_CLEANUP_DAYS,
        ge=0,
        le=MAX_GIT_CACHE_CLEANUP_DAYS,
        validation_alias=_alias("git_cache_cleanup_days", "gitCacheCleanupDays"),
    )
    git_cache_ttl_secs: int = Field(
        DEFAULT_GIT_CACHE_TTL_SECS,
        ge=0,
        validation_alias=_alias("git_cache_ttl_secs", "gitCacheTtlSecs"),
    )
    proxy_url: str | None = Field(None, validation_alias=_alias("proxy_url", "proxyUrl"))
    installed_tools_v1: list[str] | None = None
    preferred_tools_v1: list[str] | None = None
    updated_at: int = Field(0, validation_alias=_alias("updated_at", "updatedAt"))


# ============================================================
# Remote Sync
# ============================================================


class SSHConnection(_Record):
    """SSH connection parameters"""

    id: str = ""
    name: str = ""
    host: str = ""
    port: int = 22
    username: str = ""
    auth_method: Literal["key", "password"] = Field(
        "key", validation_alias=_alias("auth_method", "authMethod")
    )
    password: str = ""
    private_key_path: str = Field(
        "", validation_alias=_alias("private_key_path", "privateKeyPath")
    )
    passphrase: str = ""
    sort_order: int = Field(0, validation_alias=_alias("sort_order", "sortOrder"))


class FileMapping(_Record):
    """A local config file mirrored to a remote path"""

    id: str = ""
    name: str = ""
    module: str = ""
    # WSL records used windows_path / wsl_path
    local_path: str = Field(
        "", validation_alias=AliasChoices("local_path", "localPath", "windows_path", "windowsPath")
    )
    remote_path: str = Field(
        "", validation_alias=AliasChoices("remote_path", "remotePath", "wsl_path", "wslPath")
    )
    enabled: bool = True
    is_pattern: bool = Field(False, validation_alias=_alias("is_pattern", "isPattern"))
    is_directory: bool = Field(False, validation_alias=_alias("is_directory", "isDirectory"))


class McpServer(_Record):
    """An MCP server definition owned by the MCP manager"""

    id: str = ""
    name: str
    server_type: str = Field("stdio", validation_alias=_alias("server_type", "serverType"))
    server_config: dict[str, Any] = Field(
        default_factory=dict, validation_alias=_alias("server_config", "serverConfig")
    )
    enabled_tools: list[str] = Field(
        default_factory=list, validation_alias=_alias("enabled_tools", "enabledTools")
    )


class RemoteSyncConfig(_Record):
    """Per-transport sync configuration and last outcome"""

    enabled: bool = False
    active_connection_id: str = Field(
        "", validation_alias=_alias("active_connection_id", "activeConnectionId")
    )
    distro: str = ""
    sync_skills: bool = Field(True, validation_alias=_alias("sync_skills", "syncSkills"))
    sync_mcp: bool = Field(True, validation_alias=_alias("sync_mcp", "syncMcp"))
    last_sync_time: str | None = Field(
        None, validation_alias=_alias("last_sync_time", "lastSyncTime")
    )
    last_sync_status: SyncStatus = Field(
        "never", validation_alias=_alias("last_sync_status", "lastSyncStatus")
    )
    last_sync_error: str | None = Field(
        None, validation_alias=_alias("last_sync_error", "lastSyncError")
    )


# ============================================================
# Versioned Decoders
# ============================================================


def skill_from_record(record: dict[str, Any]) -> Skill:
    return Skill.model_validate(record)


def target_from_record(record: dict[str, Any]) -> SkillTarget:
    return SkillTarget.model_validate(record)


def settings_from_record(record: dict[str, Any] | None) -> SkillSettings:
    return SkillSettings.model_validate(record or {})


def connection_from_record(record: dict[str, Any]) -> SSHConnection:
    return SSHConnection.model_validate(record)


def mapping_from_record(record: dict[str, Any]) -> FileMapping:
    return FileMapping.model_validate(record)


def mcp_server_from_record(record: dict[str, Any]) -> McpServer:
    return McpServer.model_validate(record)


def remote_config_from_record(record: dict[str, Any] | None) -> RemoteSyncConfig:
    return RemoteSyncConfig.model_validate(record or {})


# ============================================================
# Ephemeral Results
# ============================================================


@dataclass
class GitSkillCandidate:
    """A skill directory found inside a git repository"""

    name: str
    subpath: str
    description: str | None = None


@dataclass
class SyncProgress:
    """Progress step of a remote sync run"""

    phase: str
    current_item: str
    current: int
    total: int
    message: str


@dataclass
class SyncResult:
    """Aggregated outcome of a remote sync run"""

    success: bool = True
    synced_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    transferred: int = 0

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.success = False

    def extend(self, other: "SyncResult") -> None:
        self.synced_files.extend(other.synced_files)
        self.skipped_files.extend(other.skipped_files)
        self.errors.extend(other.errors)
        self.transferred += other.transferred
        self.success = not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "synced_files": list(self.synced_files),
            "skipped_files": list(self.skipped_files),
            "errors": list(self.errors),
            "transferred": self.transferred,
        }
