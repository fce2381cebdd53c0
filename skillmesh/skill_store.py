"""Persistence facade for skills, skill targets, settings and remote sync config.

Only this module writes skill records. Reads always go through the
decoders in :mod:`skillmesh.models`.
"""

import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any

from skillmesh.config import SETTINGS_ID, SETTINGS_TABLE
from skillmesh.models import (
    FileMapping,
    McpServer,
    RemoteSyncConfig,
    Skill,
    SkillSettings,
    SkillTarget,
    SSHConnection,
    SyncResult,
    connection_from_record,
    mapping_from_record,
    mcp_server_from_record,
    remote_config_from_record,
    settings_from_record,
    skill_from_record,
    target_from_record,
)
from skillmesh.records import RecordStore

logger = logging.getLogger(__name__)

SKILL_TABLE = "skill"
TARGET_TABLE = "skill_target"
CONNECTION_TABLE = "ssh_connection"
MCP_SERVER_TABLE = "mcp_server"
REMOTE_CONFIG_ID = "config"


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def _remote_config_table(kind: str) -> str:
    return f"{kind}_sync_config"


def _mapping_table(kind: str) -> str:
    return f"{kind}_file_mapping"


class SkillStore:
    """CRUD over the record database.

    Args:
        records: Any object implementing the RecordStore contract.
    """

    def __init__(self, records: RecordStore) -> None:
        self.records = records

    # ── skills ────────────────────────────────────────────

    def list_skills(self) -> list[Skill]:
        """All managed skills, most recently updated first."""
        skills = [skill_from_record(r) for r in self.records.query(SKILL_TABLE)]
        skills.sort(key=lambda s: s.updated_at, reverse=True)
        return skills

    def get_skill(self, skill_id: str) -> Skill | None:
        record = self.records.get(SKILL_TABLE, skill_id)
        return skill_from_record(record) if record else None

    def get_skill_by_name(self, name: str) -> Skill | None:
        for skill in self.list_skills():
            if skill.name == name:
                return skill
        return None

    def upsert_skill(self, skill: Skill) -> str:
        """Create or replace a skill record. Assigns an id when empty."""
        if not skill.id:
            skill.id = uuid.uuid4().hex
        self.records.update(SKILL_TABLE, skill.id, skill.to_record())
        return skill.id

    def delete_skill(self, skill_id: str) -> None:
        """Delete a skill and all of its target records."""
        for target in self.list_targets(skill_id):
            self.records.delete(TARGET_TABLE, target.id)
        self.records.delete(SKILL_TABLE, skill_id)

    # ── targets ───────────────────────────────────────────

    def list_all_targets(self) -> list[SkillTarget]:
        return [target_from_record(r) for r in self.records.query(TARGET_TABLE)]

    def list_targets(self, skill_id: str) -> list[SkillTarget]:
        """Targets of one skill ordered by tool key."""
        targets = [t for t in self.list_all_targets() if t.skill_id == skill_id]
        targets.sort(key=lambda t: t.tool)
        return targets

    def get_target(self, skill_id: str, tool: str) -> SkillTarget | None:
        for target in self.list_targets(skill_id):
            if target.tool == tool:
                return target
        return None

    def upsert_skill_target(self, target: SkillTarget) -> str:
        """Create or update the single target of ``(skill_id, tool)``."""
        existing = self.get_target(target.skill_id, target.tool)
        if existing is not None:
            target.id = existing.id
        elif not target.id:
            target.id = uuid.uuid4().hex
        self.records.update(TARGET_TABLE, target.id, target.to_record())
        return target.id

    def delete_target(self, skill_id: str, tool: str) -> None:
        target = self.get_target(skill_id, tool)
        if target is not None:
            self.records.delete(TARGET_TABLE, target.id)

    def list_all_target_paths(self) -> list[tuple[str, str]]:
        """``(tool, target_path)`` for every target."""
        return [(t.tool, t.target_path) for t in self.list_all_targets()]

    def enabled_tools_by_skill(self) -> dict[str, list[str]]:
        """Map skill id to the tools it is successfully synced to."""
        enabled: dict[str, list[str]] = {}
        for target in self.list_all_targets():
            if target.status == "ok":
                enabled.setdefault(target.skill_id, []).append(target.tool)
        for tools in enabled.values():
            tools.sort()
        return enabled

    # ── settings ──────────────────────────────────────────

    def get_settings(self) -> SkillSettings:
        return settings_from_record(self.records.get(SETTINGS_TABLE, SETTINGS_ID))

    def get_setting(self, key: str) -> str | None:
        """Read one setting. Non-string values are returned JSON-encoded."""
        record = self.records.get(SETTINGS_TABLE, SETTINGS_ID) or {}
        value = record.get(key)
        if value is None:
            return None
        if isinstance(value, str):
            return value
        return json.dumps(value)

    def set_setting(self, key: str, value: Any) -> None:
        self.records.merge(SETTINGS_TABLE, SETTINGS_ID, {key: value, "updated_at": now_ms()})

    def set_settings(self, **values: Any) -> SkillSettings:
        """Merge several settings at once after validating them."""
        current = self.get_settings().to_record()
        current.update(values)
        validated = SkillSettings.model_validate(current)
        self.records.merge(
            SETTINGS_TABLE,
            SETTINGS_ID,
            {**{k: getattr(validated, k) for k in values}, "updated_at": now_ms()},
        )
        return validated

    # ── remote sync config ────────────────────────────────

    def get_remote_config(self, kind: str) -> RemoteSyncConfig:
        """Sync config of a transport kind (``ssh`` or ``wsl``)."""
        return remote_config_from_record(
            self.records.get(_remote_config_table(kind), REMOTE_CONFIG_ID)
        )

    def save_remote_config(self, kind: str, config: RemoteSyncConfig) -> None:
        self.records.merge(_remote_config_table(kind), REMOTE_CONFIG_ID, config.to_record())

    def update_sync_status(self, kind: str, result: SyncResult) -> RemoteSyncConfig:
        """Persist the outcome of a sync run, whatever it was."""
        status = "success" if result.success else "error"
        error = None if result.success else "; ".join(result.errors)
        merged = self.records.merge(
            _remote_config_table(kind),
            REMOTE_CONFIG_ID,
            {
                "last_sync_time": datetime.now().astimezone().isoformat(),
                "last_sync_status": status,
                "last_sync_error": error,
            },
        )
        logger.info(f"{kind} sync status: {status}")
        return remote_config_from_record(merged)

    def list_connections(self) -> list[SSHConnection]:
        connections = [connection_from_record(r) for r in self.records.query(CONNECTION_TABLE)]
        connections.sort(key=lambda c: (c.sort_order, c.name))
        return connections

    def get_connection(self, connection_id: str) -> SSHConnection | None:
        record = self.records.get(CONNECTION_TABLE, connection_id)
        return connection_from_record(record) if record else None

    def save_connection(self, connection: SSHConnection) -> str:
        if not connection.id:
            connection.id = uuid.uuid4().hex
        self.records.update(CONNECTION_TABLE, connection.id, connection.to_record())
        return connection.id

    def delete_connection(self, connection_id: str) -> None:
        self.records.delete(CONNECTION_TABLE, connection_id)

    def list_file_mappings(self, kind: str) -> list[FileMapping]:
        mappings = [mapping_from_record(r) for r in self.records.query(_mapping_table(kind))]
        mappings.sort(key=lambda m: (m.module, m.name))
        return mappings

    def save_file_mapping(self, kind: str, mapping: FileMapping) -> str:
        if not mapping.id:
            mapping.id = uuid.uuid4().hex
        self.records.update(_mapping_table(kind), mapping.id, mapping.to_record())
        return mapping.id

    def delete_file_mapping(self, kind: str, mapping_id: str) -> None:
        self.records.delete(_mapping_table(kind), mapping_id)

    def reset_file_mappings(self, kind: str, mappings: list[FileMapping]) -> None:
        """Replace all mappings of a transport kind."""
        self.records.delete_where(_mapping_table(kind))
        for mapping in mappings:
            self.save_file_mapping(kind, mapping)

    # ── mcp servers ───────────────────────────────────────

    def list_mcp_servers(self) -> list[McpServer]:
        servers = [mcp_server_from_record(r) for r in self.records.query(MCP_SERVER_TABLE)]
        servers.sort(key=lambda s: s.name)
        return servers

    def save_mcp_server(self, server: McpServer) -> str:
        if not server.id:
            server.id = uuid.uuid4().hex
        self.records.update(MCP_SERVER_TABLE, server.id, server.to_record())
        return server.id
