"""Mirror local tool config files to a remote target through file mappings."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from skillmesh.errors import CommandCancelledError, SkillMeshError
from skillmesh.events import SYNC_PROGRESS, EventBus, event_name
from skillmesh.models import FileMapping, SyncProgress, SyncResult
from skillmesh.path_utils import expand_local_path
from skillmesh.remote.transport import RemoteTransport

logger = logging.getLogger(__name__)

OPENCODE_CONFIG_DIR = "~/.config/opencode"

# Mappings whose file may be either .jsonc or .json; first existing wins
CONFIG_VARIANTS: dict[str, tuple[str, ...]] = {
    "opencode-main": ("opencode.jsonc", "opencode.json"),
    "opencode-oh-my": ("oh-my-opencode.jsonc", "oh-my-opencode.json"),
    "opencode-oh-my-slim": ("oh-my-opencode-slim.json", "oh-my-opencode-slim.jsonc"),
}


def _mapping(
    id: str,
    name: str,
    module: str,
    path: str,
    *,
    remote: str | None = None,
    enabled: bool = True,
    is_pattern: bool = False,
) -> FileMapping:
    return FileMapping(
        id=id,
        name=name,
        module=module,
        local_path=path,
        remote_path=remote or path,
        enabled=enabled,
        is_pattern=is_pattern,
    )


def default_file_mappings() -> list[FileMapping]:
    """Built-in mappings seeded when a transport has none stored."""
    return [
        # OpenCode
        _mapping(
            "opencode-main", "OpenCode config", "opencode", "~/.config/opencode/opencode.jsonc"
        ),
        _mapping(
            "opencode-oh-my",
            "Oh My OpenCode config",
            "opencode",
            "~/.config/opencode/oh-my-opencode.jsonc",
        ),
        _mapping(
            "opencode-oh-my-slim",
            "Oh My OpenCode Slim config",
            "opencode",
            "~/.config/opencode/oh-my-opencode-slim.json",
            enabled=False,
        ),
        _mapping("opencode-auth", "OpenCode auth", "opencode", "~/.local/share/opencode/auth.json"),
        _mapping(
            "opencode-plugins",
            "OpenCode plugins",
            "opencode",
            "~/.config/opencode/*.mjs",
            remote="~/.config/opencode/",
            is_pattern=True,
        ),
        # Claude Code
        _mapping("claude-settings", "Claude Code settings", "claude", "~/.claude/settings.json"),
        _mapping("claude-config", "Claude Code config", "claude", "~/.claude/config.json"),
        # Codex
        _mapping("codex-auth", "Codex auth", "codex", "~/.codex/auth.json"),
        _mapping("codex-config", "Codex config", "codex", "~/.codex/config.toml"),
    ]


def resolve_dynamic_paths(mappings: Iterable[FileMapping]) -> list[FileMapping]:
    """Point config mappings at whichever of ``.jsonc``/``.json`` exists locally.

    The remote file keeps the same name as the local one.
    """
    resolved = []
    for mapping in mappings:
        variants = CONFIG_VARIANTS.get(mapping.id)
        if variants:
            for filename in variants:
                candidate = f"{OPENCODE_CONFIG_DIR}/{filename}"
                if expand_local_path(candidate).is_file():
                    mapping = mapping.model_copy(
                        update={"local_path": candidate, "remote_path": candidate}
                    )
                    break
        resolved.append(mapping)
    return resolved


def sync_mapping(transport: RemoteTransport, mapping: FileMapping) -> list[str]:
    """Copy one mapping. Returns ``"local -> remote"`` entries, empty if skipped."""
    if mapping.is_pattern:
        return transport.upload_pattern(
            str(expand_local_path(mapping.local_path)), mapping.remote_path
        )

    local = expand_local_path(mapping.local_path)
    if not local.exists():
        logger.debug(f"Skipping {mapping.id}: {local} does not exist")
        return []

    if mapping.is_directory:
        transport.upload_dir(local, mapping.remote_path)
    else:
        transport.upload_file(local, mapping.remote_path)
    return [f"{local} -> {mapping.remote_path}"]


def sync_mappings(
    transport: RemoteTransport,
    mappings: Iterable[FileMapping],
    module_filter: str | None = None,
    events: EventBus | None = None,
) -> SyncResult:
    """Sync every enabled mapping (optionally of one module), aggregating errors."""
    selected = [
        m
        for m in mappings
        if m.enabled and (module_filter is None or m.module == module_filter)
    ]
    result = SyncResult()
    total = len(selected)

    for index, mapping in enumerate(selected, start=1):
        if events is not None:
            events.emit(
                event_name(transport.kind, SYNC_PROGRESS),
                SyncProgress(
                    phase="files",
                    current_item=mapping.name,
                    current=index,
                    total=total,
                    message=f"Files: {index}/{total} - {mapping.name}",
                ),
            )
        try:
            synced = sync_mapping(transport, mapping)
        except CommandCancelledError:
            raise
        except (SkillMeshError, OSError) as e:
            logger.warning(f"File mapping {mapping.id} failed: {e}")
            result.add_error(f"{mapping.name}: {e}")
            continue
        if synced:
            result.synced_files.extend(synced)
        else:
            result.skipped_files.append(mapping.local_path)

    logger.info(
        f"File sync to {transport.describe()}: {len(result.synced_files)} synced, "
        f"{len(result.skipped_files)} skipped, {len(result.errors)} errors"
    )
    return result
