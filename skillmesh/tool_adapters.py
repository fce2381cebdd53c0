"""Static descriptors of the AI coding tools skills are synced to."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from skillmesh.config import INSTALLED_TOOLS_KEY
from skillmesh.path_utils import resolve_storage_path
from skillmesh.skill_store import SkillStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolAdapter:
    """Where a tool keeps its skills and how to tell it is installed.

    Directories use the storage form (``~/...`` or ``%APPDATA%/...``).
    """

    key: str
    display_name: str
    relative_skills_dir: str
    relative_detect_dir: str
    supports_symlink: bool = True


@dataclass
class ToolStatus:
    """Installed tools, and those that appeared since the previous check"""

    tools: list[dict]
    installed: list[str]
    newly_installed: list[str]


BUILTIN_ADAPTERS: tuple[ToolAdapter, ...] = (
    ToolAdapter("claude_code", "Claude Code", "~/.claude/skills", "~/.claude"),
    ToolAdapter("codex", "Codex", "~/.codex/skills", "~/.codex"),
    ToolAdapter("opencode", "OpenCode", "~/.config/opencode/skills", "~/.config/opencode"),
    ToolAdapter("gemini_cli", "Gemini CLI", "~/.gemini/skills", "~/.gemini"),
    # Cursor does not follow symlinked skill directories
    ToolAdapter("cursor", "Cursor", "~/.cursor/skills", "~/.cursor", supports_symlink=False),
    ToolAdapter("amp", "Amp", "~/.config/agents/skills", "~/.config/amp"),
    ToolAdapter(
        "antigravity", "Antigravity", "~/.gemini/antigravity/skills", "~/.gemini/antigravity"
    ),
    ToolAdapter("copilot", "GitHub Copilot", "~/.copilot/skills", "~/.copilot"),
)


def default_tool_adapters() -> list[ToolAdapter]:
    return list(BUILTIN_ADAPTERS)


def adapter_by_key(key: str, adapters: list[ToolAdapter] | None = None) -> ToolAdapter | None:
    for adapter in adapters if adapters is not None else BUILTIN_ADAPTERS:
        if adapter.key == key:
            return adapter
    return None


def skill_tool_keys(adapters: list[ToolAdapter] | None = None) -> list[str]:
    """Keys of every tool that has a skills directory."""
    return [
        a.key
        for a in (adapters if adapters is not None else BUILTIN_ADAPTERS)
        if a.relative_skills_dir
    ]


def is_tool_installed(adapter: ToolAdapter) -> bool:
    return resolve_storage_path(adapter.relative_detect_dir).exists()


def resolve_skills_dir(adapter: ToolAdapter) -> Path:
    return resolve_storage_path(adapter.relative_skills_dir)


def remote_skills_dir(key: str, adapters: list[ToolAdapter] | None = None) -> str | None:
    """Skills directory of a tool on a Linux remote, in ``~/...`` form.

    Platform config relative directories map onto ``~/.config``.
    """
    adapter = adapter_by_key(key, adapters)
    if adapter is None or not adapter.relative_skills_dir:
        return None
    path = adapter.relative_skills_dir.replace("\\", "/")
    if path.upper().startswith("%APPDATA%"):
        return "~/.config" + path[len("%APPDATA%"):]
    return path


def get_tool_status(store: SkillStore, adapters: list[ToolAdapter] | None = None) -> ToolStatus:
    """Detect installed tools and diff against the previously persisted set."""
    tools = []
    installed: list[str] = []
    for adapter in adapters if adapters is not None else BUILTIN_ADAPTERS:
        ok = is_tool_installed(adapter)
        tools.append({"key": adapter.key, "label": adapter.display_name, "installed": ok})
        if ok and adapter.key not in installed:
            installed.append(adapter.key)

    previous: list[str] = []
    raw = store.get_setting(INSTALLED_TOOLS_KEY)
    if raw:
        try:
            decoded = json.loads(raw)
            if isinstance(decoded, list):
                previous = [str(k) for k in decoded]
        except ValueError:
            logger.debug(f"Ignoring malformed {INSTALLED_TOOLS_KEY} setting")

    newly_installed = [k for k in installed if k not in set(previous)]
    store.set_setting(INSTALLED_TOOLS_KEY, installed)
    if newly_installed:
        logger.info(f"Newly installed tools: {', '.join(newly_installed)}")

    return ToolStatus(tools=tools, installed=installed, newly_installed=newly_installed)
