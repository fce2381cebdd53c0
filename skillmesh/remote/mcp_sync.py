"""
MCP server configuration on remote Linux targets.

Claude Code keeps its servers in ``~/.claude.json``; only the
``mcpServers`` key of the remote file is rewritten. OpenCode and Codex
configs travel as file mappings and are post-processed on the remote
side: Windows launches them through ``cmd /c``, which does not exist
on Linux, so that shim is stripped after upload.
"""

from __future__ import annotations

import json
import logging
import re
import tomllib
from collections.abc import Iterable
from typing import Any

from skillmesh.errors import CommandCancelledError, McpConfigError, SkillMeshError
from skillmesh.events import SYNC_PROGRESS, SYNC_WARNING, EventBus, event_name
from skillmesh.models import FileMapping, McpServer, SyncProgress, SyncResult
from skillmesh.remote.file_sync import resolve_dynamic_paths, sync_mappings
from skillmesh.remote.transport import RemoteTransport

logger = logging.getLogger(__name__)

CLAUDE_CONFIG_PATH = "~/.claude.json"
CLAUDE_TOOL_KEY = "claude_code"
MCP_MODULES = ("opencode", "codex")
MCP_CONFIG_MAPPINGS = frozenset({"opencode-main", "opencode-oh-my", "codex-config"})

_CMD_NAMES = frozenset({"cmd", "cmd.exe"})
_SECTION_RE = re.compile(r'^\s*\[\s*mcp_servers\.(?:"([^"]+)"|([A-Za-z0-9_-]+))\s*\]\s*(#.*)?$')
_ANY_SECTION_RE = re.compile(r"^\s*\[")
_KEY_RE = re.compile(r"^\s*(command|args)\s*=")


# ============================================================
# Command shim detection
# ============================================================


def _is_cmd_shim(command: Any, args: Any) -> bool:
    return (
        isinstance(command, str)
        and command.strip().lower() in _CMD_NAMES
        and isinstance(args, list)
        and len(args) >= 2
        and isinstance(args[0], str)
        and args[0].lower() == "/c"
    )


def unwrap_cmd_c(server: dict[str, Any]) -> dict[str, Any]:
    """``{"command": "cmd", "args": ["/c", "npx", "-y", "x"]}`` -> ``npx -y x``.

    Returns a new dict; anything else is returned unchanged.
    """
    command = server.get("command")
    args = server.get("args")
    if not _is_cmd_shim(command, args):
        return server
    unwrapped = dict(server)
    unwrapped["command"] = args[1]
    unwrapped["args"] = list(args[2:])
    return unwrapped


# ============================================================
# JSONC
# ============================================================


def _skip_trivia(text: str, i: int) -> int:
    """Index of the next character that is not whitespace or a comment."""
    n = len(text)
    while i < n:
        if text[i].isspace():
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            break
    return i


def strip_jsonc(text: str) -> str:
    """Remove ``//`` and ``/* */`` comments and trailing commas outside strings."""
    out: list[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        elif ch == ",":
            following = _skip_trivia(text, i + 1)
            if following < n and text[following] in "}]":
                i += 1
                continue
            out.append(ch)
            i += 1
        else:
            out.append(ch)
            i += 1

    return "".join(out)


def load_jsonc(text: str) -> Any:
    try:
        return json.loads(strip_jsonc(text))
    except json.JSONDecodeError as e:
        raise McpConfigError(f"invalid JSON: {e}") from e


# ============================================================
# Config rewriting
# ============================================================


def process_opencode_json(text: str) -> str:
    """Strip ``["cmd", "/c", ...]`` from every ``mcp.*.command`` array.

    The input may contain comments. When nothing changes the original text
    is returned untouched so comments survive.
    """
    data = load_jsonc(text)
    if not isinstance(data, dict):
        raise McpConfigError("OpenCode config is not a JSON object")

    servers = data.get("mcp")
    if not isinstance(servers, dict):
        return text

    changed = False
    for server in servers.values():
        if not isinstance(server, dict):
            continue
        command = server.get("command")
        if isinstance(command, list) and _is_cmd_shim(
            command[0] if command else None, command[1:]
        ):
            server["command"] = command[2:]
            changed = True

    if not changed:
        return text
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def _toml_array(values: list[Any]) -> str:
    return "[" + ", ".join(json.dumps(str(v), ensure_ascii=False) for v in values) + "]"


def process_codex_toml(text: str) -> str:
    """Strip the ``cmd /c`` shim from ``[mcp_servers.*]`` sections.

    Only the ``command`` and ``args`` lines of affected sections are
    rewritten; the rest of the file is kept byte for byte.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise McpConfigError(f"invalid TOML: {e}") from e

    servers = data.get("mcp_servers")
    if not isinstance(servers, dict):
        return text
    targets = {
        name: cfg
        for name, cfg in servers.items()
        if isinstance(cfg, dict) and _is_cmd_shim(cfg.get("command"), cfg.get("args"))
    }
    if not targets:
        return text

    lines = text.splitlines(keepends=True)
    out: list[str] = []
    current: str | None = None
    i = 0
    while i < len(lines):
        line = lines[i]
        section = _SECTION_RE.match(line)
        if section:
            current = section.group(1) or section.group(2)
        elif _ANY_SECTION_RE.match(line):
            current = None

        key = _KEY_RE.match(line) if current in targets else None
        if key is None:
            out.append(line)
            i += 1
            continue

        # Skip continuation lines of a multi-line array
        end = i
        if key.group(1) == "args" and "]" not in line:
            while end + 1 < len(lines) and "]" not in lines[end]:
                end += 1
        newline = "\n" if lines[end].endswith("\n") else ""
        indent = line[: len(line) - len(line.lstrip())]
        unwrapped = unwrap_cmd_c(targets[current])
        if key.group(1) == "command":
            command = json.dumps(unwrapped["command"], ensure_ascii=False)
            out.append(f"{indent}command = {command}{newline}")
        else:
            out.append(f"{indent}args = {_toml_array(unwrapped['args'])}{newline}")
        i = end + 1

    return "".join(out)


def build_claude_server_config(server: McpServer) -> dict[str, Any]:
    """Claude Code ``mcpServers`` entry for one server, shim-free."""
    config = server.server_config
    if server.server_type == "stdio":
        result: dict[str, Any] = {
            "type": "stdio",
            "command": config.get("command", "") or "",
            "args": list(config.get("args") or []),
        }
        env = config.get("env")
        if isinstance(env, dict) and env:
            result["env"] = env
        return unwrap_cmd_c(result)

    if server.server_type in ("http", "sse"):
        result = {"type": server.server_type, "url": config.get("url", "") or ""}
        headers = config.get("headers")
        if isinstance(headers, dict) and headers:
            result["headers"] = headers
        return result

    return dict(config)


# ============================================================
# Remote operations
# ============================================================


def sync_claude_mcp(transport: RemoteTransport, servers: Iterable[McpServer]) -> int:
    """Replace ``mcpServers`` in the remote ``~/.claude.json``.

    Returns the number of servers written. Raises McpConfigError when the
    remote file exists but cannot be parsed; nothing is written then.
    """
    existing = transport.read_file(CLAUDE_CONFIG_PATH)
    config = load_jsonc(existing) if existing.strip() else {}
    if not isinstance(config, dict):
        raise McpConfigError("remote .claude.json is not a JSON object")

    mcp_servers = {s.name: build_claude_server_config(s) for s in servers}
    config["mcpServers"] = mcp_servers
    transport.write_file(CLAUDE_CONFIG_PATH, json.dumps(config, indent=2, ensure_ascii=False))
    return len(mcp_servers)


def strip_remote_command_shims(
    transport: RemoteTransport,
    mappings: Iterable[FileMapping],
    synced_files: Iterable[str],
) -> list[str]:
    """Rewrite synced MCP config files in place on the remote side.

    Returns the remote paths that were changed. Failures are logged.
    """
    synced_remote = {
        entry.split(" -> ", 1)[1] for entry in synced_files if " -> " in entry
    }
    stripped: list[str] = []
    for mapping in mappings:
        if not mapping.enabled or mapping.id not in MCP_CONFIG_MAPPINGS:
            continue
        if mapping.remote_path not in synced_remote:
            continue
        try:
            content = transport.read_file(mapping.remote_path)
            if not content.strip():
                continue
            if mapping.module == "opencode":
                processed = process_opencode_json(content)
            elif mapping.module == "codex" and mapping.remote_path.endswith(".toml"):
                processed = process_codex_toml(content)
            else:
                continue
            if processed != content:
                transport.write_file(mapping.remote_path, processed)
                stripped.append(mapping.remote_path)
                logger.info(f"Stripped cmd /c from remote MCP config: {mapping.remote_path}")
        except CommandCancelledError:
            raise
        except SkillMeshError as e:
            logger.warning(f"Failed to strip cmd /c from {mapping.remote_path}: {e}")
    return stripped


def sync_mcp(
    transport: RemoteTransport,
    servers: Iterable[McpServer],
    mappings: Iterable[FileMapping],
    events: EventBus | None = None,
    already_synced: Iterable[str] | None = None,
) -> SyncResult:
    """Push MCP configuration to the remote target.

    A broken remote ``~/.claude.json`` or a failing OpenCode/Codex mapping
    produces a warning event; neither makes the run fail.

    ``already_synced`` holds the ``"local -> remote"`` entries of a file
    sync that just ran; the config files are then only post-processed,
    not uploaded again.
    """
    prefix = transport.kind
    result = SyncResult()

    def progress(current: int, item: str) -> None:
        if events is not None:
            events.emit(
                event_name(prefix, SYNC_PROGRESS),
                SyncProgress(
                    phase="mcp",
                    current_item=item,
                    current=current,
                    total=2,
                    message=f"MCP: {item}...",
                ),
            )

    def warn(message: str) -> None:
        logger.warning(message)
        if events is not None:
            events.emit(event_name(prefix, SYNC_WARNING), message)

    progress(1, "Claude Code MCP")
    claude_servers = [s for s in servers if CLAUDE_TOOL_KEY in s.enabled_tools]
    try:
        count = sync_claude_mcp(transport, claude_servers)
        result.synced_files.append(f"{CLAUDE_CONFIG_PATH} (mcpServers: {count})")
    except CommandCancelledError:
        raise
    except SkillMeshError as e:
        warn(f"Skipped {CLAUDE_CONFIG_PATH} MCP sync on {transport.describe()}: {e}")

    progress(2, "OpenCode/Codex MCP")
    mcp_mappings = [m for m in mappings if m.enabled and m.module in MCP_MODULES]
    if mcp_mappings:
        resolved = resolve_dynamic_paths(mcp_mappings)
        if already_synced is not None:
            synced = list(already_synced)
        else:
            files = sync_mappings(transport, resolved)
            if files.errors:
                warn(f"OpenCode/Codex config sync partially failed: {'; '.join(files.errors)}")
            result.synced_files.extend(files.synced_files)
            result.skipped_files.extend(files.skipped_files)
            synced = files.synced_files
        strip_remote_command_shims(transport, resolved, synced)

    logger.info(
        f"MCP sync to {transport.describe()} completed: "
        f"{len(claude_servers)} servers for {CLAUDE_TOOL_KEY}"
    )
    return result
