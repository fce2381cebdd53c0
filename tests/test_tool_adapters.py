"""Tests for tool descriptors, detection and remote directory mapping."""

import json
from pathlib import Path

from skillmesh.tool_adapters import (
    ToolAdapter,
    adapter_by_key,
    default_tool_adapters,
    get_tool_status,
    is_tool_installed,
    remote_skills_dir,
    resolve_skills_dir,
    skill_tool_keys,
)


class TestAdapters:
    def test_builtin_keys_unique(self):
        keys = [a.key for a in default_tool_adapters()]
        assert len(keys) == len(set(keys))
        assert {"claude_code", "codex", "opencode", "cursor"} <= set(keys)

    def test_cursor_copies(self):
        assert adapter_by_key("cursor").supports_symlink is False
        assert adapter_by_key("claude_code").supports_symlink is True

    def test_unknown_key(self):
        assert adapter_by_key("nope") is None

    def test_custom_adapter_list(self):
        custom = [ToolAdapter("mine", "Mine", "~/.mine/skills", "~/.mine")]
        assert adapter_by_key("mine", custom).display_name == "Mine"
        assert adapter_by_key("codex", custom) is None
        assert skill_tool_keys(custom) == ["mine"]

    def test_tools_without_skills_dir_are_skipped(self):
        adapters = [
            ToolAdapter("a", "A", "~/.a/skills", "~/.a"),
            ToolAdapter("b", "B", "", "~/.b"),
        ]
        assert skill_tool_keys(adapters) == ["a"]

    def test_resolve_skills_dir(self):
        assert resolve_skills_dir(adapter_by_key("codex")) == Path.home() / ".codex" / "skills"


class TestDetection:
    def test_installed_when_detect_dir_exists(self):
        adapter = adapter_by_key("codex")
        assert not is_tool_installed(adapter)
        (Path.home() / ".codex").mkdir()
        assert is_tool_installed(adapter)

    def test_status_diff_against_previous(self, store):
        (Path.home() / ".claude").mkdir()
        first = get_tool_status(store)
        assert first.installed == ["claude_code"]
        assert first.newly_installed == ["claude_code"]
        assert json.loads(store.get_setting("installed_tools_v1")) == ["claude_code"]

        (Path.home() / ".codex").mkdir()
        second = get_tool_status(store)
        assert second.installed == ["claude_code", "codex"]
        assert second.newly_installed == ["codex"]

        third = get_tool_status(store)
        assert third.newly_installed == []

    def test_status_lists_every_tool(self, store):
        status = get_tool_status(store)
        assert len(status.tools) == len(default_tool_adapters())
        assert all(not t["installed"] for t in status.tools)
        assert {"key", "label", "installed"} == set(status.tools[0])

    def test_malformed_previous_is_ignored(self, store):
        store.set_setting("installed_tools_v1", "not json[")
        (Path.home() / ".claude").mkdir()
        assert get_tool_status(store).newly_installed == ["claude_code"]


class TestRemoteSkillsDir:
    def test_home_relative_kept(self):
        assert remote_skills_dir("claude_code") == "~/.claude/skills"

    def test_appdata_maps_to_config(self):
        adapters = [ToolAdapter("vsc", "VS Code", "%APPDATA%/Code/skills", "%APPDATA%/Code")]
        assert remote_skills_dir("vsc", adapters) == "~/.config/Code/skills"

    def test_unknown(self):
        assert remote_skills_dir("nope") is None
