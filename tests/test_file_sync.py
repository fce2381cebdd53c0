"""Tests for file-mapping sync to a remote target."""

from skillmesh.events import EventBus
from skillmesh.models import FileMapping
from skillmesh.remote.file_sync import (
    default_file_mappings,
    resolve_dynamic_paths,
    sync_mapping,
    sync_mappings,
)


def _write(path, content="{}"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


class TestDefaults:
    def test_builtin_mappings(self):
        mappings = {m.id: m for m in default_file_mappings()}
        assert len(mappings) == 9
        assert {m.module for m in mappings.values()} == {"opencode", "claude", "codex"}
        assert not mappings["opencode-oh-my-slim"].enabled
        assert mappings["opencode-plugins"].is_pattern
        assert mappings["opencode-plugins"].remote_path == "~/.config/opencode/"
        assert mappings["codex-config"].local_path == "~/.codex/config.toml"

    def test_json_variant_is_picked_when_jsonc_is_missing(self, isolated_home):
        _write(isolated_home / ".config" / "opencode" / "opencode.json")
        resolved = {m.id: m for m in resolve_dynamic_paths(default_file_mappings())}
        assert resolved["opencode-main"].local_path == "~/.config/opencode/opencode.json"
        assert resolved["opencode-main"].remote_path == "~/.config/opencode/opencode.json"
        # Nothing exists for the others; they keep their default
        assert resolved["opencode-oh-my"].local_path == "~/.config/opencode/oh-my-opencode.jsonc"

    def test_jsonc_wins_when_both_exist(self, isolated_home):
        _write(isolated_home / ".config" / "opencode" / "opencode.json")
        _write(isolated_home / ".config" / "opencode" / "opencode.jsonc")
        resolved = {m.id: m for m in resolve_dynamic_paths(default_file_mappings())}
        assert resolved["opencode-main"].local_path.endswith("opencode.jsonc")


class TestSyncMapping:
    def test_missing_local_file_is_skipped(self, remote):
        mapping = FileMapping(id="x", name="X", local_path="~/.codex/auth.json", remote_path="~/.codex/auth.json")
        assert sync_mapping(remote, mapping) == []
        assert remote.uploads == []

    def test_single_file(self, remote, isolated_home):
        local = _write(isolated_home / ".codex" / "auth.json", '{"token": "t"}')
        mapping = FileMapping(id="x", name="X", local_path="~/.codex/auth.json", remote_path="~/.codex/auth.json")

        assert sync_mapping(remote, mapping) == [f"{local} -> ~/.codex/auth.json"]
        assert (remote.remote_home / ".codex" / "auth.json").read_text() == '{"token": "t"}'

    def test_directory(self, remote, isolated_home):
        _write(isolated_home / ".claude" / "commands" / "a.md", "a")
        mapping = FileMapping(
            id="cmds",
            name="Commands",
            local_path="~/.claude/commands",
            remote_path="~/.claude/commands",
            is_directory=True,
        )
        sync_mapping(remote, mapping)
        assert (remote.remote_home / ".claude" / "commands" / "a.md").read_text() == "a"

    def test_pattern(self, remote, isolated_home):
        _write(isolated_home / ".config" / "opencode" / "one.mjs", "1")
        _write(isolated_home / ".config" / "opencode" / "two.mjs", "2")
        _write(isolated_home / ".config" / "opencode" / "notes.txt", "n")
        plugins = next(m for m in default_file_mappings() if m.id == "opencode-plugins")

        synced = sync_mapping(remote, plugins)

        assert len(synced) == 2
        assert sorted(p.name for p in (remote.remote_home / ".config" / "opencode").iterdir()) == [
            "one.mjs",
            "two.mjs",
        ]


class TestSyncMappings:
    def test_disabled_and_missing(self, remote, isolated_home):
        _write(isolated_home / ".claude" / "settings.json")
        _write(isolated_home / ".config" / "opencode" / "oh-my-opencode-slim.json")

        result = sync_mappings(remote, default_file_mappings())

        assert result.success
        assert result.synced_files == [
            f"{isolated_home / '.claude' / 'settings.json'} -> ~/.claude/settings.json"
        ]
        # Slim is disabled so it is neither synced nor reported as skipped
        assert len(result.skipped_files) == 7
        assert not (remote.remote_home / ".config" / "opencode").exists()

    def test_module_filter(self, remote, isolated_home):
        _write(isolated_home / ".claude" / "settings.json")
        _write(isolated_home / ".codex" / "config.toml", "model = 'x'\n")

        result = sync_mappings(remote, default_file_mappings(), module_filter="codex")

        assert [entry.rsplit(" -> ", 1)[1] for entry in result.synced_files] == ["~/.codex/config.toml"]
        assert not (remote.remote_home / ".claude").exists()

    def test_errors_are_collected(self, remote, isolated_home):
        _write(isolated_home / ".claude" / "settings.json")
        _write(isolated_home / ".codex" / "auth.json")
        remote.fail_uploads = {".claude"}

        result = sync_mappings(remote, default_file_mappings())

        assert not result.success
        assert result.errors == ["Claude Code settings: upload to ~/.claude/settings.json failed"]
        assert (remote.remote_home / ".codex" / "auth.json").exists()

    def test_progress_events(self, remote):
        bus = EventBus()
        seen = []
        bus.subscribe("ssh-sync-progress", lambda event: seen.append(event.payload))

        sync_mappings(remote, default_file_mappings(), module_filter="claude", events=bus)

        assert [(p.phase, p.current, p.total) for p in seen] == [("files", 1, 2), ("files", 2, 2)]
        assert seen[0].message == "Files: 1/2 - Claude Code settings"
