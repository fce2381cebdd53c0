"""Tests for the async SkillService facade."""

import json
import os
from unittest.mock import patch

import pytest

from skillmesh.errors import (
    ConfigurationError,
    SkillMeshError,
    SkillNotFoundError,
    TargetExistsError,
    ToolNotInstalledError,
)
from skillmesh.events import EventBus
from skillmesh.models import McpServer, SSHConnection
from skillmesh.service import SSH, WSL, SkillService
from skillmesh.sync_engine import LocalSyncEngine
from skillmesh.tool_adapters import ToolAdapter

ADAPTERS = [
    ToolAdapter("claude_code", "Claude Code", "~/.claude/skills", "~/.claude"),
    ToolAdapter("codex", "Codex", "~/.codex/skills", "~/.codex"),
]


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def service(store, tmp_path, events):
    return SkillService(
        store,
        adapters=ADAPTERS,
        events=events,
        cache_root=tmp_path / "git-cache",
        sync_engine=LocalSyncEngine(platform="linux"),
    )


def _record(events, name):
    seen = []
    events.subscribe(name, lambda event: seen.append(event.payload))
    return seen


class TestSkills:
    @pytest.mark.asyncio
    async def test_install_and_list(self, service, events, make_skill, isolated_home):
        changed = _record(events, "skills-changed")

        result = await service.install_local(str(make_skill("demo")))

        assert result.name == "demo"
        assert result.central_path == isolated_home / ".skillmesh" / "data" / "skills" / "demo"
        assert (result.central_path / "SKILL.md").is_file()
        skills = await service.list_skills()
        assert [m.skill.name for m in skills] == ["demo"]
        assert skills[0].targets == []
        assert changed == [None]

    @pytest.mark.asyncio
    async def test_duplicate_install(self, service, make_skill):
        source = make_skill("demo")
        await service.install_local(str(source))
        with pytest.raises(TargetExistsError):
            await service.install_local(str(source))
        again = await service.install_local(str(source), overwrite=True)
        assert again.name == "demo"

    @pytest.mark.asyncio
    async def test_find_skill(self, service, make_skill):
        result = await service.install_local(str(make_skill("demo")))
        assert (await service.find_skill("demo")).id == result.skill_id
        assert (await service.find_skill(result.skill_id)).name == "demo"
        with pytest.raises(SkillNotFoundError):
            await service.find_skill("missing")

    @pytest.mark.asyncio
    async def test_sync_unsync_delete(self, service, make_skill, isolated_home):
        (isolated_home / ".claude").mkdir()
        installed = await service.install_local(str(make_skill("demo")))

        synced = await service.sync_to_tool(installed.skill_id, "claude_code")
        link = isolated_home / ".claude" / "skills" / "demo"
        assert synced.mode_used == "symlink"
        assert os.path.islink(link)

        with pytest.raises(ToolNotInstalledError):
            await service.sync_to_tool(installed.skill_id, "codex")

        assert await service.unsync_from_tool(installed.skill_id, "claude_code")
        assert not os.path.lexists(link)
        assert not await service.unsync_from_tool(installed.skill_id, "claude_code")

        await service.delete_skill(installed.skill_id)
        assert await service.list_skills() == []
        assert not installed.central_path.exists()

    @pytest.mark.asyncio
    async def test_os_errors_are_wrapped(self, service):
        with patch.object(service.git_cache, "clear", side_effect=PermissionError("denied")):
            with pytest.raises(SkillMeshError) as exc_info:
                await service.clear_git_cache()
        assert str(exc_info.value) == "clear git cache failed"
        assert isinstance(exc_info.value.__cause__, PermissionError)


class TestSettings:
    @pytest.mark.asyncio
    async def test_central_repo(self, service, tmp_path):
        new_path = await service.set_central_repo_path(str(tmp_path / "elsewhere"))
        assert new_path == tmp_path / "elsewhere"
        assert await service.get_central_repo_path() == tmp_path / "elsewhere"

    @pytest.mark.asyncio
    async def test_cache_settings(self, service):
        await service.set_git_cache_cleanup_days(5)
        assert await service.get_git_cache_cleanup_days() == 5
        with pytest.raises(ConfigurationError):
            await service.set_git_cache_cleanup_days(10_000)
        with pytest.raises(ConfigurationError):
            await service.set_git_cache_ttl_secs(-1)
        assert await service.set_git_cache_ttl_secs(0) == 0

    @pytest.mark.asyncio
    async def test_unknown_remote_kind(self, service):
        with pytest.raises(ConfigurationError):
            await service.remote_status("ftp")


class TestRemoteConfiguration:
    @pytest.mark.asyncio
    async def test_configure_ssh(self, service, store):
        conn = await service.configure_ssh(
            SSHConnection(name="box", host="box", username="me")
        )
        config = await service.remote_status(SSH)
        assert conn.id
        assert config.enabled
        assert config.active_connection_id == conn.id
        assert store.get_connection(conn.id).host == "box"

    @pytest.mark.asyncio
    async def test_options(self, service):
        config = await service.set_remote_options(WSL, enabled=True, sync_mcp=False)
        assert config.enabled and config.sync_skills and not config.sync_mcp
        config = await service.set_remote_options(WSL, sync_skills=False)
        assert config.enabled and not config.sync_skills

    def test_file_mappings_are_seeded_once(self, service, store):
        mappings = service.file_mappings(SSH)
        assert len(mappings) == 9
        assert len(store.list_file_mappings(SSH)) == 9
        assert store.list_file_mappings(WSL) == []

        store.delete_file_mapping(SSH, "codex-auth")
        assert len(service.file_mappings(SSH)) == 8

    @pytest.mark.asyncio
    async def test_ssh_test_without_connection(self, service):
        result = await service.ssh_test()
        assert not result.connected
        assert result.error == "No active SSH connection configured"


class TestRemoteSync:
    @pytest.mark.asyncio
    async def test_not_enabled(self, service, events):
        completed = _record(events, "ssh-sync-completed")

        result = await service.ssh_sync()

        assert not result.success
        assert result.errors == ["SSH sync is not enabled"]
        status = await service.remote_status(SSH)
        assert status.last_sync_status == "error"
        assert status.last_sync_error == "SSH sync is not enabled"
        assert status.last_sync_time
        assert completed == [result]

    @pytest.mark.asyncio
    async def test_no_distro(self, service):
        await service.set_remote_options(WSL, enabled=True)
        result = await service.wsl_sync()
        assert result.errors == ["No WSL distro configured"]

    @pytest.mark.asyncio
    async def test_no_connection(self, service):
        await service.set_remote_options(SSH, enabled=True)
        result = await service.ssh_sync()
        assert result.errors == ["No active SSH connection configured"]

    @pytest.mark.asyncio
    async def test_full_sync(self, service, store, remote, make_skill, isolated_home):
        (isolated_home / ".claude").mkdir()
        (isolated_home / ".claude" / "settings.json").write_text('{"model": "x"}')
        installed = await service.install_local(str(make_skill("demo")))
        await service.sync_to_tool(installed.skill_id, "claude_code")
        store.save_mcp_server(
            McpServer(
                name="fs",
                server_config={"command": "cmd", "args": ["/c", "npx", "fs"]},
                enabled_tools=["claude_code"],
            )
        )
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))

        with patch.object(SkillService, "_transport", return_value=remote):
            result = await service.ssh_sync()

        home = remote.remote_home
        assert result.success, result.errors
        assert result.transferred == 1
        assert json.loads((home / ".claude" / "settings.json").read_text()) == {"model": "x"}
        claude = json.loads((home / ".claude.json").read_text())
        assert claude["mcpServers"]["fs"]["command"] == "npx"
        assert "~/.claude.json (mcpServers: 1)" in result.synced_files
        assert (home / ".skillmesh" / "skills" / "demo" / "SKILL.md").is_file()
        assert os.path.islink(home / ".claude" / "skills" / "demo")
        assert (await service.remote_status(SSH)).last_sync_status == "success"

    @pytest.mark.asyncio
    async def test_module_filter_and_disabled_parts(self, service, remote, make_skill, isolated_home):
        (isolated_home / ".claude").mkdir()
        (isolated_home / ".claude" / "settings.json").write_text("{}")
        (isolated_home / ".codex").mkdir()
        (isolated_home / ".codex" / "auth.json").write_text("{}")
        await service.install_local(str(make_skill("demo")))
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))
        await service.set_remote_options(SSH, sync_skills=False, sync_mcp=False)

        with patch.object(SkillService, "_transport", return_value=remote):
            result = await service.ssh_sync("codex")

        home = remote.remote_home
        assert result.success
        assert (home / ".codex" / "auth.json").exists()
        assert not (home / ".claude").exists()
        assert not (home / ".claude.json").exists()
        assert not (home / ".skillmesh").exists()

    @pytest.mark.asyncio
    async def test_cancelled_run_is_recorded(self, service, remote):
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))

        def cancelled_transport(kind, config, cancel):
            cancel.cancel()
            remote.cancel = cancel
            return remote

        with patch.object(SkillService, "_transport", side_effect=cancelled_transport):
            result = await service.ssh_sync()

        assert not result.success
        assert (await service.remote_status(SSH)).last_sync_status == "error"

    @pytest.mark.asyncio
    async def test_mcp_os_error_is_recorded(self, service, remote):
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))

        with patch.object(SkillService, "_transport", return_value=remote), patch(
            "skillmesh.service.sync_mcp", side_effect=PermissionError("denied")
        ):
            result = await service.ssh_sync()

        assert not result.success
        assert result.errors == ["MCP sync: denied"]
        assert (await service.remote_status(SSH)).last_sync_status == "error"

    @pytest.mark.asyncio
    async def test_transport_os_error_is_recorded(self, service, remote, events):
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))
        completed = _record(events, "ssh-sync-completed")

        with patch.object(SkillService, "_transport", return_value=remote), patch.object(
            SkillService, "_sync_with", side_effect=OSError("broken pipe")
        ):
            result = await service.ssh_sync()

        assert result.errors == ["SSH sync failed: broken pipe"]
        status = await service.remote_status(SSH)
        assert status.last_sync_status == "error"
        assert status.last_sync_error == "SSH sync failed: broken pipe"
        assert completed == [result]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded_then_raised(self, service, remote, events):
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))
        completed = _record(events, "ssh-sync-completed")

        with patch.object(SkillService, "_transport", return_value=remote), patch.object(
            SkillService, "_sync_with", side_effect=RuntimeError("bug")
        ):
            with pytest.raises(RuntimeError):
                await service.ssh_sync()

        assert (await service.remote_status(SSH)).last_sync_status == "error"
        assert len(completed) == 1
        assert completed[0].errors == ["SSH sync failed: bug"]

    @pytest.mark.asyncio
    async def test_skills_mirror_os_error_is_recorded(self, service, remote):
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))

        with patch.object(SkillService, "_transport", return_value=remote), patch(
            "skillmesh.service.RemoteSkillsSync.run", side_effect=OSError("disk full")
        ):
            result = await service.remote_skills_sync(SSH)

        assert result.errors == ["SSH skills sync failed: disk full"]
        assert (await service.remote_status(SSH)).last_sync_status == "error"


class TestSkillsMirror:
    @pytest.mark.asyncio
    async def test_skipped_when_disabled(self, service):
        assert await service.remote_skills_sync(SSH) is None
        assert (await service.remote_status(SSH)).last_sync_status == "never"

    @pytest.mark.asyncio
    async def test_skipped_when_skills_mirroring_is_off(self, service):
        await service.configure_wsl("Ubuntu")
        await service.set_remote_options(WSL, sync_skills=False)
        assert await service.remote_skills_sync(WSL) is None

    @pytest.mark.asyncio
    async def test_mirrors_only_skills(self, service, remote, make_skill, isolated_home, events):
        (isolated_home / ".claude").mkdir()
        (isolated_home / ".claude" / "settings.json").write_text("{}")
        await service.install_local(str(make_skill("demo")))
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))
        completed = _record(events, "ssh-sync-completed")

        with patch.object(SkillService, "_transport", return_value=remote):
            result = await service.remote_skills_sync(SSH)

        assert result.success
        assert result.transferred == 1
        assert (remote.remote_home / ".skillmesh" / "skills" / "demo").is_dir()
        assert not (remote.remote_home / ".claude" / "settings.json").exists()
        assert completed == [result]
        assert (await service.remote_status(SSH)).last_sync_status == "success"

    @pytest.mark.asyncio
    async def test_auto_sync_after_install(self, store, tmp_path, remote, make_skill):
        service = SkillService(
            store,
            adapters=ADAPTERS,
            cache_root=tmp_path / "git-cache",
            auto_remote_sync=True,
        )
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))

        with patch.object(SkillService, "_transport", return_value=remote):
            await service.install_local(str(make_skill("demo")))

        assert (remote.remote_home / ".skillmesh" / "skills" / "demo" / "SKILL.md").is_file()

    @pytest.mark.asyncio
    async def test_auto_sync_failure_does_not_fail_the_change(
        self, store, tmp_path, make_skill
    ):
        service = SkillService(store, adapters=ADAPTERS, auto_remote_sync=True)
        await service.configure_ssh(SSHConnection(name="box", host="box", username="me"))

        with patch.object(
            SkillService, "remote_skills_sync", side_effect=SkillMeshError("boom")
        ):
            result = await service.install_local(str(make_skill("demo")))

        assert result.name == "demo"
