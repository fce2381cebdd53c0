"""Tests for discovering unmanaged skills in tool directories."""

import os
from pathlib import Path

from conftest import write_skill

from skillmesh.onboarding import build_onboarding_plan, scan_tool_dir
from skillmesh.tool_adapters import ToolAdapter, adapter_by_key, default_tool_adapters


def _tool_skills(tool_dir: str) -> Path:
    path = Path.home() / tool_dir / "skills"
    path.mkdir(parents=True)
    return path


class TestScanToolDir:
    def test_lists_directories_only(self):
        skills = _tool_skills(".claude")
        write_skill(skills, "demo")
        (skills / "notes.txt").write_text("x")
        (skills / ".hidden").mkdir()

        variants = scan_tool_dir(adapter_by_key("claude_code"), skills)

        assert [v.name for v in variants] == ["demo"]
        assert variants[0].tool == "claude_code"
        assert variants[0].fingerprint
        assert not variants[0].is_link

    def test_links_are_reported(self, tmp_path):
        skills = _tool_skills(".codex")
        real = write_skill(tmp_path / "elsewhere", "linked")
        os.symlink(real, skills / "linked")

        variants = scan_tool_dir(adapter_by_key("codex"), skills)

        assert variants[0].is_link
        assert variants[0].link_target == str(real)

    def test_unreadable_dir(self, tmp_path):
        assert scan_tool_dir(adapter_by_key("codex"), tmp_path / "missing") == []


class TestBuildPlan:
    def test_groups_by_name_with_conflicts(self):
        claude = _tool_skills(".claude")
        codex = _tool_skills(".codex")
        write_skill(claude, "same", body="identical")
        write_skill(codex, "same", body="identical")
        write_skill(claude, "diff", body="one")
        write_skill(codex, "diff", body="two")

        plan = build_onboarding_plan(default_tool_adapters())

        assert plan.total_tools_scanned == 2
        assert plan.total_skills_found == 4
        groups = {g.name: g for g in plan.groups}
        assert [g.name for g in plan.groups] == ["diff", "same"]
        assert groups["diff"].has_conflict
        assert not groups["same"].has_conflict
        assert {v.tool for v in groups["same"].variants} == {"claude_code", "codex"}

    def test_uninstalled_tools_are_not_scanned(self):
        plan = build_onboarding_plan(default_tool_adapters())
        assert plan.total_tools_scanned == 0
        assert plan.groups == []

    def test_installed_tool_without_skills_dir(self):
        (Path.home() / ".codex").mkdir()
        plan = build_onboarding_plan(default_tool_adapters())
        assert plan.total_tools_scanned == 1
        assert plan.total_skills_found == 0

    def test_managed_targets_are_excluded(self):
        skills = _tool_skills(".claude")
        managed = write_skill(skills, "managed")
        write_skill(skills, "free")

        plan = build_onboarding_plan(default_tool_adapters(), [str(managed)])

        assert [g.name for g in plan.groups] == ["free"]

    def test_links_into_central_repo_are_excluded(self, central_dir):
        skills = _tool_skills(".claude")
        central_skill = write_skill(central_dir, "central")
        os.symlink(central_skill, skills / "central")

        plan = build_onboarding_plan(default_tool_adapters(), central_dir=central_dir)

        assert plan.groups == []

    def test_root_directories_are_skipped(self):
        adapters = [ToolAdapter("home", "Home", "~", "~")]
        plan = build_onboarding_plan(adapters)
        assert plan.total_tools_scanned == 0
