"""Tests for the rich renderer used by the CLI."""

from rich.console import Console

from skillmesh.commands.renderers.rich_renderer import RichRenderer, SyncProgressView
from skillmesh.events import Event
from skillmesh.models import (
    GitSkillCandidate,
    RemoteSyncConfig,
    Skill,
    SkillTarget,
    SyncProgress,
    SyncResult,
)
from skillmesh.onboarding import OnboardingGroup, OnboardingPlan, OnboardingVariant
from skillmesh.service import ManagedSkill
from skillmesh.tool_adapters import ToolStatus


def _render(renderable) -> str:
    console = Console(record=True, width=160, color_system=None)
    console.print(renderable)
    return console.export_text()


class TestTables:
    def setup_method(self):
        self.renderer = RichRenderer(Console(width=160))

    def test_tools_marks_new(self):
        status = ToolStatus(
            tools=[
                {"key": "claude_code", "label": "Claude Code", "installed": True},
                {"key": "codex", "label": "Codex", "installed": False},
            ],
            installed=["claude_code"],
            newly_installed=["claude_code"],
        )
        text = _render(self.renderer.build_tools_table(status))
        assert "yes (new)" in text
        assert "no" in text

    def test_empty_skills(self):
        assert "No skills installed." in _render(self.renderer.build_skills_table([]))

    def test_skills_with_targets(self):
        skill = Skill(
            id="0123456789abcdef",
            name="demo",
            source_type="git",
            source_ref="https://example.com/skills.git",
            source_subpath="skills/demo",
        )
        targets = [
            SkillTarget(skill_id=skill.id, tool="claude_code", target_path="/t", mode="symlink"),
            SkillTarget(skill_id=skill.id, tool="cursor", target_path="/c", mode="copy", status="error"),
        ]
        text = _render(self.renderer.build_skills_table([ManagedSkill(skill, targets)]))
        assert "0123456789ab" in text
        assert "claude_code:symlink, cursor:copy!" in text
        assert "skills/demo" in text

    def test_candidates(self):
        text = _render(
            self.renderer.build_candidates_table(
                [GitSkillCandidate("pdf", "skills/pdf", "Work with [PDF] files")]
            )
        )
        assert "skills/pdf" in text
        assert "Work with [PDF] files" in text

    def test_onboarding_conflict(self):
        plan = OnboardingPlan(
            total_tools_scanned=2,
            total_skills_found=2,
            groups=[
                OnboardingGroup(
                    "demo",
                    [
                        OnboardingVariant("claude_code", "demo", "/a/demo", "aaa"),
                        OnboardingVariant("codex", "demo", "/b/demo", "bbb", True, "/x"),
                    ],
                    has_conflict=True,
                )
            ],
        )
        text = _render(self.renderer.build_onboarding_table(plan))
        assert "2 unmanaged skills in 2 tools" in text
        assert "demo (conflict)" in text
        assert "/b/demo -> /x" in text


class TestPanels:
    def test_sync_result_lists_errors(self):
        result = SyncResult(synced_files=["a -> b"], transferred=1)
        result.add_error("bad: boom")
        text = _render(RichRenderer().build_sync_result("SSH", result))
        assert "SSH sync" in text
        assert "Status:      error" in text
        assert "Transferred: 1" in text
        assert "- bad: boom" in text

    def test_remote_status(self):
        config = RemoteSyncConfig(enabled=True, distro="Ubuntu", sync_mcp=False)
        text = _render(RichRenderer().build_remote_status("WSL", config))
        assert "Distro:      Ubuntu" in text
        assert "MCP:         no" in text
        assert "Last sync:   - (never)" in text


class TestProgressView:
    def test_one_task_per_phase(self):
        console = Console(record=True, width=120, color_system=None)
        with SyncProgressView(console) as view:
            view.handle(Event("ssh-sync-progress", SyncProgress("files", "A", 1, 2, "")))
            view.handle(Event("ssh-sync-progress", SyncProgress("files", "B", 2, 2, "")))
            view.handle(Event("ssh-sync-progress", SyncProgress("skills", "demo", 0, 3, "")))
            view.handle(Event("ssh-sync-warning", "ignored"))

            tasks = view.progress.tasks
            assert [t.fields["phase"] for t in tasks] == ["files", "skills"]
            assert tasks[0].completed == 2
            assert tasks[0].description == "B"
            assert tasks[1].total == 3
