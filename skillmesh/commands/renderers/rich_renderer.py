"""Rich renderer for skillmesh CLI output."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.markup import escape as rich_escape
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table
from rich.text import Text

from skillmesh.events import Event
from skillmesh.models import GitSkillCandidate, RemoteSyncConfig, SyncProgress, SyncResult

if TYPE_CHECKING:
    from skillmesh.onboarding import OnboardingPlan
    from skillmesh.service import ManagedSkill
    from skillmesh.tool_adapters import ToolStatus

STATUS_STYLES = {
    "ok": "green",
    "success": "green",
    "error": "red",
    "never": "dim",
}


def _format_ms(value: int | None) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M")


class RichRenderer:
    """Builds tables and panels for the skillmesh commands."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    def _status(self, status: str) -> Text:
        return Text(status, style=STATUS_STYLES.get(status, ""))

    # ── tables ────────────────────────────────────────────

    def build_tools_table(self, status: ToolStatus) -> Table:
        table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
        table.add_column("TOOL", style="cyan")
        table.add_column("NAME")
        table.add_column("INSTALLED")
        for tool in status.tools:
            installed = Text("yes", style="green") if tool["installed"] else Text("no", style="dim")
            if tool["key"] in status.newly_installed:
                installed.append(" (new)", style="bold yellow")
            table.add_row(tool["key"], tool["label"], installed)
        return table

    def build_skills_table(self, skills: list[ManagedSkill]) -> Table:
        """One row per managed skill with its targets.

        Args:
            skills: Skills with their targets, most recently updated first.
        """
        table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
        if not skills:
            table.show_header = False
            table.add_column("Message")
            table.add_row(Text("No skills installed.", style="dim"))
            return table

        table.add_column("NAME", style="magenta", min_width=12)
        table.add_column("ID", style="dim", max_width=12)
        table.add_column("SOURCE", max_width=40)
        table.add_column("STATUS")
        table.add_column("TARGETS")
        table.add_column("UPDATED")
        for item in skills:
            skill = item.skill
            source = skill.source_ref or "-"
            if skill.source_subpath and skill.source_subpath != ".":
                source = f"{source} ({skill.source_subpath})"
            targets = ", ".join(
                f"{t.tool}:{t.mode}" + ("" if t.status == "ok" else "!") for t in item.targets
            )
            table.add_row(
                rich_escape(skill.name),
                skill.id[:12],
                f"{skill.source_type}: {rich_escape(source)}",
                self._status(skill.status),
                targets or "-",
                _format_ms(skill.updated_at),
            )
        return table

    def build_candidates_table(self, candidates: list[GitSkillCandidate]) -> Table:
        table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
        table.add_column("#", justify="right", style="dim", width=3)
        table.add_column("NAME", style="magenta")
        table.add_column("SUBPATH")
        table.add_column("DESCRIPTION", max_width=60)
        for idx, candidate in enumerate(candidates, start=1):
            table.add_row(
                str(idx),
                rich_escape(candidate.name),
                rich_escape(candidate.subpath),
                rich_escape(candidate.description or ""),
            )
        return table

    def build_onboarding_table(self, plan: OnboardingPlan) -> Table:
        table = Table(
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
            title=(
                f"{plan.total_skills_found} unmanaged skills "
                f"in {plan.total_tools_scanned} tools"
            ),
        )
        table.add_column("NAME", style="magenta")
        table.add_column("TOOL")
        table.add_column("PATH")
        table.add_column("FINGERPRINT", style="dim")
        for group in plan.groups:
            name = Text(group.name)
            if group.has_conflict:
                name.append(" (conflict)", style="bold red")
            for idx, variant in enumerate(group.variants):
                path = variant.path
                if variant.is_link:
                    path = f"{path} -> {variant.link_target}"
                table.add_row(
                    name if idx == 0 else "",
                    variant.tool,
                    rich_escape(path),
                    variant.fingerprint or "-",
                )
        return table

    # ── remote ────────────────────────────────────────────

    def build_sync_result(self, label: str, result: SyncResult) -> Panel:
        lines = Text()
        lines.append("Status:      ")
        lines.append(
            "success" if result.success else "error",
            style="green" if result.success else "red",
        )
        lines.append(f"\nSynced:      {len(result.synced_files)}")
        lines.append(f"\nSkipped:     {len(result.skipped_files)}")
        lines.append(f"\nTransferred: {result.transferred}")
        for error in result.errors:
            lines.append(f"\n  - {error}", style="red")
        return Panel(
            lines,
            title=f"[bold]{label} sync[/bold]",
            border_style="green" if result.success else "red",
            box=box.ROUNDED,
        )

    def build_remote_status(self, label: str, config: RemoteSyncConfig) -> Panel:
        lines = Text()
        lines.append(f"Enabled:     {'yes' if config.enabled else 'no'}")
        if config.active_connection_id:
            lines.append(f"\nConnection:  {config.active_connection_id}")
        if config.distro:
            lines.append(f"\nDistro:      {config.distro}")
        lines.append(f"\nSkills:      {'yes' if config.sync_skills else 'no'}")
        lines.append(f"\nMCP:         {'yes' if config.sync_mcp else 'no'}")
        lines.append(f"\nLast sync:   {config.last_sync_time or '-'} (")
        lines.append(config.last_sync_status, style=STATUS_STYLES.get(config.last_sync_status, ""))
        lines.append(")")
        if config.last_sync_error:
            lines.append(f"\nLast error:  {config.last_sync_error}", style="red")
        return Panel(lines, title=f"[bold]{label}[/bold]", box=box.ROUNDED)


class SyncProgressView:
    """A rich progress bar fed by ``<kind>-sync-progress`` events.

    Use as a context manager and subscribe :meth:`handle` to the bus.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.progress = Progress(
            TextColumn("[bold cyan]{task.fields[phase]:<6}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("{task.description}"),
            console=console,
            transient=True,
        )
        self._tasks: dict[str, int] = {}

    def __enter__(self) -> SyncProgressView:
        self.progress.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.progress.stop()

    def handle(self, event: Event) -> None:
        step = event.payload
        if not isinstance(step, SyncProgress):
            return
        task_id = self._tasks.get(step.phase)
        if task_id is None:
            task_id = self.progress.add_task(
                step.current_item, total=step.total or None, phase=step.phase
            )
            self._tasks[step.phase] = task_id
        self.progress.update(
            task_id,
            completed=step.current,
            total=step.total or None,
            description=rich_escape(step.current_item),
        )
