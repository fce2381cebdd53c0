"""Remote mirroring commands (SSH and WSL) for the skillmesh CLI."""

from __future__ import annotations

from skillmesh.commands.renderers.rich_renderer import RichRenderer, SyncProgressView
from skillmesh.events import SYNC_PROGRESS, SYNC_WARNING, Event, event_name
from skillmesh.models import SSHConnection, SyncResult
from skillmesh.service import SSH, WSL, SkillService


async def _run_sync(
    service: SkillService,
    renderer: RichRenderer,
    kind: str,
    module: str | None = None,
    skills_only: bool = False,
) -> SyncResult | None:
    """Run a sync with a progress bar and print warnings as they arrive."""
    progress_event = event_name(kind, SYNC_PROGRESS)
    warning_event = event_name(kind, SYNC_WARNING)

    def on_warning(event: Event) -> None:
        renderer.console.print(f"[yellow]warning:[/yellow] {event.payload}")

    with SyncProgressView(renderer.console) as view:
        service.events.subscribe(progress_event, view.handle)
        service.events.subscribe(warning_event, on_warning)
        try:
            if skills_only:
                result = await service.remote_skills_sync(kind)
            elif kind == SSH:
                result = await service.ssh_sync(module)
            else:
                result = await service.wsl_sync(module)
        finally:
            service.events.unsubscribe(progress_event, view.handle)
            service.events.unsubscribe(warning_event, on_warning)

    if result is None:
        renderer.console.print(
            f"{kind.upper()} skills sync skipped: sync or skills mirroring is off, "
            "or no target is configured."
        )
        return None
    renderer.console.print(renderer.build_sync_result(kind.upper(), result))
    return result


# ──────────────────────────────────────────────────────────
# SSH
# ──────────────────────────────────────────────────────────


async def cmd_ssh_add(
    service: SkillService,
    renderer: RichRenderer,
    host: str,
    username: str,
    port: int = 22,
    name: str | None = None,
    key: str | None = None,
    password: str | None = None,
) -> None:
    connection = SSHConnection(
        name=name or host,
        host=host,
        port=port,
        username=username,
        auth_method="password" if password else "key",
        password=password or "",
        private_key_path=key or "",
    )
    saved = await service.configure_ssh(connection)
    renderer.console.print(f"Active SSH connection: {saved.name} ({saved.id[:12]})")


async def cmd_ssh_test(
    service: SkillService, renderer: RichRenderer, connection_id: str | None = None
) -> bool:
    result = await service.ssh_test(connection_id)
    if result.connected:
        renderer.console.print(f"[green]Connected[/green] {result.server_info or ''}")
        return True
    renderer.console.print(f"[red]Connection failed:[/red] {result.error}")
    return False


async def cmd_ssh_sync(
    service: SkillService, renderer: RichRenderer, module: str | None = None
) -> bool:
    result = await _run_sync(service, renderer, SSH, module)
    return result.success


async def cmd_ssh_status(service: SkillService, renderer: RichRenderer) -> None:
    config = await service.remote_status(SSH)
    renderer.console.print(renderer.build_remote_status("SSH", config))


# ──────────────────────────────────────────────────────────
# WSL
# ──────────────────────────────────────────────────────────


async def cmd_wsl_detect(service: SkillService, renderer: RichRenderer) -> bool:
    result = await service.wsl_detect()
    if not result.available:
        renderer.console.print(f"WSL not available: {result.error}")
        return False
    renderer.console.print("WSL distributions:")
    for distro in result.distros:
        renderer.console.print(f"  {distro}")
    return True


async def cmd_wsl_use(service: SkillService, renderer: RichRenderer, distro: str) -> None:
    await service.configure_wsl(distro)
    renderer.console.print(f"WSL sync target: {distro}")


async def cmd_wsl_sync(
    service: SkillService, renderer: RichRenderer, module: str | None = None
) -> bool:
    result = await _run_sync(service, renderer, WSL, module)
    return result.success


async def cmd_wsl_status(service: SkillService, renderer: RichRenderer) -> None:
    config = await service.remote_status(WSL)
    renderer.console.print(renderer.build_remote_status("WSL", config))


async def cmd_remote_skills(service: SkillService, renderer: RichRenderer, kind: str) -> bool:
    """Mirror only the skills (no config files or MCP)."""
    result = await _run_sync(service, renderer, kind, skills_only=True)
    return result is not None and result.success


async def cmd_remote_options(
    service: SkillService,
    renderer: RichRenderer,
    kind: str,
    enabled: bool | None = None,
    sync_skills: bool | None = None,
    sync_mcp: bool | None = None,
) -> None:
    config = await service.set_remote_options(kind, enabled, sync_skills, sync_mcp)
    renderer.console.print(renderer.build_remote_status(kind.upper(), config))
