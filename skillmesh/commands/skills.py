"""Skill commands for the skillmesh CLI.

Commands:
    skillmesh tools                               Detected tools
    skillmesh list                                Managed skills and targets
    skillmesh install local <path>                Install from a directory
    skillmesh install git <url> [--branch B]      Install the skill of a repository
    skillmesh install select <url> <subpath>      Install one skill of a repository
    skillmesh candidates <url>                    Skills found in a repository
    skillmesh sync <skill> <tool> [--mode M]      Link or copy into a tool
    skillmesh unsync <skill> <tool>               Remove from a tool
    skillmesh update <skill>                      Re-read from the source
    skillmesh delete <skill> [--force]            Remove everywhere
    skillmesh onboard                             Unmanaged skills in tool dirs
    skillmesh import <path>                       Adopt an unmanaged skill
    skillmesh repo get|set                        Central repository location
    skillmesh cache clear|cleanup|path|days|ttl   Git clone cache
"""

from __future__ import annotations

from skillmesh.commands.renderers.rich_renderer import RichRenderer
from skillmesh.errors import MultipleSkillsError, TargetExistsError, ToolNotInstalledError
from skillmesh.installer import InstallResult
from skillmesh.service import SkillService
from skillmesh.sync_engine import SyncMode


def _confirm_action(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N]: ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        return False
    return answer in ("y", "yes")


def _print_installed(renderer: RichRenderer, result: InstallResult) -> None:
    renderer.console.print(
        f"Installed [magenta]{result.name}[/magenta] ({result.skill_id[:12]}) "
        f"-> {result.central_path}"
    )


def _print_target_exists(renderer: RichRenderer, err: TargetExistsError) -> None:
    renderer.console.print(f"[yellow]Already exists:[/yellow] {err.path}")
    renderer.console.print("Use --overwrite to replace it.")


# ──────────────────────────────────────────────────────────
# Tools / listing
# ──────────────────────────────────────────────────────────


async def cmd_tools(service: SkillService, renderer: RichRenderer) -> None:
    status = await service.get_tool_status()
    renderer.console.print(renderer.build_tools_table(status))


async def cmd_list(service: SkillService, renderer: RichRenderer) -> None:
    skills = await service.list_skills()
    renderer.console.print(renderer.build_skills_table(skills))


async def cmd_candidates(
    service: SkillService, renderer: RichRenderer, repo_url: str, branch: str | None = None
) -> None:
    candidates = await service.list_git_candidates(repo_url, branch)
    if not candidates:
        renderer.console.print("No skills found in repository.")
        return
    renderer.console.print(renderer.build_candidates_table(candidates))


# ──────────────────────────────────────────────────────────
# Install
# ──────────────────────────────────────────────────────────


async def cmd_install_local(
    service: SkillService, renderer: RichRenderer, path: str, overwrite: bool = False
) -> bool:
    try:
        result = await service.install_local(path, overwrite=overwrite)
    except TargetExistsError as e:
        _print_target_exists(renderer, e)
        return False
    _print_installed(renderer, result)
    return True


async def cmd_install_git(
    service: SkillService,
    renderer: RichRenderer,
    repo_url: str,
    branch: str | None = None,
    overwrite: bool = False,
) -> bool:
    """Install the single skill of a repository.

    When the repository holds several skills they are listed together
    with the command that installs one of them.
    """
    try:
        result = await service.install_git(repo_url, branch, overwrite=overwrite)
    except TargetExistsError as e:
        _print_target_exists(renderer, e)
        return False
    except MultipleSkillsError as e:
        renderer.console.print(f"Repository contains {len(e.candidates)} skills:")
        renderer.console.print(renderer.build_candidates_table(e.candidates))
        renderer.console.print(f"Pick one with: skillmesh install select {repo_url} <subpath>")
        return False
    _print_installed(renderer, result)
    return True


async def cmd_install_select(
    service: SkillService,
    renderer: RichRenderer,
    repo_url: str,
    subpath: str,
    branch: str | None = None,
    overwrite: bool = False,
) -> bool:
    try:
        result = await service.install_git_selection(
            repo_url, subpath, branch, overwrite=overwrite
        )
    except TargetExistsError as e:
        _print_target_exists(renderer, e)
        return False
    _print_installed(renderer, result)
    return True


# ──────────────────────────────────────────────────────────
# Targets
# ──────────────────────────────────────────────────────────


async def cmd_sync(
    service: SkillService,
    renderer: RichRenderer,
    skill_ref: str,
    tools: list[str],
    overwrite: bool = False,
    mode: str = SyncMode.AUTO.value,
) -> bool:
    skill = await service.find_skill(skill_ref)
    ok = True
    for tool in tools:
        try:
            result = await service.sync_to_tool(
                skill.id, tool, overwrite=overwrite, mode=SyncMode(mode)
            )
        except TargetExistsError as e:
            _print_target_exists(renderer, e)
            ok = False
            continue
        except ToolNotInstalledError as e:
            renderer.console.print(f"[yellow]Tool not installed:[/yellow] {e.tool}")
            ok = False
            continue
        action = "replaced" if result.replaced else "synced"
        renderer.console.print(
            f"{skill.name} {action} to {tool} ({result.mode_used}): {result.target_path}"
        )
    return ok


async def cmd_unsync(
    service: SkillService, renderer: RichRenderer, skill_ref: str, tools: list[str]
) -> None:
    skill = await service.find_skill(skill_ref)
    for tool in tools:
        if await service.unsync_from_tool(skill.id, tool):
            renderer.console.print(f"Removed {skill.name} from {tool}")
        else:
            renderer.console.print(f"{skill.name} is not synced to {tool}")


async def cmd_update(service: SkillService, renderer: RichRenderer, skill_ref: str) -> None:
    skill = await service.find_skill(skill_ref)
    result = await service.update_skill(skill.id)
    if not result.changed:
        renderer.console.print(f"{result.name} is up to date.")
        return
    refreshed = ", ".join(result.updated_targets) or "none"
    renderer.console.print(f"Updated {result.name}; refreshed targets: {refreshed}")


async def cmd_delete(
    service: SkillService, renderer: RichRenderer, skill_ref: str, force: bool = False
) -> bool:
    skill = await service.find_skill(skill_ref)
    if not force and not _confirm_action(
        f"Delete skill '{skill.name}' and all of its tool targets?"
    ):
        return False
    await service.delete_skill(skill.id)
    renderer.console.print(f"Deleted '{skill.name}'.")
    return True


# ──────────────────────────────────────────────────────────
# Onboarding
# ──────────────────────────────────────────────────────────


async def cmd_onboard(service: SkillService, renderer: RichRenderer) -> None:
    plan = await service.onboarding_plan()
    if not plan.groups:
        renderer.console.print(
            f"No unmanaged skills found ({plan.total_tools_scanned} tools scanned)."
        )
        return
    renderer.console.print(renderer.build_onboarding_table(plan))
    renderer.console.print("Adopt one with: skillmesh import <path>")


async def cmd_import(
    service: SkillService, renderer: RichRenderer, path: str, overwrite: bool = False
) -> bool:
    try:
        result = await service.import_existing(path, overwrite=overwrite)
    except TargetExistsError as e:
        _print_target_exists(renderer, e)
        return False
    _print_installed(renderer, result)
    return True


# ──────────────────────────────────────────────────────────
# Settings
# ──────────────────────────────────────────────────────────


async def cmd_repo_get(service: SkillService, renderer: RichRenderer) -> None:
    renderer.console.print(str(await service.get_central_repo_path()))


async def cmd_repo_set(service: SkillService, renderer: RichRenderer, path: str) -> None:
    new_path = await service.set_central_repo_path(path)
    renderer.console.print(f"Central repository: {new_path}")


async def cmd_cache_path(service: SkillService, renderer: RichRenderer) -> None:
    renderer.console.print(str(service.git_cache_path()))


async def cmd_cache_clear(service: SkillService, renderer: RichRenderer) -> None:
    removed = await service.clear_git_cache()
    renderer.console.print(f"Removed {removed} cached repositories.")


async def cmd_cache_cleanup(
    service: SkillService, renderer: RichRenderer, days: int | None = None
) -> None:
    removed = await service.cleanup_git_cache(days)
    renderer.console.print(f"Removed {removed} stale cached repositories.")


async def cmd_cache_days(
    service: SkillService, renderer: RichRenderer, days: int | None = None
) -> None:
    if days is None:
        current = await service.get_git_cache_cleanup_days()
        renderer.console.print(f"Cache cleanup after {current} days")
        return
    await service.set_git_cache_cleanup_days(days)
    renderer.console.print(f"Cache cleanup set to {days} days")


async def cmd_cache_ttl(service: SkillService, renderer: RichRenderer, secs: int) -> None:
    await service.set_git_cache_ttl_secs(secs)
    renderer.console.print(f"Cached clones are reused for {secs}s")
