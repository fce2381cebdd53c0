#!/usr/bin/env python3
"""skillmesh CLI - Main entry point for skill management."""

import argparse
import asyncio
import logging
import sys

from skillmesh import __version__
from skillmesh.commands import remote as remote_commands
from skillmesh.commands import skills as skill_commands
from skillmesh.commands.renderers.rich_renderer import RichRenderer
from skillmesh.errors import SkillMeshError, format_error
from skillmesh.logging_config import setup_logging
from skillmesh.service import SSH, WSL, SkillService
from skillmesh.sync_engine import SyncMode

logger = logging.getLogger(__name__)


def _service(args) -> SkillService:
    return SkillService.open(
        getattr(args, "db", None), auto_remote_sync=getattr(args, "auto_sync", False)
    )


def _run(args, command, *params, **kwargs):
    """Run one async command with a fresh service and renderer.

    Returns the process exit code: 1 when the command returned False.
    """
    service = _service(args)
    renderer = RichRenderer()
    result = asyncio.run(command(service, renderer, *params, **kwargs))
    return 1 if result is False else 0


def _on_off(value):
    if value is None:
        return None
    return value == "on"


# ── skills ────────────────────────────────────────────────


def cmd_tools(args):
    return _run(args, skill_commands.cmd_tools)


def cmd_list(args):
    return _run(args, skill_commands.cmd_list)


def cmd_install_local(args):
    return _run(args, skill_commands.cmd_install_local, args.path, overwrite=args.overwrite)


def cmd_install_git(args):
    return _run(
        args, skill_commands.cmd_install_git, args.url, args.branch, overwrite=args.overwrite
    )


def cmd_install_select(args):
    return _run(
        args,
        skill_commands.cmd_install_select,
        args.url,
        args.subpath,
        args.branch,
        overwrite=args.overwrite,
    )


def cmd_candidates(args):
    return _run(args, skill_commands.cmd_candidates, args.url, args.branch)


def cmd_sync(args):
    return _run(
        args,
        skill_commands.cmd_sync,
        args.skill,
        args.tools,
        overwrite=args.overwrite,
        mode=args.mode,
    )


def cmd_unsync(args):
    return _run(args, skill_commands.cmd_unsync, args.skill, args.tools)


def cmd_update(args):
    return _run(args, skill_commands.cmd_update, args.skill)


def cmd_delete(args):
    return _run(args, skill_commands.cmd_delete, args.skill, force=args.force)


def cmd_onboard(args):
    return _run(args, skill_commands.cmd_onboard)


def cmd_import(args):
    return _run(args, skill_commands.cmd_import, args.path, overwrite=args.overwrite)


def cmd_repo_get(args):
    return _run(args, skill_commands.cmd_repo_get)


def cmd_repo_set(args):
    return _run(args, skill_commands.cmd_repo_set, args.path)


def cmd_cache_path(args):
    return _run(args, skill_commands.cmd_cache_path)


def cmd_cache_clear(args):
    return _run(args, skill_commands.cmd_cache_clear)


def cmd_cache_cleanup(args):
    return _run(args, skill_commands.cmd_cache_cleanup, args.days)


def cmd_cache_days(args):
    return _run(args, skill_commands.cmd_cache_days, args.days)


def cmd_cache_ttl(args):
    return _run(args, skill_commands.cmd_cache_ttl, args.secs)


# ── remote ────────────────────────────────────────────────


def cmd_ssh_add(args):
    return _run(
        args,
        remote_commands.cmd_ssh_add,
        args.host,
        args.user,
        port=args.port,
        name=args.name,
        key=args.key,
        password=args.password,
    )


def cmd_ssh_test(args):
    return _run(args, remote_commands.cmd_ssh_test, args.connection)


def cmd_ssh_sync(args):
    return _run(args, remote_commands.cmd_ssh_sync, args.module)


def cmd_ssh_status(args):
    return _run(args, remote_commands.cmd_ssh_status)


def cmd_wsl_detect(args):
    return _run(args, remote_commands.cmd_wsl_detect)


def cmd_wsl_use(args):
    return _run(args, remote_commands.cmd_wsl_use, args.distro)


def cmd_wsl_sync(args):
    return _run(args, remote_commands.cmd_wsl_sync, args.module)


def cmd_wsl_status(args):
    return _run(args, remote_commands.cmd_wsl_status)


def cmd_remote_options(args):
    return _run(
        args,
        remote_commands.cmd_remote_options,
        args.kind,
        enabled=_on_off(args.enabled),
        sync_skills=_on_off(args.skills),
        sync_mcp=_on_off(args.mcp),
    )


def cmd_remote_skills(args):
    return _run(args, remote_commands.cmd_remote_skills, args.kind)


def _add_kind_parsers(subparsers, kind):
    p = subparsers.add_parser("options", help=f"Change {kind.upper()} sync options")
    p.add_argument("--enabled", choices=["on", "off"], help="Enable or disable sync")
    p.add_argument("--skills", choices=["on", "off"], help="Mirror skills")
    p.add_argument("--mcp", choices=["on", "off"], help="Mirror MCP configuration")
    p.set_defaults(func=cmd_remote_options, kind=kind)

    p = subparsers.add_parser("skills", help="Mirror only the skills")
    p.set_defaults(func=cmd_remote_skills, kind=kind)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="skillmesh - central skill repository for AI coding tools",
        prog="skillmesh",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", help="Record database path (default: ~/.skillmesh/skillmesh.db)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--log-file",
        metavar="PATH",
        help='Also log to PATH, or to a daily file under ~/.skillmesh/logs with "on"',
    )
    parser.add_argument(
        "--auto-sync",
        action="store_true",
        help="Mirror skills to enabled SSH/WSL targets after each change",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # tools
    p_tools = subparsers.add_parser("tools", help="Show detected tools")
    p_tools.set_defaults(func=cmd_tools)

    # list
    p_list = subparsers.add_parser("list", help="List managed skills")
    p_list.set_defaults(func=cmd_list)

    # install
    p_install = subparsers.add_parser("install", help="Install a skill")
    p_install.set_defaults(help_parser=p_install)
    install_subparsers = p_install.add_subparsers(dest="install_command", help="Sources")

    p_inst_local = install_subparsers.add_parser("local", help="Install from a directory")
    p_inst_local.add_argument("path", help="Skill directory (holding SKILL.md)")
    p_inst_local.add_argument("--overwrite", action="store_true", help="Replace an existing skill")
    p_inst_local.set_defaults(func=cmd_install_local)

    p_inst_git = install_subparsers.add_parser("git", help="Install from a git repository")
    p_inst_git.add_argument("url", help="Repository URL")
    p_inst_git.add_argument("--branch", "-b", help="Branch to check out")
    p_inst_git.add_argument("--overwrite", action="store_true", help="Replace an existing skill")
    p_inst_git.set_defaults(func=cmd_install_git)

    p_inst_sel = install_subparsers.add_parser(
        "select", help="Install one skill of a multi-skill repository"
    )
    p_inst_sel.add_argument("url", help="Repository URL")
    p_inst_sel.add_argument("subpath", help="Skill directory inside the repository")
    p_inst_sel.add_argument("--branch", "-b", help="Branch to check out")
    p_inst_sel.add_argument("--overwrite", action="store_true", help="Replace an existing skill")
    p_inst_sel.set_defaults(func=cmd_install_select)

    # candidates
    p_cand = subparsers.add_parser("candidates", help="List skills in a git repository")
    p_cand.add_argument("url", help="Repository URL")
    p_cand.add_argument("--branch", "-b", help="Branch to check out")
    p_cand.set_defaults(func=cmd_candidates)

    # sync / unsync
    p_sync = subparsers.add_parser("sync", help="Link or copy a skill into tools")
    p_sync.add_argument("skill", help="Skill name or id")
    p_sync.add_argument("tools", nargs="+", help="Tool keys (claude_code, codex, ...)")
    p_sync.add_argument(
        "--mode", choices=[m.value for m in SyncMode], default=SyncMode.AUTO.value,
        help="Link strategy (default: auto)",
    )
    p_sync.add_argument("--overwrite", action="store_true", help="Replace what is there")
    p_sync.set_defaults(func=cmd_sync)

    p_unsync = subparsers.add_parser("unsync", help="Remove a skill from tools")
    p_unsync.add_argument("skill", help="Skill name or id")
    p_unsync.add_argument("tools", nargs="+", help="Tool keys")
    p_unsync.set_defaults(func=cmd_unsync)

    # update
    p_update = subparsers.add_parser("update", help="Re-read a skill from its source")
    p_update.add_argument("skill", help="Skill name or id")
    p_update.set_defaults(func=cmd_update)

    # delete
    p_delete = subparsers.add_parser("delete", help="Delete a skill and its targets")
    p_delete.add_argument("skill", help="Skill name or id")
    p_delete.add_argument("--force", "-f", action="store_true", help="Do not ask")
    p_delete.set_defaults(func=cmd_delete)

    # onboard / import
    p_onboard = subparsers.add_parser("onboard", help="Find unmanaged skills in tool dirs")
    p_onboard.set_defaults(func=cmd_onboard)

    p_import = subparsers.add_parser("import", help="Adopt an unmanaged skill")
    p_import.add_argument("path", help="Skill directory inside a tool dir")
    p_import.add_argument("--overwrite", action="store_true", help="Replace an existing skill")
    p_import.set_defaults(func=cmd_import)

    # repo
    p_repo = subparsers.add_parser("repo", help="Central repository location")
    p_repo.set_defaults(help_parser=p_repo)
    repo_subparsers = p_repo.add_subparsers(dest="repo_command", help="Repository commands")
    p_repo_get = repo_subparsers.add_parser("get", help="Show the location")
    p_repo_get.set_defaults(func=cmd_repo_get)
    p_repo_set = repo_subparsers.add_parser("set", help="Change the location")
    p_repo_set.add_argument("path", help="Absolute path (~ allowed)")
    p_repo_set.set_defaults(func=cmd_repo_set)

    # cache
    p_cache = subparsers.add_parser("cache", help="Git clone cache")
    p_cache.set_defaults(help_parser=p_cache)
    cache_subparsers = p_cache.add_subparsers(dest="cache_command", help="Cache commands")
    p_cache_path = cache_subparsers.add_parser("path", help="Show the cache directory")
    p_cache_path.set_defaults(func=cmd_cache_path)
    p_cache_clear = cache_subparsers.add_parser("clear", help="Remove every cached clone")
    p_cache_clear.set_defaults(func=cmd_cache_clear)
    p_cache_cleanup = cache_subparsers.add_parser("cleanup", help="Remove stale clones")
    p_cache_cleanup.add_argument("--days", type=int, help="Age limit (default: setting)")
    p_cache_cleanup.set_defaults(func=cmd_cache_cleanup)
    p_cache_days = cache_subparsers.add_parser("days", help="Show or set the age limit")
    p_cache_days.add_argument("days", type=int, nargs="?", help="New limit (0-3650)")
    p_cache_days.set_defaults(func=cmd_cache_days)
    p_cache_ttl = cache_subparsers.add_parser("ttl", help="Set the clone reuse window")
    p_cache_ttl.add_argument("secs", type=int, help="Seconds")
    p_cache_ttl.set_defaults(func=cmd_cache_ttl)

    # ssh
    p_ssh = subparsers.add_parser("ssh", help="Mirror to a host over SSH")
    p_ssh.set_defaults(help_parser=p_ssh)
    ssh_subparsers = p_ssh.add_subparsers(dest="ssh_command", help="SSH commands")
    p_ssh_add = ssh_subparsers.add_parser("add", help="Add and activate a connection")
    p_ssh_add.add_argument("host", help="Host name or address")
    p_ssh_add.add_argument("--user", "-u", required=True, help="Remote user")
    p_ssh_add.add_argument("--port", "-p", type=int, default=22, help="Port (default: 22)")
    p_ssh_add.add_argument("--name", help="Display name")
    p_ssh_add.add_argument("--key", "-i", help="Private key file")
    p_ssh_add.add_argument("--password", help="Password (requires sshpass)")
    p_ssh_add.set_defaults(func=cmd_ssh_add)
    p_ssh_test = ssh_subparsers.add_parser("test", help="Test the active connection")
    p_ssh_test.add_argument("--connection", "-c", help="Connection id (default: active)")
    p_ssh_test.set_defaults(func=cmd_ssh_test)
    p_ssh_sync = ssh_subparsers.add_parser("sync", help="Run a full sync")
    p_ssh_sync.add_argument("--module", "-m", help="Only file mappings of this module")
    p_ssh_sync.set_defaults(func=cmd_ssh_sync)
    p_ssh_status = ssh_subparsers.add_parser("status", help="Show the last sync outcome")
    p_ssh_status.set_defaults(func=cmd_ssh_status)
    _add_kind_parsers(ssh_subparsers, SSH)

    # wsl
    p_wsl = subparsers.add_parser("wsl", help="Mirror to a WSL distribution")
    p_wsl.set_defaults(help_parser=p_wsl)
    wsl_subparsers = p_wsl.add_subparsers(dest="wsl_command", help="WSL commands")
    p_wsl_detect = wsl_subparsers.add_parser("detect", help="List WSL distributions")
    p_wsl_detect.set_defaults(func=cmd_wsl_detect)
    p_wsl_use = wsl_subparsers.add_parser("use", help="Select and enable a distribution")
    p_wsl_use.add_argument("distro", help="Distribution name")
    p_wsl_use.set_defaults(func=cmd_wsl_use)
    p_wsl_sync = wsl_subparsers.add_parser("sync", help="Run a full sync")
    p_wsl_sync.add_argument("--module", "-m", help="Only file mappings of this module")
    p_wsl_sync.set_defaults(func=cmd_wsl_sync)
    p_wsl_status = wsl_subparsers.add_parser("status", help="Show the last sync outcome")
    p_wsl_status.set_defaults(func=cmd_wsl_status)
    _add_kind_parsers(wsl_subparsers, WSL)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(log_file=args.log_file, debug=args.debug)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # Group command without an action
    if not hasattr(args, "func"):
        args.help_parser.print_help()
        sys.exit(1)

    try:
        code = args.func(args)
    except SkillMeshError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(format_error(e), file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
