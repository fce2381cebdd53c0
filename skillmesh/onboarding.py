"""Discover unmanaged skills already present in tool directories."""

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from skillmesh.central_repo import is_inside
from skillmesh.content_hash import fingerprint_dir
from skillmesh.path_utils import is_root_directory
from skillmesh.sync_engine import is_link
from skillmesh.tool_adapters import ToolAdapter, is_tool_installed, resolve_skills_dir

logger = logging.getLogger(__name__)


@dataclass
class OnboardingVariant:
    """One copy of a skill found in one tool's directory"""

    tool: str
    name: str
    path: str
    fingerprint: str | None = None
    is_link: bool = False
    link_target: str | None = None


@dataclass
class OnboardingGroup:
    """All variants sharing a skill name"""

    name: str
    variants: list[OnboardingVariant] = field(default_factory=list)
    has_conflict: bool = False


@dataclass
class OnboardingPlan:
    total_tools_scanned: int = 0
    total_skills_found: int = 0
    groups: list[OnboardingGroup] = field(default_factory=list)


def _norm(path: str | Path) -> str:
    return os.path.normcase(os.path.abspath(path))


def _link_target(path: Path) -> str | None:
    try:
        return os.readlink(path)
    except OSError:
        return None


def scan_tool_dir(adapter: ToolAdapter, skills_dir: Path) -> list[OnboardingVariant]:
    """List the skill-shaped subdirectories of one tool directory."""
    variants: list[OnboardingVariant] = []
    try:
        entries = sorted(skills_dir.iterdir())
    except OSError as e:
        logger.debug(f"Cannot read {skills_dir}: {e}")
        return variants

    for entry in entries:
        if entry.name.startswith("."):
            continue
        linked = is_link(entry)
        if not entry.is_dir():
            continue
        variants.append(
            OnboardingVariant(
                tool=adapter.key,
                name=entry.name,
                path=str(entry),
                fingerprint=fingerprint_dir(entry),
                is_link=linked,
                link_target=_link_target(entry) if linked else None,
            )
        )
    return variants


def build_onboarding_plan(
    adapters: Iterable[ToolAdapter],
    managed_target_paths: Iterable[str] = (),
    central_dir: Path | None = None,
) -> OnboardingPlan:
    """Group skills found in installed tools by name.

    Entries that are already managed targets, or links into the central
    repository, are left out. A group conflicts when its variants have
    more than one distinct fingerprint.
    """
    managed = {_norm(p) for p in managed_target_paths}
    plan = OnboardingPlan()
    by_name: dict[str, list[OnboardingVariant]] = {}

    for adapter in adapters:
        if not adapter.relative_skills_dir or is_root_directory(adapter.relative_skills_dir):
            continue
        if not is_tool_installed(adapter):
            continue
        plan.total_tools_scanned += 1

        skills_dir = resolve_skills_dir(adapter)
        if not skills_dir.is_dir():
            continue

        for variant in scan_tool_dir(adapter, skills_dir):
            if _norm(variant.path) in managed:
                continue
            if (
                central_dir is not None
                and variant.is_link
                and is_inside(Path(variant.path), Path(central_dir))
            ):
                continue
            by_name.setdefault(variant.name, []).append(variant)
            plan.total_skills_found += 1

    for name in sorted(by_name):
        variants = by_name[name]
        fingerprints = {v.fingerprint for v in variants if v.fingerprint is not None}
        plan.groups.append(
            OnboardingGroup(name=name, variants=variants, has_conflict=len(fingerprints) > 1)
        )

    logger.info(
        f"Onboarding scan: {plan.total_tools_scanned} tools, "
        f"{plan.total_skills_found} skills, {len(plan.groups)} groups"
    )
    return plan
