"""Cleanup planning after a skill's requirements shrink or disappear.

Planning is pure: it only looks at the inputs it is given.
"""

from __future__ import annotations

from typing import Iterable

from skillenv.models.domain import (
    CleanupPlan,
    DependencyItem,
    SkillConsumer,
    SkillDependencySource,
)
from skillenv.services.runtime.requirements import parse_requirement_safe


def candidate_packages(removed_requirements: Iterable[str]) -> list[str]:
    """Canonical names of the removed requirements, deduped, first-seen order.

    Requirements that do not validate are ignored.
    """
    names: list[str] = []
    for requirement in removed_requirements:
        parsed = parse_requirement_safe(requirement)
        if parsed is None or parsed.package_name in names:
            continue
        names.append(parsed.package_name)
    return names


def _consumers(items: list[DependencyItem]) -> list[SkillConsumer]:
    unique: dict[tuple[int, int, str], SkillConsumer] = {}
    for item in items:
        key = (item.skill_id, item.version_id, item.requirement.lower())
        unique[key] = SkillConsumer(
            skill_id=item.skill_id,
            skill_slug=item.skill_slug,
            skill_display_name=item.skill_display_name,
            version_id=item.version_id,
            version=item.version,
            requirement=item.requirement,
        )
    return sorted(unique.values(), key=lambda c: (c.skill_slug, c.version, c.requirement))


def build_cleanup_plan(
    removed_requirements: Iterable[str],
    active_dependencies: list[DependencyItem],
    manual_packages: Iterable[str],
    *,
    exclude_skill_ids: Iterable[int] | None = None,
) -> CleanupPlan:
    """Split the removed skill's packages into kept and removable.

    A package still required by an active skill is kept (with every
    consumer listed); otherwise a manually installed package is kept;
    everything else is removable.
    """
    candidates = candidate_packages(removed_requirements)
    if not candidates:
        return CleanupPlan()

    excluded = set(exclude_skill_ids or ())
    active = [d for d in active_dependencies if d.skill_id not in excluded]
    by_package: dict[str, list[DependencyItem]] = {}
    for item in active:
        by_package.setdefault(item.package_name, []).append(item)
    manual = set(manual_packages)

    plan = CleanupPlan(removed_skill_packages=candidates)
    for name in candidates:
        if name in by_package:
            plan.kept_by_active_skills.append(name)
            plan.kept_by_active_skill_sources.append(
                SkillDependencySource(package_name=name, consumers=_consumers(by_package[name]))
            )
        elif name in manual:
            plan.kept_by_manual.append(name)
        else:
            plan.removable_packages.append(name)
    return plan
