"""Active skill dependencies and conflict detection."""

from __future__ import annotations

import logging

from skillenv.dao.skill_dao import SkillDAO
from skillenv.errors import PythonRuntimeError
from skillenv.models.domain import Conflict, ConflictSkill, DependencyItem
from skillenv.services.runtime.requirements import parse_requirement

logger = logging.getLogger(__name__)


class DependencyCollector:
    """Reads the requirements declared by currently active skill versions.

    Results are recomputed on every call so (de)activating a skill is
    visible immediately.
    """

    def __init__(self, skills: SkillDAO):
        self.skills = skills

    async def collect_active_dependencies(self) -> list[DependencyItem]:
        """One item per (active skill version, declared requirement).

        Skills are visited in catalog order (by slug) and requirements in
        manifest order. The same package declared by two skills yields two
        items. Invalid manifest entries are skipped with a warning.
        """
        items: list[DependencyItem] = []
        for active in await self.skills.list_active_skill_versions():
            for requirement in active.python_packages:
                try:
                    parsed = parse_requirement(requirement)
                except PythonRuntimeError as e:
                    logger.warning(
                        "Skipping invalid requirement %r in skill %s@%s: %s",
                        requirement,
                        active.skill_slug,
                        active.version,
                        e.message,
                    )
                    continue
                items.append(
                    DependencyItem(
                        skill_id=active.skill_id,
                        skill_slug=active.skill_slug,
                        skill_display_name=active.skill_display_name,
                        version_id=active.version_id,
                        version=active.version,
                        requirement=parsed.raw,
                        package_name=parsed.package_name,
                    )
                )
        return items


def analyze_conflicts(items: list[DependencyItem]) -> list[Conflict]:
    """Flag packages that active skills pin with different requirement strings.

    Requirement strings are compared exactly after trimming; every
    distinct string is listed in first-occurrence order. Conflicts are
    sorted by package name.
    """
    groups: dict[str, list[DependencyItem]] = {}
    for item in items:
        groups.setdefault(item.package_name, []).append(item)

    conflicts: list[Conflict] = []
    for package_name, group in groups.items():
        requirements: list[str] = []
        for item in group:
            requirement = item.requirement.strip()
            if requirement not in requirements:
                requirements.append(requirement)
        if len(requirements) < 2:
            continue
        conflicts.append(
            Conflict(
                package_name=package_name,
                requirements=requirements,
                skills=[
                    ConflictSkill(
                        skill_id=item.skill_id,
                        skill_slug=item.skill_slug,
                        version_id=item.version_id,
                        version=item.version,
                        requirement=item.requirement,
                    )
                    for item in group
                ],
            )
        )
    return sorted(conflicts, key=lambda c: c.package_name)
