"""Skill catalog data access operations."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from skillenv.dao.base import BaseDAO
from skillenv.enums import SkillStatus
from skillenv.models.domain import ActiveSkillVersion, Skill, SkillVersion
from skillenv.models.orm import SkillModel, SkillVersionModel

logger = logging.getLogger(__name__)

MANIFEST_REQUIREMENTS_KEY = "python_packages"


class SkillDAO(BaseDAO[Skill]):
    """Data access object for the skill catalog.

    The runtime only reads active skill versions; the write helpers exist
    for seeding the catalog.
    """

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_manifest(raw: str | None) -> dict[str, Any]:
        if not raw:
            return {}
        try:
            data = json.loads(raw)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    @staticmethod
    def _manifest_requirements(manifest: dict[str, Any]) -> list[str]:
        raw = manifest.get(MANIFEST_REQUIREMENTS_KEY)
        if not isinstance(raw, list):
            return []
        return [item.strip() for item in raw if isinstance(item, str) and item.strip()]

    @staticmethod
    def _skill_to_domain(model: SkillModel) -> Skill:
        return Skill(
            id=model.id,
            slug=model.slug,
            display_name=model.display_name,
            status=SkillStatus(model.status),
            default_version_id=model.default_version_id,
            created_at=model.created_at,
        )

    @classmethod
    def _version_to_domain(cls, model: SkillVersionModel) -> SkillVersion:
        return SkillVersion(
            id=model.id,
            skill_id=model.skill_id,
            version=model.version,
            status=SkillStatus(model.status),
            manifest=cls._parse_manifest(model.manifest_json),
            created_at=model.created_at,
            activated_at=model.activated_at,
        )

    @staticmethod
    def _pick_active_version(skill: SkillModel) -> SkillVersionModel | None:
        active = [v for v in skill.versions if v.status == SkillStatus.ACTIVE.value]
        if not active:
            return None
        for version in active:
            if version.id == skill.default_version_id:
                return version
        return max(
            active,
            key=lambda v: (v.activated_at or datetime.min, v.created_at or datetime.min),
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def list_active_skill_versions(self) -> list[ActiveSkillVersion]:
        """Return the contributing version of every active skill, by slug."""

        async with self._db.session() as session:
            result = await session.execute(
                select(SkillModel)
                .where(SkillModel.status == SkillStatus.ACTIVE.value)
                .options(selectinload(SkillModel.versions))
                .order_by(SkillModel.slug)
            )
            skills = result.scalars().all()

            active: list[ActiveSkillVersion] = []
            for skill in skills:
                version = self._pick_active_version(skill)
                if version is None:
                    continue
                manifest = self._parse_manifest(version.manifest_json)
                active.append(
                    ActiveSkillVersion(
                        skill_id=skill.id,
                        skill_slug=skill.slug,
                        skill_display_name=skill.display_name,
                        version_id=version.id,
                        version=version.version,
                        python_packages=self._manifest_requirements(manifest),
                    )
                )
            return active

    async def get_by_slug(self, slug: str) -> Skill | None:
        async with self._db.session() as session:
            result = await session.execute(select(SkillModel).where(SkillModel.slug == slug))
            model = result.scalar_one_or_none()
            return self._skill_to_domain(model) if model is not None else None

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def create_skill(
        self,
        slug: str,
        display_name: str | None = None,
        *,
        status: SkillStatus = SkillStatus.ACTIVE,
    ) -> Skill:
        async with self._db.session() as session:
            model = SkillModel(
                slug=slug,
                display_name=display_name or slug,
                status=status.value,
                created_at=datetime.utcnow(),
            )
            session.add(model)
            await session.flush()
            return self._skill_to_domain(model)

    async def create_version(
        self,
        skill_id: int,
        version: str,
        *,
        python_packages: list[str] | None = None,
        manifest: dict[str, Any] | None = None,
        status: SkillStatus = SkillStatus.ACTIVE,
        make_default: bool = False,
        activated_at: datetime | None = None,
    ) -> SkillVersion:
        """Create a skill version.

        ``python_packages`` is a shortcut for the manifest's requirement
        list. Active versions get ``activated_at`` set to now unless given.
        """

        data = dict(manifest or {})
        if python_packages is not None:
            data[MANIFEST_REQUIREMENTS_KEY] = list(python_packages)

        now = datetime.utcnow()
        if status == SkillStatus.ACTIVE and activated_at is None:
            activated_at = now

        async with self._db.session() as session:
            model = SkillVersionModel(
                skill_id=skill_id,
                version=version,
                status=status.value,
                manifest_json=json.dumps(data),
                created_at=now,
                activated_at=activated_at,
            )
            session.add(model)
            await session.flush()

            if make_default:
                skill = await session.get(SkillModel, skill_id)
                if skill is not None:
                    skill.default_version_id = model.id
                    await session.flush()

            return self._version_to_domain(model)

    async def set_status(self, skill_id: int, status: SkillStatus) -> bool:
        """Change a skill's status. Returns False when the skill is unknown."""

        async with self._db.session() as session:
            skill = await session.get(SkillModel, skill_id)
            if skill is None:
                return False
            skill.status = status.value
            await session.flush()
            logger.info("Skill %s status set to %s", skill.slug, status.value)
            return True
