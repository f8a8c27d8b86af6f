"""System settings data access operations."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import select

from skillenv.dao.base import BaseDAO
from skillenv.models.orm import SystemSettingModel


class SettingsDAO(BaseDAO[str]):
    """String-keyed settings store.

    Values are stored as plain strings; callers decide whether a value is
    JSON-encoded. Nothing is cached: every read goes to the database.
    """

    async def get(self, key: str) -> str | None:
        """Return the stored value for *key*, or ``None`` when unset."""

        async with self._db.session() as session:
            result = await session.execute(
                select(SystemSettingModel).where(SystemSettingModel.key == key)
            )
            model = result.scalar_one_or_none()
            return model.value if model is not None else None

    async def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        """Return ``{key: value}`` for the keys that exist."""

        wanted = list(keys)
        if not wanted:
            return {}
        async with self._db.session() as session:
            result = await session.execute(
                select(SystemSettingModel).where(SystemSettingModel.key.in_(wanted))
            )
            return {m.key: m.value for m in result.scalars().all()}

    async def set(self, key: str, value: str) -> None:
        """Insert or replace the value for *key*."""

        async with self._db.session() as session:
            result = await session.execute(
                select(SystemSettingModel).where(SystemSettingModel.key == key)
            )
            model = result.scalar_one_or_none()
            now = datetime.utcnow()
            if model is None:
                session.add(SystemSettingModel(key=key, value=value, updated_at=now))
            else:
                model.value = value
                model.updated_at = now
            await session.flush()
