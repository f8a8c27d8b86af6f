"""Persisted package ledger: why each package is in the shared venv.

Three name-only sets are stored as JSON arrays in the settings store.
They are re-read on every call; nothing is cached between calls.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable

from skillenv.dao.settings_dao import SettingsDAO
from skillenv.enums import InstallSource
from skillenv.services.runtime.requirements import normalize_package_list

logger = logging.getLogger(__name__)

MANUAL_PACKAGES_KEY = "python_runtime_manual_packages"
PYTHON_AUTO_PACKAGES_KEY = "python_runtime_python_auto_packages"
SKILL_AUTO_PACKAGES_KEY = "python_runtime_skill_auto_packages"

LEDGER_LIMIT = 512

LEDGER_KEYS: dict[InstallSource, str] = {
    InstallSource.MANUAL: MANUAL_PACKAGES_KEY,
    InstallSource.PYTHON_AUTO: PYTHON_AUTO_PACKAGES_KEY,
    InstallSource.SKILL_AUTO: SKILL_AUTO_PACKAGES_KEY,
}


def parse_json_list(raw: str | None) -> list:
    """Decode a JSON array setting; anything else reads as empty."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    return data if isinstance(data, list) else []


class PackageLedger:
    def __init__(self, settings: SettingsDAO):
        self.settings = settings

    async def _read(self, key: str) -> list[str]:
        return normalize_package_list(parse_json_list(await self.settings.get(key)), LEDGER_LIMIT)

    async def _write(self, key: str, names: Iterable[str]) -> list[str]:
        normalized = normalize_package_list(list(names), LEDGER_LIMIT)
        await self.settings.set(key, json.dumps(normalized))
        return normalized

    async def get_manual_packages(self) -> list[str]:
        return await self._read(MANUAL_PACKAGES_KEY)

    async def set_manual_packages(self, names: Iterable[str]) -> list[str]:
        return await self._write(MANUAL_PACKAGES_KEY, names)

    async def get_python_auto_packages(self) -> list[str]:
        return await self._read(PYTHON_AUTO_PACKAGES_KEY)

    async def set_python_auto_packages(self, names: Iterable[str]) -> list[str]:
        return await self._write(PYTHON_AUTO_PACKAGES_KEY, names)

    async def get_skill_auto_packages(self) -> list[str]:
        return await self._read(SKILL_AUTO_PACKAGES_KEY)

    async def set_skill_auto_packages(self, names: Iterable[str]) -> list[str]:
        return await self._write(SKILL_AUTO_PACKAGES_KEY, names)

    async def add(self, source: InstallSource, names: Iterable[str]) -> list[str] | None:
        """Record *names* under *source*.

        Returns the stored list, or ``None`` for sources without a ledger
        set (``skill`` installs are tracked through skill manifests).
        """
        key = LEDGER_KEYS.get(source)
        if key is None:
            return None
        current = await self._read(key)
        return await self._write(key, [*current, *names])

    async def discard_everywhere(self, names: Iterable[str]) -> None:
        """Remove *names* from all three sets, whatever their original source."""
        drop = set(normalize_package_list(list(names), LEDGER_LIMIT))
        if not drop:
            return
        for key in LEDGER_KEYS.values():
            current = await self._read(key)
            kept = [n for n in current if n not in drop]
            if len(kept) != len(current):
                await self._write(key, kept)
