"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest
import pytest_asyncio

from skillenv.config import RuntimeConfig
from skillenv.dao.settings_dao import SettingsDAO
from skillenv.dao.skill_dao import SkillDAO
from skillenv.database import Database
from skillenv.services.python_runtime_service import PythonRuntimeService
from tests.fakes import FakeCommandRunner

# Configure pytest-asyncio to auto-detect async tests
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(repair_backoff_seconds=0)


@pytest_asyncio.fixture
async def test_db():
    """Create a fresh in-memory database for each test."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.init_db()
    yield db
    await db.close()


@pytest.fixture
def settings_dao(test_db: Database) -> SettingsDAO:
    return SettingsDAO(test_db)


@pytest.fixture
def skill_dao(test_db: Database) -> SkillDAO:
    return SkillDAO(test_db)


@pytest.fixture
def runtime_service(
    runtime_config: RuntimeConfig,
    settings_dao: SettingsDAO,
    skill_dao: SkillDAO,
    fake_runner: FakeCommandRunner,
    tmp_path,
) -> PythonRuntimeService:
    return PythonRuntimeService(
        runtime_config,
        settings_dao,
        skill_dao,
        fake_runner,
        env={"APP_DATA_DIR": str(tmp_path / "data")},
        platform="linux",
    )


@pytest.fixture
def add_active_skill(skill_dao: SkillDAO):
    """Create an active skill with one active default version."""

    async def _add(slug: str, requirements: list[str], *, version: str = "1.0.0"):
        skill = await skill_dao.create_skill(slug, slug.title())
        ver = await skill_dao.create_version(
            skill.id, version, python_packages=requirements, make_default=True
        )
        return skill, ver

    return _add
