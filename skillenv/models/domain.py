"""Pydantic domain models.

These models are returned by DAOs and services. SQLAlchemy ORM objects
should never be exposed outside the DAO layer - always convert to these
models. JSON output is camelCase through ``JsonModel``.
"""

from datetime import datetime
from typing import Any

from pydantic import Field

from skillenv.enums import InstallSource, PackageSource, SkillStatus
from skillenv.models.base import JsonModel


# ---------------------------
# Skill catalog
# ---------------------------


class Skill(JsonModel):
    id: int
    slug: str
    display_name: str
    status: SkillStatus = SkillStatus.ACTIVE
    default_version_id: int | None = None
    created_at: datetime


class SkillVersion(JsonModel):
    id: int
    skill_id: int
    version: str
    status: SkillStatus = SkillStatus.DRAFT
    manifest: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    activated_at: datetime | None = None


class ActiveSkillVersion(JsonModel):
    """The version of an active skill that currently contributes requirements."""

    skill_id: int
    skill_slug: str
    skill_display_name: str
    version_id: int
    version: str
    python_packages: list[str] = Field(default_factory=list)


# ---------------------------
# Runtime
# ---------------------------


class RuntimePaths(JsonModel):
    data_root: str
    runtime_root: str
    venv_path: str
    python_path: str


class RuntimeIndexes(JsonModel):
    """Package index configuration passed to every pip install."""

    index_url: str | None = None
    extra_index_urls: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=list)
    auto_install_on_activate: bool = True
    auto_install_on_missing: bool = True


class InstalledPackage(JsonModel):
    name: str
    version: str


class DependencyItem(JsonModel):
    """One requirement declared by one active skill version."""

    skill_id: int
    skill_slug: str
    skill_display_name: str
    version_id: int
    version: str
    requirement: str
    package_name: str


class SkillConsumer(JsonModel):
    skill_id: int
    skill_slug: str
    skill_display_name: str
    version_id: int
    version: str
    requirement: str


class ConflictSkill(JsonModel):
    skill_id: int
    skill_slug: str
    version_id: int
    version: str
    requirement: str


class Conflict(JsonModel):
    """Distinct requirement strings that target the same canonical package."""

    package_name: str
    requirements: list[str]
    skills: list[ConflictSkill] = Field(default_factory=list)


class PackageSourceEntry(JsonModel):
    name: str
    sources: list[PackageSource] = Field(default_factory=list)


class RuntimeIssue(JsonModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class RuntimeStatus(JsonModel):
    """Aggregate view of the managed runtime.

    When ``ready`` is false, ``runtime_issue`` explains why and
    ``installed_packages`` is empty.
    """

    data_root: str
    runtime_root: str
    venv_path: str
    python_path: str
    ready: bool
    runtime_issue: RuntimeIssue | None = None
    indexes: RuntimeIndexes
    manual_packages: list[str] = Field(default_factory=list)
    python_auto_packages: list[str] = Field(default_factory=list)
    skill_auto_packages: list[str] = Field(default_factory=list)
    installed_packages: list[InstalledPackage] = Field(default_factory=list)
    active_dependencies: list[DependencyItem] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    package_sources: list[PackageSourceEntry] = Field(default_factory=list)


class InstallResult(JsonModel):
    source: InstallSource
    requirements: list[str]
    package_names: list[str]
    pip_check_passed: bool
    pip_check_output: str
    installed_packages: list[InstalledPackage]


class UninstallResult(JsonModel):
    packages: list[str]
    pip_check_passed: bool
    pip_check_output: str
    installed_packages: list[InstalledPackage]


class ReconcileResult(JsonModel):
    requirements: list[str]
    pip_check_passed: bool
    pip_check_output: str
    installed_packages: list[InstalledPackage]
    conflicts: list[Conflict]


class SkillDependencySource(JsonModel):
    package_name: str
    consumers: list[SkillConsumer]


class CleanupPlan(JsonModel):
    """Which of a removed skill's packages can go, and why the rest stay."""

    removed_skill_packages: list[str] = Field(default_factory=list)
    kept_by_active_skills: list[str] = Field(default_factory=list)
    kept_by_active_skill_sources: list[SkillDependencySource] = Field(default_factory=list)
    kept_by_manual: list[str] = Field(default_factory=list)
    removable_packages: list[str] = Field(default_factory=list)


class CleanupResult(CleanupPlan):
    removed_packages: list[str] = Field(default_factory=list)


class ScriptRunResult(JsonModel):
    stdout: str
    stderr: str
    exit_code: int | None
    duration_ms: int
    truncated: bool = False
    auto_installed_requirements: list[str] = Field(default_factory=list)
