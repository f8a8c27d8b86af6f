"""StrEnum definitions for type-safe constants."""

from enum import StrEnum


class InstallSource(StrEnum):
    """Why a package install was requested.

    The first three are persisted in the package ledger. ``SKILL`` covers
    manifest installs on skill activation; those are tracked through the
    derived ``skill_manifest`` source instead.
    """

    MANUAL = "manual"
    PYTHON_AUTO = "python_auto"
    SKILL_AUTO = "skill_auto"
    SKILL = "skill"


class PackageSource(StrEnum):
    """Sources reported for an installed package, in lookup order."""

    MANUAL = "manual"
    SKILL_MANIFEST = "skill_manifest"
    SKILL_AUTO = "skill_auto"
    PYTHON_AUTO = "python_auto"


class SkillStatus(StrEnum):
    """Skill and skill version lifecycle states."""

    DRAFT = "draft"
    ACTIVE = "active"
    DISABLED = "disabled"
    ARCHIVED = "archived"


class RuntimeErrorCode(StrEnum):
    """Error codes surfaced by the managed Python runtime."""

    UNSAFE_REQUIREMENT = "PYTHON_RUNTIME_UNSAFE_REQUIREMENT"
    EMPTY_REQUIREMENTS = "PYTHON_RUNTIME_EMPTY_REQUIREMENTS"
    EMPTY_PACKAGES = "PYTHON_RUNTIME_EMPTY_PACKAGES"
    INVALID_PACKAGE_NAME = "PYTHON_RUNTIME_INVALID_PACKAGE_NAME"
    INVALID_INDEX = "PYTHON_RUNTIME_INVALID_INDEX"
    INSTALL_FAILED = "PYTHON_RUNTIME_INSTALL_FAILED"
    UNINSTALL_FAILED = "PYTHON_RUNTIME_UNINSTALL_FAILED"
    PACKAGE_IN_USE = "PYTHON_RUNTIME_PACKAGE_IN_USE"
    LIST_PACKAGES_FAILED = "PYTHON_RUNTIME_LIST_PACKAGES_FAILED"
    PIP_UNAVAILABLE = "PYTHON_RUNTIME_PIP_UNAVAILABLE"
    CREATE_VENV_FAILED = "PYTHON_RUNTIME_CREATE_VENV_FAILED"
    COMMAND_ERROR = "PYTHON_RUNTIME_COMMAND_ERROR"
    TIMEOUT = "PYTHON_RUNTIME_TIMEOUT"
