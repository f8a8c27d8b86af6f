"""Data Access Objects package."""

from .base import BaseDAO
from .settings_dao import SettingsDAO
from .skill_dao import SkillDAO

__all__ = [
    "BaseDAO",
    "SettingsDAO",
    "SkillDAO",
]
