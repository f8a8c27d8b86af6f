"""Building blocks of the managed Python runtime."""

from .command_runner import CommandResult, CommandRunner, SubprocessCommandRunner
from .dependencies import DependencyCollector, analyze_conflicts
from .indexes import IndexSettings, build_index_args
from .ledger import PackageLedger
from .missing_modules import parse_missing_requirements_from_output
from .paths import PlatformProfile, get_platform_profile, resolve_paths
from .requirements import canonicalize, parse_requirement, validate
from .venv import VenvManager

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DependencyCollector",
    "IndexSettings",
    "PackageLedger",
    "PlatformProfile",
    "SubprocessCommandRunner",
    "VenvManager",
    "analyze_conflicts",
    "build_index_args",
    "canonicalize",
    "get_platform_profile",
    "parse_missing_requirements_from_output",
    "parse_requirement",
    "resolve_paths",
    "validate",
]
