"""Managed runtime path resolution.

Paths are a pure function of the environment mapping and the platform
name; nothing here touches the filesystem.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import PurePath, PurePosixPath, PureWindowsPath
from typing import Mapping

from skillenv.models.domain import RuntimePaths

DATA_ROOT_ENV_KEYS = ("APP_DATA_DIR", "DATA_DIR")
RUNTIME_DIR_NAME = "python-runtime"
VENV_DIR_NAME = "venv"


@dataclass(frozen=True)
class PlatformProfile:
    path_type: type[PurePath]
    bin_dir: str
    exe_suffix: str
    bootstrap_fallbacks: tuple[str, ...]


_POSIX = PlatformProfile(
    path_type=PurePosixPath,
    bin_dir="bin",
    exe_suffix="",
    bootstrap_fallbacks=("python3", "python"),
)
_WINDOWS = PlatformProfile(
    path_type=PureWindowsPath,
    bin_dir="Scripts",
    exe_suffix=".exe",
    bootstrap_fallbacks=("python", "py"),
)

PLATFORM_PROFILES: dict[str, PlatformProfile] = {
    "win32": _WINDOWS,
}


def get_platform_profile(platform: str | None = None) -> PlatformProfile:
    """Return the profile for *platform* (defaults to ``sys.platform``)."""
    return PLATFORM_PROFILES.get(platform or sys.platform, _POSIX)


def resolve_data_root(
    env: Mapping[str, str],
    platform: str | None = None,
    *,
    cwd: str | None = None,
) -> str:
    profile = get_platform_profile(platform)
    base = profile.path_type(cwd if cwd is not None else os.getcwd())

    raw = next((env[k] for k in DATA_ROOT_ENV_KEYS if env.get(k)), None)
    if not raw:
        return str(base / "data")

    root = profile.path_type(raw)
    if not root.is_absolute():
        root = base / root
    return str(root)


def resolve_paths(
    env: Mapping[str, str],
    platform: str | None = None,
    *,
    cwd: str | None = None,
) -> RuntimePaths:
    """Resolve data root, runtime root, venv and interpreter paths.

    ``APP_DATA_DIR`` wins over ``DATA_DIR``; with neither set the data
    root is ``<cwd>/data``. Never raises.
    """
    profile = get_platform_profile(platform)
    data_root = profile.path_type(resolve_data_root(env, platform, cwd=cwd))
    runtime_root = data_root / RUNTIME_DIR_NAME
    venv_path = runtime_root / VENV_DIR_NAME
    python_path = venv_path / profile.bin_dir / f"python{profile.exe_suffix}"
    return RuntimePaths(
        data_root=str(data_root),
        runtime_root=str(runtime_root),
        venv_path=str(venv_path),
        python_path=str(python_path),
    )


def bootstrap_candidates(env: Mapping[str, str], platform: str | None = None) -> list[str]:
    """Interpreters to try when creating the venv, in order."""
    profile = get_platform_profile(platform)
    first, *rest = profile.bootstrap_fallbacks
    override = (env.get("PYTHON_BOOTSTRAP_COMMAND") or "").strip()
    candidates = [override or first, *rest]
    seen: list[str] = []
    for candidate in candidates:
        if candidate and candidate not in seen:
            seen.append(candidate)
    return seen
