"""Configuration with JSON file, config.yml overlay, and env variable support.

The managed runtime's data root is deliberately not part of this model: it is
read from the process environment by the path resolver so path resolution
stays a pure function of ``(env, platform)``.
"""

import json
import logging
import os
from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _find_repo_root(*, start: Path) -> Path:
    """Best-effort repository root discovery.

    Relative config paths are resolved against the repo root so the service
    can be launched from any working directory.

    Root detection is heuristic but stable:
    - first directory containing `pyproject.toml`
    - otherwise fall back to the current working directory
    """

    try:
        start = start.resolve()
        for p in [start, *start.parents]:
            if (p / "pyproject.toml").exists():
                return p
    except OSError:
        pass

    return Path.cwd()


class RuntimeConfig(BaseSettings):
    """Configuration with JSON file + config.yml + env var support.

    Load order (later overrides earlier):
    1. config.json - base configuration
    2. config.yml - repo-root overlay for non-secret settings
    3. Environment variables - runtime overrides

    Prefix: SKILLENV_ (e.g., SKILLENV_PIP_TIMEOUT_SECONDS)
    """

    model_config = SettingsConfigDict(
        env_prefix="SKILLENV_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database (settings store + skill catalog)
    database_url: str = Field(default="sqlite+aiosqlite:///./skillenv.db")
    auto_create_tables: bool = Field(
        default=True,
        description="If true, create tables on startup (use migrations in production)",
    )

    # Subprocess limits
    operation_timeout_seconds: float = Field(
        default=120,
        description="Timeout for venv creation and pip health probes",
    )
    pip_timeout_seconds: float = Field(
        default=240,
        description="Timeout for pip install/uninstall/list/check",
    )
    output_limit_chars: int = Field(
        default=200_000,
        description="Maximum characters captured per stdout/stderr stream",
    )

    # Venv repair
    pip_repair_attempts: int = Field(
        default=2,
        ge=0,
        description="Repair rounds (recreate venv, then ensurepip) before pip is declared unavailable",
    )
    repair_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Base delay for exponential backoff between repair rounds",
    )

    # Missing-module auto repair for script runs
    auto_install_max_rounds: int = Field(
        default=3,
        ge=0,
        description="Maximum install rounds when a script fails on a missing module",
    )
    script_timeout_seconds: float = Field(default=30)
    script_max_output_chars: int = Field(default=20_000)

    # API settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8750)

    @classmethod
    def from_json_file(cls, config_path: str = "config.json") -> "RuntimeConfig":
        """Load config from JSON + config.yml with env var overrides.

        Args:
            config_path: Path to JSON config file.

        Returns:
            Configured RuntimeConfig instance.
        """
        config_data: dict = {}

        json_path = Path(config_path)
        if json_path.exists():
            with open(json_path) as f:
                config_data = json.load(f)

        # Optional config.yml overlay (repo-root).
        # Precedence: config.json < config.yml < env
        repo_root = _find_repo_root(start=Path(__file__))
        cfg_yml = repo_root / "config.yml"
        if cfg_yml.is_file():
            try:
                with cfg_yml.open("r", encoding="utf-8") as f:
                    yml_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Ignoring unreadable config overlay %s: %s", cfg_yml, e)
                yml_data = {}
            if isinstance(yml_data, dict):
                config_data.update(yml_data)

        # Remove keys that are also set through the environment so env vars
        # win over file values.
        env_prefix = "SKILLENV_"
        for key in list(config_data):
            if f"{env_prefix}{key.upper()}" in os.environ:
                del config_data[key]

        return cls(**config_data)
