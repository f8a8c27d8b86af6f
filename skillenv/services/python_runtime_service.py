"""Shared Python runtime service.

Owns the single managed venv that every skill runs in: installs and
uninstalls packages, keeps the package ledger in step, plans cleanup after
a skill is removed, reconciles missing dependencies and reports status.

Install, uninstall and reconcile are serialized per data root. Analysis
and cleanup previews take no lock; status takes it only to create or
repair the venv.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Mapping

from skillenv.config import RuntimeConfig
from skillenv.dao.settings_dao import SettingsDAO
from skillenv.dao.skill_dao import SkillDAO
from skillenv.enums import InstallSource, PackageSource, RuntimeErrorCode
from skillenv.errors import DEGRADED_RUNTIME_CODES, PythonRuntimeError
from skillenv.models.domain import (
    CleanupPlan,
    CleanupResult,
    Conflict,
    DependencyItem,
    InstalledPackage,
    InstallResult,
    PackageSourceEntry,
    ReconcileResult,
    RuntimeIndexes,
    RuntimeIssue,
    RuntimePaths,
    RuntimeStatus,
    UninstallResult,
)
from skillenv.observability.redaction import redact_text, sanitize
from skillenv.services.runtime.cleanup import build_cleanup_plan, candidate_packages
from skillenv.services.runtime.command_runner import (
    CommandResult,
    CommandRunner,
    SubprocessCommandRunner,
)
from skillenv.services.runtime.dependencies import DependencyCollector, analyze_conflicts
from skillenv.services.runtime.indexes import IndexSettings, build_index_args
from skillenv.services.runtime.ledger import PackageLedger
from skillenv.services.runtime.missing_modules import parse_missing_requirements_from_output
from skillenv.services.runtime.paths import resolve_paths
from skillenv.services.runtime.requirements import (
    canonicalize,
    parse_requirements,
    validate_package_name,
)
from skillenv.services.runtime.venv import VenvManager

logger = logging.getLogger(__name__)

PIP_INSTALL_ARGS = ["-m", "pip", "install", "--disable-pip-version-check", "--no-input"]

_RUNTIME_LOCKS: dict[str, asyncio.Lock] = {}


def get_runtime_lock(data_root: str) -> asyncio.Lock:
    """Process-wide lock for the venv under *data_root*."""
    lock = _RUNTIME_LOCKS.get(data_root)
    if lock is None:
        lock = asyncio.Lock()
        _RUNTIME_LOCKS[data_root] = lock
    return lock


class PythonRuntimeService:
    """Install orchestration, cleanup, reconcile and status for the shared venv.

    Args:
        config: Runtime configuration (timeouts, repair budget).
        settings: Settings store backing the ledger and index config.
        skills: Skill catalog, read for active dependencies.
        runner: Subprocess capability. Defaults to ``SubprocessCommandRunner``.
        env: Environment used for path resolution. Defaults to ``os.environ``.
        platform: Platform name. Defaults to ``sys.platform``.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        settings: SettingsDAO,
        skills: SkillDAO,
        runner: CommandRunner | None = None,
        *,
        env: Mapping[str, str] | None = None,
        platform: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.env = env if env is not None else os.environ
        self.platform = platform or sys.platform
        self.runner = runner or SubprocessCommandRunner(output_limit=config.output_limit_chars)
        self.ledger = PackageLedger(settings)
        self.index_settings = IndexSettings(settings)
        self.collector = DependencyCollector(skills)
        self.venv = VenvManager(
            self.runner,
            env=self.env,
            platform=self.platform,
            operation_timeout_seconds=config.operation_timeout_seconds,
            repair_attempts=config.pip_repair_attempts,
            repair_backoff_seconds=config.repair_backoff_seconds,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Paths / runtime health
    # ------------------------------------------------------------------

    def resolve_paths(self) -> RuntimePaths:
        return resolve_paths(self.env, self.platform)

    def _lock(self) -> asyncio.Lock:
        return get_runtime_lock(self.resolve_paths().data_root)

    async def ensure_managed_runtime(self) -> RuntimePaths:
        """Create/repair the venv until pip works, or raise a degraded code."""
        return await self.venv.ensure(self.resolve_paths())

    async def get_managed_python_path(self) -> str:
        paths = await self.ensure_managed_runtime()
        return paths.python_path

    async def _pip(self, paths: RuntimePaths, args: list[str]) -> CommandResult:
        return await asyncio.to_thread(
            self.runner.run,
            paths.python_path,
            args,
            timeout_seconds=self.config.pip_timeout_seconds,
        )

    async def list_installed_packages(self, paths: RuntimePaths | None = None) -> list[InstalledPackage]:
        """``pip list --format=json`` snapshot sorted by name."""
        if paths is None:
            paths = await self.ensure_managed_runtime()
        result = await self._pip(paths, ["-m", "pip", "list", "--format=json"])
        if not result.ok:
            raise PythonRuntimeError(
                f"Failed to list installed packages: {redact_text(result.stderr) or 'unknown error'}",
                code=RuntimeErrorCode.LIST_PACKAGES_FAILED,
                status_code=500,
            )

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            logger.warning("pip list returned unparseable output")
            return []
        if not isinstance(data, list):
            return []

        packages = [
            InstalledPackage(name=item["name"], version=str(item.get("version") or ""))
            for item in data
            if isinstance(item, dict) and isinstance(item.get("name"), str) and item["name"]
        ]
        return sorted(packages, key=lambda p: p.name.lower())

    async def run_pip_check(self, paths: RuntimePaths) -> tuple[bool, str]:
        result = await self._pip(paths, ["-m", "pip", "check"])
        output = f"{result.stdout}\n{result.stderr}".strip()
        return result.ok, redact_text(output, max_chars=0)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_indexes(self) -> RuntimeIndexes:
        return await self.index_settings.get()

    async def update_indexes(self, **fields: Any) -> RuntimeIndexes:
        indexes = await self.index_settings.update(**fields)
        logger.info(
            "Updated package indexes: index_url=%s extra=%d trusted_hosts=%d",
            redact_text(indexes.index_url or "-"),
            len(indexes.extra_index_urls),
            len(indexes.trusted_hosts),
        )
        return indexes

    async def get_auto_install_on_missing(self) -> bool:
        return (await self.get_indexes()).auto_install_on_missing

    async def get_manual_packages(self) -> list[str]:
        return await self.ledger.get_manual_packages()

    async def get_python_auto_packages(self) -> list[str]:
        return await self.ledger.get_python_auto_packages()

    async def get_skill_auto_packages(self) -> list[str]:
        return await self.ledger.get_skill_auto_packages()

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    async def collect_active_dependencies(self) -> list[DependencyItem]:
        return await self.collector.collect_active_dependencies()

    @staticmethod
    def analyze_conflicts(dependencies: list[DependencyItem]) -> list[Conflict]:
        return analyze_conflicts(dependencies)

    @staticmethod
    def parse_missing_requirements_from_output(text: str) -> list[str]:
        return parse_missing_requirements_from_output(text)

    # ------------------------------------------------------------------
    # Install / uninstall
    # ------------------------------------------------------------------

    async def _pip_install(self, paths: RuntimePaths, requirements: list[str], *, stage: str) -> CommandResult:
        indexes = await self.get_indexes()
        args = [*PIP_INSTALL_ARGS, *build_index_args(indexes), *requirements]
        try:
            result = await self._pip(paths, args)
        except PythonRuntimeError as e:
            if e.code != RuntimeErrorCode.TIMEOUT:
                raise
            raise PythonRuntimeError(
                f"pip install timed out after {self.config.pip_timeout_seconds}s",
                code=RuntimeErrorCode.INSTALL_FAILED,
                status_code=500,
                details={"stage": stage, "requirements": requirements, "timeout": True},
            ) from e

        if not result.ok:
            raise PythonRuntimeError(
                f"pip install failed: {redact_text(result.stderr or result.stdout) or 'unknown error'}",
                code=RuntimeErrorCode.INSTALL_FAILED,
                status_code=500,
                details=sanitize(
                    {
                        "stage": stage,
                        "requirements": requirements,
                        "exitCode": result.exit_code,
                        "stdout": result.stdout,
                        "stderr": result.stderr,
                    },
                    max_chars=0,
                ),
            )
        return result

    async def install_requirements(
        self,
        requirements: list[str],
        source: InstallSource = InstallSource.MANUAL,
        *,
        skill_id: int | None = None,
        version_id: int | None = None,
    ) -> InstallResult:
        """Validate, install and record *requirements*.

        Validation runs before anything else; an unsafe entry rejects the
        whole batch. The ledger is only updated after pip succeeds.
        """
        if not requirements:
            raise PythonRuntimeError(
                "At least one requirement is required",
                code=RuntimeErrorCode.EMPTY_REQUIREMENTS,
                status_code=400,
            )
        entries = parse_requirements(requirements)
        raws = [e.raw for e in entries]
        package_names = list(dict.fromkeys(e.package_name for e in entries))

        async with self._lock():
            paths = await self.ensure_managed_runtime()
            result = await self._pip_install(paths, raws, stage="install")
            await self.ledger.add(source, package_names)
            logger.info(
                "Installed %s (source=%s, skill_id=%s, version_id=%s, %sms)",
                ", ".join(raws),
                source.value,
                skill_id,
                version_id,
                result.duration_ms,
            )
            passed, output = await self.run_pip_check(paths)
            if not passed:
                logger.warning("pip check reported problems after install: %s", redact_text(output))
            installed = await self.list_installed_packages(paths)

        return InstallResult(
            source=source,
            requirements=raws,
            package_names=package_names,
            pip_check_passed=passed,
            pip_check_output=output,
            installed_packages=installed,
        )

    async def install_for_skill_activation(
        self,
        skill_id: int,
        version_id: int,
        requirements: list[str],
    ) -> InstallResult | None:
        """Install a newly activated version's manifest requirements.

        Returns ``None`` when auto-install on activation is off or the
        manifest declares nothing.
        """
        cleaned = [r.strip() for r in requirements if isinstance(r, str) and r.strip()]
        if not cleaned:
            return None
        if not (await self.get_indexes()).auto_install_on_activate:
            logger.info("Auto-install on activation disabled; skipping skill %s", skill_id)
            return None
        return await self.install_requirements(
            cleaned, InstallSource.SKILL, skill_id=skill_id, version_id=version_id
        )

    async def uninstall_packages(self, packages: list[str]) -> UninstallResult:
        """Uninstall *packages* unless any of them is still required.

        A single in-use name rejects the whole batch before pip runs.
        """
        if not packages:
            raise PythonRuntimeError(
                "At least one package name is required",
                code=RuntimeErrorCode.EMPTY_PACKAGES,
                status_code=400,
            )
        names: list[str] = []
        for package in packages:
            name = validate_package_name(package) if isinstance(package, str) else None
            if name and name not in names:
                names.append(name)
        if not names:
            raise PythonRuntimeError(
                "No valid package name given",
                code=RuntimeErrorCode.INVALID_PACKAGE_NAME,
                status_code=400,
                details={"packages": [str(p) for p in packages]},
            )

        async with self._lock():
            dependencies = await self.collect_active_dependencies()
            blocked = [d for d in dependencies if d.package_name in names]
            if blocked:
                raise PythonRuntimeError(
                    "Packages are required by active skills and cannot be uninstalled",
                    code=RuntimeErrorCode.PACKAGE_IN_USE,
                    status_code=409,
                    details={
                        "packages": sorted({d.package_name for d in blocked}),
                        "blocked": [d.to_dict(by_alias=True) for d in blocked],
                    },
                )

            paths = await self.ensure_managed_runtime()
            try:
                result = await self._pip(paths, ["-m", "pip", "uninstall", "-y", *names])
            except PythonRuntimeError as e:
                if e.code != RuntimeErrorCode.TIMEOUT:
                    raise
                raise PythonRuntimeError(
                    f"pip uninstall timed out after {self.config.pip_timeout_seconds}s",
                    code=RuntimeErrorCode.UNINSTALL_FAILED,
                    status_code=500,
                    details={"packages": names, "timeout": True},
                ) from e
            if not result.ok:
                raise PythonRuntimeError(
                    f"pip uninstall failed: {redact_text(result.stderr or result.stdout) or 'unknown error'}",
                    code=RuntimeErrorCode.UNINSTALL_FAILED,
                    status_code=500,
                    details={"packages": names},
                )

            await self.ledger.discard_everywhere(names)
            logger.info("Uninstalled %s (%sms)", ", ".join(names), result.duration_ms)
            passed, output = await self.run_pip_check(paths)
            installed = await self.list_installed_packages(paths)

        return UninstallResult(
            packages=names,
            pip_check_passed=passed,
            pip_check_output=output,
            installed_packages=installed,
        )

    # ------------------------------------------------------------------
    # Cleanup after skill removal
    # ------------------------------------------------------------------

    async def preview_cleanup_after_skill_removal(
        self,
        removed_requirements: list[str],
        exclude_skill_ids: Iterable[int] | None = None,
    ) -> CleanupPlan:
        """Read-only plan of what removing these requirements would free."""
        if not candidate_packages(removed_requirements):
            return CleanupPlan()
        dependencies = await self.collect_active_dependencies()
        manual = await self.get_manual_packages()
        return build_cleanup_plan(
            removed_requirements,
            dependencies,
            manual,
            exclude_skill_ids=exclude_skill_ids,
        )

    async def cleanup_packages_after_skill_removal(
        self,
        removed_requirements: list[str],
        exclude_skill_ids: Iterable[int] | None = None,
    ) -> CleanupResult:
        plan = await self.preview_cleanup_after_skill_removal(removed_requirements, exclude_skill_ids)
        removed: list[str] = []
        if plan.removable_packages:
            result = await self.uninstall_packages(list(plan.removable_packages))
            removed = result.packages
        return CleanupResult(**plan.model_dump(by_alias=False, mode="python"), removed_packages=removed)

    # ------------------------------------------------------------------
    # Reconcile / status
    # ------------------------------------------------------------------

    async def reconcile(self) -> ReconcileResult:
        """Install whatever active skills or the auto ledgers expect but is missing.

        Never removes packages or ledger entries.
        """
        async with self._lock():
            paths = await self.ensure_managed_runtime()
            dependencies = await self.collect_active_dependencies()
            conflicts = analyze_conflicts(dependencies)
            auto_names = [
                *(await self.get_python_auto_packages()),
                *(await self.get_skill_auto_packages()),
            ]
            installed = await self.list_installed_packages(paths)
            installed_names = {canonicalize(p.name) for p in installed}

            wanted: list[str] = []
            for item in dependencies:
                if item.package_name not in installed_names and item.requirement not in wanted:
                    wanted.append(item.requirement)
            for name in auto_names:
                if name not in installed_names and name not in wanted:
                    wanted.append(name)

            requirements = [e.raw for e in parse_requirements(wanted)]
            if requirements:
                result = await self._pip_install(paths, requirements, stage="reconcile")
                logger.info(
                    "Reconciled runtime: installed %s (%sms)",
                    ", ".join(requirements),
                    result.duration_ms,
                )

            passed, output = await self.run_pip_check(paths)
            if requirements:
                installed = await self.list_installed_packages(paths)

        return ReconcileResult(
            requirements=requirements,
            pip_check_passed=passed,
            pip_check_output=output,
            installed_packages=installed,
            conflicts=conflicts,
        )

    @staticmethod
    def _package_sources(
        installed: list[InstalledPackage],
        manual: list[str],
        dependencies: list[DependencyItem],
        skill_auto: list[str],
        python_auto: list[str],
    ) -> list[PackageSourceEntry]:
        lookups = [
            (PackageSource.MANUAL, set(manual)),
            (PackageSource.SKILL_MANIFEST, {d.package_name for d in dependencies}),
            (PackageSource.SKILL_AUTO, set(skill_auto)),
            (PackageSource.PYTHON_AUTO, set(python_auto)),
        ]
        entries: list[PackageSourceEntry] = []
        for package in installed:
            name = canonicalize(package.name)
            entries.append(
                PackageSourceEntry(
                    name=package.name,
                    sources=[source for source, names in lookups if name in names],
                )
            )
        return entries

    async def _ensure_for_status(self, paths: RuntimePaths) -> None:
        """Probe pip without the lock; create or repair only while holding it.

        A repair recreates the venv, so it must not overlap a running install.
        """
        if Path(paths.python_path).exists() and (await self.venv.probe_pip(paths)).ok:
            return
        async with self._lock():
            await self.ensure_managed_runtime()

    async def get_runtime_status(self) -> RuntimeStatus:
        """Full runtime view. Never raises for a broken venv.

        When the venv cannot be brought up the status is degraded: not
        ready, with the issue attached and no installed packages listed.
        """
        paths = self.resolve_paths()
        indexes = await self.get_indexes()
        manual = await self.get_manual_packages()
        python_auto = await self.get_python_auto_packages()
        skill_auto = await self.get_skill_auto_packages()
        dependencies = await self.collect_active_dependencies()
        conflicts = analyze_conflicts(dependencies)

        status = RuntimeStatus(
            data_root=paths.data_root,
            runtime_root=paths.runtime_root,
            venv_path=paths.venv_path,
            python_path=paths.python_path,
            ready=False,
            indexes=indexes,
            manual_packages=manual,
            python_auto_packages=python_auto,
            skill_auto_packages=skill_auto,
            active_dependencies=dependencies,
            conflicts=conflicts,
        )

        try:
            await self._ensure_for_status(paths)
        except PythonRuntimeError as e:
            if e.code not in DEGRADED_RUNTIME_CODES:
                raise
            logger.warning(
                "Python runtime degraded (%s): %s [python=%s]",
                e.code,
                redact_text(e.message),
                paths.python_path,
            )
            status.runtime_issue = RuntimeIssue(code=str(e.code), message=e.message, details=e.details)
            return status

        installed = await self.list_installed_packages(paths)
        status.ready = True
        status.installed_packages = installed
        status.package_sources = self._package_sources(
            installed, manual, dependencies, skill_auto, python_auto
        )
        return status
