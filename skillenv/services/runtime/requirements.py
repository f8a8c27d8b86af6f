"""Requirement validation and package name canonicalization.

Only ``name``, optional ``[extras]`` and an optional PEP 440 specifier list
are accepted. Anything that could make pip reach outside the configured
indexes (VCS or URL references, local paths, option flags) or that carries
shell metacharacters is rejected before a subprocess is spawned.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from skillenv.enums import RuntimeErrorCode
from skillenv.errors import PythonRuntimeError

MAX_REQUIREMENT_LENGTH = 512

_PACKAGE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_SPECIFIER = r"(?:===|==|!=|~=|>=|<=|>|<) *[A-Za-z0-9.*+!_-]+"
_REQUIREMENT_RE = re.compile(
    r"^(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)"
    r"(?P<extras>\[[A-Za-z0-9,._-]+\])?"
    rf"(?P<spec> *{_SPECIFIER}(?: *, *{_SPECIFIER})*)?$"
)

_VCS_PREFIXES = ("git+", "hg+", "svn+", "bzr+")
_SHELL_METACHARACTERS = frozenset(";&|$`()<>{}'\"\\\n\r\t*?!#%^")


@dataclass(frozen=True)
class ParsedRequirement:
    raw: str
    package_name: str


def canonicalize(name: str) -> str:
    """PEP 503 name folding; idempotent."""
    return canonicalize_name(name.strip())


def _unsafe(raw: str, reason: str) -> PythonRuntimeError:
    return PythonRuntimeError(
        f"Unsafe requirement {raw!r}: {reason}",
        code=RuntimeErrorCode.UNSAFE_REQUIREMENT,
        status_code=400,
        details={"requirement": raw, "reason": reason},
    )


def _has_shell_metacharacters(raw: str) -> bool:
    # Comparison operators and wildcard versions are legal inside the
    # specifier; check only the name/extras part for < > * !.
    match = re.match(r"^[^<>=!~]*", raw)
    head = match.group(0) if match else raw
    tail = raw[len(head):]
    if any(ch in _SHELL_METACHARACTERS for ch in head):
        return True
    return any(ch in _SHELL_METACHARACTERS - frozenset("<>*!") for ch in tail)


def parse_requirement(value: str) -> ParsedRequirement:
    """Validate one requirement string and extract its canonical name.

    The raw string is kept as given (trimmed). Raises ``PythonRuntimeError``
    with ``PYTHON_RUNTIME_UNSAFE_REQUIREMENT``.
    """
    raw = (value or "").strip()
    if not raw:
        raise _unsafe(raw, "empty requirement")
    if len(raw) > MAX_REQUIREMENT_LENGTH:
        raise _unsafe(raw, "requirement too long")

    lower = raw.lower()
    if raw.startswith("-"):
        raise _unsafe(raw, "pip options are not allowed")
    if any(prefix in lower for prefix in _VCS_PREFIXES):
        raise _unsafe(raw, "VCS references are not allowed")
    if "://" in raw or lower.startswith("file:"):
        raise _unsafe(raw, "URL references are not allowed")
    if "/" in raw or "\\" in raw:
        raise _unsafe(raw, "path references are not allowed")
    if "@" in raw:
        raise _unsafe(raw, "direct references are not allowed")
    if ";" in raw:
        raise _unsafe(raw, "environment markers are not allowed")
    if _has_shell_metacharacters(raw):
        raise _unsafe(raw, "shell metacharacters are not allowed")

    match = _REQUIREMENT_RE.match(raw)
    if match is None:
        raise _unsafe(raw, "expected a package name with an optional version specifier")

    try:
        parsed = Requirement(raw)
    except InvalidRequirement as e:
        raise _unsafe(raw, f"invalid requirement: {e}") from e
    if parsed.url is not None or parsed.marker is not None:
        raise _unsafe(raw, "direct references are not allowed")

    return ParsedRequirement(raw=raw, package_name=canonicalize(match.group("name")))


def parse_requirement_safe(value: str) -> ParsedRequirement | None:
    try:
        return parse_requirement(value)
    except PythonRuntimeError:
        return None


def parse_requirements(requirements: Iterable[str]) -> list[ParsedRequirement]:
    """Validate a batch; the first unsafe entry fails the whole batch.

    Duplicate raw strings are dropped, first-seen order is kept.
    """
    entries: list[ParsedRequirement] = []
    seen: set[str] = set()
    for item in requirements:
        parsed = parse_requirement(item)
        if parsed.raw in seen:
            continue
        seen.add(parsed.raw)
        entries.append(parsed)
    return entries


def validate(requirements: Iterable[str]) -> list[str]:
    """Return the canonical names of *requirements* or raise on any unsafe one."""
    names: list[str] = []
    for entry in parse_requirements(requirements):
        if entry.package_name not in names:
            names.append(entry.package_name)
    return names


def validate_package_name(value: str) -> str | None:
    name = (value or "").strip()
    if not name or not _PACKAGE_NAME_RE.match(name):
        return None
    return canonicalize(name)


def normalize_package_list(items: Iterable[object] | None, limit: int = 512) -> list[str]:
    """Canonicalize, drop invalid names, dedupe, cap and sort."""
    if items is None:
        return []
    names: set[str] = set()
    for item in items:
        if not isinstance(item, str):
            continue
        name = validate_package_name(item)
        if name is None:
            continue
        names.add(name)
        if len(names) >= limit:
            break
    return sorted(names)
