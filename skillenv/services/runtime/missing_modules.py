"""Extract installable requirements from ``No module named ...`` errors."""

from __future__ import annotations

import re

from skillenv.services.runtime.requirements import parse_requirement_safe

_MISSING_MODULE_RE = re.compile(r"No module named\s+['\"]?([^'\"\s]+)", flags=re.IGNORECASE)
_MODULE_TOKEN_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")

# Import roots whose distribution name differs. Keys are lower-case.
IMPORT_PACKAGE_ALIASES: dict[str, str] = {
    "cv2": "opencv-python",
    "yaml": "pyyaml",
    "dateutil": "python-dateutil",
    "bs4": "beautifulsoup4",
    "sklearn": "scikit-learn",
    "skimage": "scikit-image",
    "pil": "pillow",
    "crypto": "pycryptodome",
    "docx": "python-docx",
    "pptx": "python-pptx",
    "dotenv": "python-dotenv",
    "fitz": "pymupdf",
    "serial": "pyserial",
    "jwt": "pyjwt",
    "magic": "python-magic",
    "attr": "attrs",
}


def module_to_requirement(module_name: str) -> str | None:
    """Map an import path to a distribution name.

    Only the top-level segment is used; unknown names keep their spelling
    with underscores replaced by hyphens.
    """
    name = (module_name or "").strip().rstrip(".,;:")
    if not name or not _MODULE_TOKEN_RE.match(name):
        return None
    root = name.split(".", 1)[0]
    if not root:
        return None
    mapped = IMPORT_PACKAGE_ALIASES.get(root.lower())
    if mapped is None:
        mapped = root.replace("_", "-")
    return mapped


def parse_missing_requirements_from_output(text: str) -> list[str]:
    """Requirements for every missing module mentioned in *text*.

    Deduplicated, first-seen order, and only names that pass requirement
    validation.
    """
    found: list[str] = []
    for match in _MISSING_MODULE_RE.finditer(text or ""):
        requirement = module_to_requirement(match.group(1))
        if requirement is None or requirement in found:
            continue
        if parse_requirement_safe(requirement) is None:
            continue
        found.append(requirement)
    return found
