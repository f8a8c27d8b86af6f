"""Package index configuration stored in the settings store."""

from __future__ import annotations

import json
import re

from skillenv.dao.settings_dao import SettingsDAO
from skillenv.enums import RuntimeErrorCode
from skillenv.errors import PythonRuntimeError
from skillenv.models.domain import RuntimeIndexes
from skillenv.services.runtime.ledger import parse_json_list

INDEX_URL_KEY = "python_runtime_index_url"
EXTRA_INDEX_URLS_KEY = "python_runtime_extra_index_urls"
TRUSTED_HOSTS_KEY = "python_runtime_trusted_hosts"
AUTO_INSTALL_ON_ACTIVATE_KEY = "python_runtime_auto_install_on_activate"
AUTO_INSTALL_ON_MISSING_KEY = "python_runtime_auto_install_on_missing"

INDEX_KEYS = (
    INDEX_URL_KEY,
    EXTRA_INDEX_URLS_KEY,
    TRUSTED_HOSTS_KEY,
    AUTO_INSTALL_ON_ACTIVATE_KEY,
    AUTO_INSTALL_ON_MISSING_KEY,
)

INDEX_LIST_LIMIT = 32
MAX_VALUE_LENGTH = 512

_HTTP_URL_RE = re.compile(r"^https?://[^\s]+$", flags=re.IGNORECASE)
_HOST_RE = re.compile(r"^[A-Za-z0-9.\-:\[\]]+$")


def _invalid(message: str, value: str | None = None) -> PythonRuntimeError:
    return PythonRuntimeError(
        message,
        code=RuntimeErrorCode.INVALID_INDEX,
        status_code=400,
        details={"value": value} if value is not None else None,
    )


def _clean(value: str | None) -> str:
    text = (value or "").strip()
    if len(text) > MAX_VALUE_LENGTH:
        raise _invalid(f"Value too long (max {MAX_VALUE_LENGTH} characters)")
    return text


def normalize_index_url(value: str | None) -> str | None:
    text = _clean(value)
    if not text:
        return None
    if not _HTTP_URL_RE.match(text):
        raise _invalid("Index URL must start with http:// or https://", text)
    return text


def normalize_trusted_host(value: str | None) -> str | None:
    text = _clean(value)
    if not text:
        return None
    if not _HOST_RE.match(text):
        raise _invalid("Trusted host must be a bare host name", text)
    return text


def _dedupe(values: list[str]) -> list[str]:
    out: list[str] = []
    for value in values:
        if value not in out:
            out.append(value)
        if len(out) >= INDEX_LIST_LIMIT:
            break
    return out


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


def build_index_args(indexes: RuntimeIndexes) -> list[str]:
    """pip arguments selecting the configured indexes."""
    args: list[str] = []
    if indexes.index_url:
        args += ["--index-url", indexes.index_url]
    for url in indexes.extra_index_urls:
        args += ["--extra-index-url", url]
    for host in indexes.trusted_hosts:
        args += ["--trusted-host", host]
    return args


class IndexSettings:
    def __init__(self, settings: SettingsDAO):
        self.settings = settings

    async def get(self) -> RuntimeIndexes:
        values = await self.settings.get_many(INDEX_KEYS)

        index_url = (values.get(INDEX_URL_KEY) or "").strip() or None
        extra = [
            u.strip()
            for u in parse_json_list(values.get(EXTRA_INDEX_URLS_KEY))
            if isinstance(u, str) and u.strip()
        ]
        hosts = [
            h.strip()
            for h in parse_json_list(values.get(TRUSTED_HOSTS_KEY))
            if isinstance(h, str) and h.strip()
        ]
        return RuntimeIndexes(
            index_url=index_url,
            extra_index_urls=_dedupe(extra),
            trusted_hosts=_dedupe(hosts),
            auto_install_on_activate=_parse_bool(values.get(AUTO_INSTALL_ON_ACTIVATE_KEY), True),
            auto_install_on_missing=_parse_bool(values.get(AUTO_INSTALL_ON_MISSING_KEY), True),
        )

    async def update(
        self,
        *,
        index_url: str | None = None,
        extra_index_urls: list[str] | None = None,
        trusted_hosts: list[str] | None = None,
        auto_install_on_activate: bool | None = None,
        auto_install_on_missing: bool | None = None,
    ) -> RuntimeIndexes:
        """Write only the provided fields. Everything is validated first.

        An empty ``index_url`` clears it.
        """

        writes: dict[str, str] = {}
        if index_url is not None:
            writes[INDEX_URL_KEY] = normalize_index_url(index_url) or ""
        if extra_index_urls is not None:
            urls = [normalize_index_url(u) for u in extra_index_urls]
            writes[EXTRA_INDEX_URLS_KEY] = json.dumps(_dedupe([u for u in urls if u]))
        if trusted_hosts is not None:
            hosts = [normalize_trusted_host(h) for h in trusted_hosts]
            writes[TRUSTED_HOSTS_KEY] = json.dumps(_dedupe([h for h in hosts if h]))
        if auto_install_on_activate is not None:
            writes[AUTO_INSTALL_ON_ACTIVATE_KEY] = "true" if auto_install_on_activate else "false"
        if auto_install_on_missing is not None:
            writes[AUTO_INSTALL_ON_MISSING_KEY] = "true" if auto_install_on_missing else "false"

        for key, value in writes.items():
            await self.settings.set(key, value)
        return await self.get()
