"""
Runtime settings for connectors.

Settings are loaded from ``.connectors/connectors.toml`` by default. The lookup order is:

1. Explicit ``SAAS_CONNECTORS_CONFIG_PATH`` environment variable.
2. Project-relative ``.connectors/connectors.toml`` (both from CWD and the project root).
3. Project-relative ``.connectors/settings.toml``.

A settings file looks like::

    [defaults]
    timeout = 30
    max_concurrency = 2

    [providers.hubspot]
    page_size = 50
    headers = { "X-Trace" = "on" }

Call :func:`load_settings` to retrieve a :class:`SettingsBundle` and
:meth:`SettingsBundle.for_provider` to obtain the merged settings of one
provider. Credentials never live here; the caller's ``httpx.Client`` carries them.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from .core.errors import ConnectorError, ErrorTag

ENV_CONFIG_PATH = "SAAS_CONNECTORS_CONFIG_PATH"


class SettingsError(ConnectorError):
    """Raised when a settings file holds values of the wrong type."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorTag.PARSE_ERROR, message)


@dataclass(slots=True)
class ProviderSettings:
    """
    Overrides applied when a connector is constructed.

    Every attribute is optional; ``None`` keeps the adapter default.

    Parameters
    ----------
    base_url:
        Replaces the catalogue base URL (e.g. a sandbox host).
    page_size:
        Default page size when a read does not request one.
    timeout:
        Request timeout in seconds.
    max_concurrency:
        Worker limit for parallel fan-out (metadata, record resolution).
    retry_attempts:
        Total attempts on transport failures; ``1`` disables retries.
    headers:
        Extra headers attached to every request.
    """

    base_url: Optional[str] = None
    page_size: Optional[int] = None
    timeout: Optional[float] = None
    max_concurrency: Optional[int] = None
    retry_attempts: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def merged_over(self, base: "ProviderSettings") -> "ProviderSettings":
        """Return a copy where values set on ``self`` win over ``base``."""

        headers = dict(base.headers)
        headers.update(self.headers)
        return ProviderSettings(
            base_url=self.base_url if self.base_url is not None else base.base_url,
            page_size=self.page_size if self.page_size is not None else base.page_size,
            timeout=self.timeout if self.timeout is not None else base.timeout,
            max_concurrency=self.max_concurrency if self.max_concurrency is not None else base.max_concurrency,
            retry_attempts=self.retry_attempts if self.retry_attempts is not None else base.retry_attempts,
            headers=headers,
        )


@dataclass(slots=True)
class SettingsBundle:
    """Lightweight container for parsed settings."""

    source_path: Optional[Path]
    data: Dict[str, Any]
    defaults: ProviderSettings = field(default_factory=ProviderSettings)
    providers: Dict[str, ProviderSettings] = field(default_factory=dict)

    def for_provider(self, provider_id: str) -> ProviderSettings:
        specific = self.providers.get(provider_id.lower())
        if specific is None:
            return self.defaults.merged_over(ProviderSettings())
        return specific.merged_over(self.defaults)


def _discover_project_root() -> Optional[Path]:
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").is_file():
            return parent
    return None


def _candidate_paths() -> Iterable[Path]:
    env_override = os.getenv(ENV_CONFIG_PATH)
    if env_override:
        yield Path(env_override).expanduser()

    project_root = _discover_project_root()
    search_roots = [Path.cwd()]
    if project_root and project_root not in search_roots:
        search_roots.append(project_root)

    seen: set[Path] = set()
    for base in search_roots:
        for filename in ("connectors.toml", "settings.toml"):
            candidate = base / ".connectors" / filename
            if candidate not in seen:
                seen.add(candidate)
                yield candidate


def _load_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise SettingsError(f"Failed to parse '{path}': {exc}") from exc


def _optional_number(section: Mapping[str, Any], key: str, kind: type, origin: str) -> Any:
    value = section.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SettingsError(f"'{key}' in {origin} must be a number, got {value!r}")
    if kind is int:
        if isinstance(value, float) and not value.is_integer():
            raise SettingsError(f"'{key}' in {origin} must be an integer, got {value!r}")
        value = int(value)
        if value < 1:
            raise SettingsError(f"'{key}' in {origin} must be at least 1, got {value!r}")
        return value
    if value <= 0:
        raise SettingsError(f"'{key}' in {origin} must be positive, got {value!r}")
    return float(value)


def _extract_provider_settings(section: Any, origin: str) -> ProviderSettings:
    if not isinstance(section, dict):
        raise SettingsError(f"{origin} must be a table")

    base_url = section.get("base_url")
    if base_url is not None and not isinstance(base_url, str):
        raise SettingsError(f"'base_url' in {origin} must be a string")

    headers = section.get("headers") or {}
    if not isinstance(headers, dict):
        raise SettingsError(f"'headers' in {origin} must be a table")

    return ProviderSettings(
        base_url=base_url or None,
        page_size=_optional_number(section, "page_size", int, origin),
        timeout=_optional_number(section, "timeout", float, origin),
        max_concurrency=_optional_number(section, "max_concurrency", int, origin),
        retry_attempts=_optional_number(section, "retry_attempts", int, origin),
        headers={str(key): str(value) for key, value in headers.items()},
    )


def parse_settings(data: Dict[str, Any], source_path: Optional[Path] = None) -> SettingsBundle:
    """Build a :class:`SettingsBundle` from an already parsed TOML document."""

    defaults = _extract_provider_settings(data.get("defaults", {}), "[defaults]")
    providers_section = data.get("providers", {})
    if not isinstance(providers_section, dict):
        raise SettingsError("[providers] must be a table")
    providers = {
        str(name).lower(): _extract_provider_settings(section, f"[providers.{name}]")
        for name, section in providers_section.items()
    }
    return SettingsBundle(source_path=source_path, data=data, defaults=defaults, providers=providers)


def load_settings(strict: bool = False) -> SettingsBundle:
    """
    Attempt to load settings from the configured locations.

    Parameters
    ----------
    strict:
        When ``True`` the function raises ``FileNotFoundError`` if no settings file is
        discovered. Defaults to ``False`` so connectors work without any configuration.
    """

    for path in _candidate_paths():
        if path.is_file():
            return parse_settings(_load_toml(path), source_path=path)

    if strict:
        raise FileNotFoundError(f"No settings file found. Configure {ENV_CONFIG_PATH} or .connectors/connectors.toml.")

    return SettingsBundle(source_path=None, data={})
