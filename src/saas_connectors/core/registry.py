"""
Provider catalogue declarations and helpers.

The catalogue is the authoritative list of SaaS providers the library can talk
to. Each entry captures human-authored metadata (status, documentation links)
and machine-usable properties (base URL templates per module, capability
flags, authentication scheme). Entries are maintained in YAML so the catalogue
stays approachable for non-developers while Python code gets typed access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Iterator, List, Mapping, MutableMapping, Optional, Sequence

import yaml

from .errors import ConnectorError, ErrorTag

WORKSPACE_PLACEHOLDER = "{{workspace}}"
DEFAULT_MODULE = "root"


class RegistryLoadError(ConnectorError):
    """Raised when a catalogue YAML file cannot be parsed or validated."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorTag.PARSE_ERROR, message)


class ProviderStatus(str, Enum):
    """Lifecycle state for individual providers."""

    ACTIVE = "active"
    BETA = "beta"
    DEPRECATED = "deprecated"


@dataclass(slots=True)
class ProviderDescriptor:
    """
    Metadata and capabilities associated with a single provider.

    Parameters
    ----------
    provider_id:
        Unique identifier used by :func:`saas_connectors.new_connector`.
    name:
        Human-friendly display name.
    base_url:
        Base URL template of the default module. ``{{workspace}}`` is replaced
        with the caller's workspace (tenant, instance or subdomain).
    modules:
        Additional API surfaces keyed by module name, each with its own base
        URL template.
    capabilities:
        Operations the adapter implements (``read``, ``write``, ``bulk``, ...).
    authentication:
        Credential scheme expected on the caller's client (``oauth2``, ``api-key``).
    status:
        Lifecycle status.
    docs:
        Developer documentation references.
    """

    provider_id: str
    name: str
    base_url: str
    modules: Mapping[str, str] = field(default_factory=dict)
    capabilities: Sequence[str] = field(default_factory=tuple)
    authentication: str = "oauth2"
    status: ProviderStatus = ProviderStatus.ACTIVE
    docs: Sequence[str] = field(default_factory=tuple)

    def validate(self) -> None:
        """Validate internal consistency of the descriptor."""

        if not self.provider_id or not self.provider_id.isidentifier():
            raise RegistryLoadError(f"Provider '{self.provider_id}' must be a valid identifier (letters, digits, underscore).")
        if not self.base_url.startswith(("http://", "https://")):
            raise RegistryLoadError(f"Provider '{self.provider_id}' base_url must be an absolute http(s) URL.")

    @property
    def requires_workspace(self) -> bool:
        return WORKSPACE_PLACEHOLDER in self.base_url or any(WORKSPACE_PLACEHOLDER in url for url in self.modules.values())

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    def resolve_base_url(self, module: str = "", workspace: str = "") -> str:
        """
        Return the concrete base URL for ``module``.

        Raises
        ------
        ConnectorError
            ``not-implemented`` for an unknown module, ``missing-expected-values``
            when the template needs a workspace and none was supplied.
        """

        if module and module != DEFAULT_MODULE:
            template = self.modules.get(module)
            if template is None:
                raise ConnectorError(ErrorTag.NOT_IMPLEMENTED, f"provider '{self.provider_id}' has no module '{module}'")
        else:
            template = self.base_url
        if WORKSPACE_PLACEHOLDER in template:
            if not workspace:
                raise ConnectorError(ErrorTag.MISSING_EXPECTED_VALUES, f"provider '{self.provider_id}' requires a workspace")
            template = template.replace(WORKSPACE_PLACEHOLDER, workspace)
        return template


class ProviderRegistry:
    """In-memory catalogue of :class:`ProviderDescriptor` entries."""

    def __init__(self) -> None:
        self._entries: MutableMapping[str, ProviderDescriptor] = {}

    def register(self, descriptor: ProviderDescriptor) -> None:
        """Register or overwrite a descriptor in the catalogue."""

        descriptor.validate()
        self._entries[descriptor.provider_id] = descriptor

    def get(self, provider_id: str) -> Optional[ProviderDescriptor]:
        return self._entries.get(provider_id.lower())

    def require(self, provider_id: str) -> ProviderDescriptor:
        """Retrieve a descriptor or raise ``not-implemented``."""

        descriptor = self.get(provider_id)
        if descriptor is None:
            raise ConnectorError(ErrorTag.NOT_IMPLEMENTED, f"provider '{provider_id}' is not registered")
        return descriptor

    def list(self, *, status: Optional[ProviderStatus] = None) -> List[ProviderDescriptor]:
        items = self._entries.values()
        if status:
            return [item for item in items if item.status == status]
        return list(items)

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self._entries.values())

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and provider_id.lower() in self._entries

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ProviderRegistry":
        """Load descriptors from a YAML document."""

        location = Path(path)
        if not location.exists():
            raise RegistryLoadError(f"Registry file '{location}' does not exist.")
        return cls.from_text(location.read_text(encoding="utf-8"), origin=str(location))

    @classmethod
    def from_text(cls, text: str, *, origin: str = "<string>") -> "ProviderRegistry":
        try:
            payload = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise RegistryLoadError(f"Failed to parse '{origin}': {exc}") from exc

        if not isinstance(payload, list):
            raise RegistryLoadError(f"Registry file '{origin}' must contain a list of providers.")

        registry = cls()
        for entry in payload:
            registry.register(cls._descriptor_from_payload(entry, origin=origin))
        return registry

    @staticmethod
    def _descriptor_from_payload(entry: object, *, origin: str) -> ProviderDescriptor:
        """Convert a YAML mapping into a descriptor instance."""

        if not isinstance(entry, dict):
            raise RegistryLoadError(f"Invalid entry in '{origin}': expected mapping, got {type(entry)!r}")

        modules = entry.get("modules") or {}
        if not isinstance(modules, dict):
            raise RegistryLoadError(f"Provider '{entry.get('id')}' in '{origin}' has non-mapping modules.")

        try:
            descriptor = ProviderDescriptor(
                provider_id=str(entry["id"]),
                name=str(entry.get("name", entry["id"])),
                base_url=str(entry["base_url"]),
                modules={str(key): str(value) for key, value in modules.items()},
                capabilities=tuple(_ensure_list(entry.get("capabilities"))),
                authentication=str(entry.get("authentication", "oauth2")),
                status=ProviderStatus(str(entry.get("status", ProviderStatus.ACTIVE.value))),
                docs=tuple(_ensure_list(entry.get("docs"))),
            )
        except KeyError as exc:
            raise RegistryLoadError(f"Missing required key {exc!s} in '{origin}'.") from exc
        except ValueError as exc:
            raise RegistryLoadError(f"Invalid field in '{origin}': {exc}") from exc

        descriptor.validate()
        return descriptor


@lru_cache(maxsize=1)
def load_default_registry() -> ProviderRegistry:
    """Load the catalogue bundled with the package. Cached for the process lifetime."""

    text = resources.files("saas_connectors.resources").joinpath("providers.yaml").read_text(encoding="utf-8")
    return ProviderRegistry.from_text(text, origin="saas_connectors/resources/providers.yaml")


def _ensure_list(value: object | None) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return [str(value)]
