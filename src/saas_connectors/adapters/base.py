"""
Base classes for provider connectors.

Connectors are intentionally narrow in scope: they translate the uniform
operations (read, write, delete, metadata) into provider requests and back.
The shared pipelines in :mod:`saas_connectors.services` do the heavy lifting
so an adapter mostly declares where its data lives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Protocol

import httpx

from ..config import ProviderSettings
from ..core.context import CallContext
from ..core.errors import ConnectorError, ErrorTag
from ..core.logging import get_logger
from ..core.models import (
    DeleteParams,
    DeleteResult,
    ListObjectMetadataResult,
    ReadParams,
    ReadResult,
    WriteParams,
    WriteResult,
)
from ..core.registry import ProviderDescriptor
from ..services.concurrency import DEFAULT_MAX_CONCURRENCY
from ..transport.client import DEFAULT_TIMEOUT, JSONHTTPClient
from ..transport.interpreter import DEFAULT_FORMATS, ErrorInterpreter, FormatSwitch
from ..transport.urlbuilder import URL, new_url


@dataclass(slots=True)
class ConnectorParams:
    """
    Everything a connector needs at construction time.

    Attributes
    ----------
    provider:
        Catalogue entry of the provider.
    client:
        Authenticated ``httpx.Client`` owned by the caller.
    module:
        Optional API surface of the provider (e.g. ``pardot`` for Salesforce).
    workspace:
        Tenant, instance or subdomain substituted into the base URL.
    metadata:
        Post-authentication values such as a realm or business unit id.
    settings:
        Overrides from the settings file.
    """

    provider: ProviderDescriptor
    client: httpx.Client
    module: str = ""
    workspace: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)
    settings: ProviderSettings = field(default_factory=ProviderSettings)


class Connector(Protocol):
    """Protocol implemented by every provider connector."""

    @property
    def provider_id(self) -> str:
        """Identifier matching the catalogue descriptor."""

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        """Read one page of records."""

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        """Create or update one record."""

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        """Delete one record."""

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        """Describe the fields of each object."""


class BaseConnector:
    """
    Shared construction and plumbing for connectors.

    Subclasses override the class attributes to describe provider defaults and
    implement the operations they support; the rest raise ``not-implemented``.
    """

    default_headers: Mapping[str, str] = {}
    error_formats: FormatSwitch = DEFAULT_FORMATS
    status_overrides: Mapping[int, ErrorTag] = {}
    encoding_exceptions: Mapping[str, str] = {}
    default_page_size: int = 100
    max_page_size: Optional[int] = None

    def __init__(self, params: ConnectorParams) -> None:
        self.params = params
        settings = params.settings
        base_url = settings.base_url or params.provider.resolve_base_url(params.module, params.workspace)
        URL.from_string(base_url)
        self.base_url = base_url.rstrip("/")

        headers = dict(self.default_headers)
        headers.update(settings.headers)
        self.http = JSONHTTPClient(
            http_client=params.client,
            provider=params.provider.provider_id,
            error_interpreter=ErrorInterpreter(formats=self.error_formats, status_overrides=dict(self.status_overrides)),
            default_headers=headers,
            timeout=settings.timeout or DEFAULT_TIMEOUT,
            retry_attempts=settings.retry_attempts or 1,
        )
        self.max_concurrency = settings.max_concurrency or DEFAULT_MAX_CONCURRENCY
        self.logger = get_logger(
            f"{self.__class__.__module__}.{self.__class__.__name__}",
            extra={"provider": params.provider.provider_id},
        )

    @property
    def provider_id(self) -> str:
        return self.params.provider.provider_id

    @property
    def module(self) -> str:
        return self.params.module

    @property
    def metadata(self) -> Mapping[str, str]:
        return self.params.metadata

    def set_base_url(self, url: str) -> None:
        """Point the connector at another host, e.g. a test server or sandbox."""

        URL.from_string(url)
        self.base_url = url.rstrip("/")

    def url(self, *segments: str) -> URL:
        return new_url(self.base_url, *segments, exceptions=dict(self.encoding_exceptions))

    def page_size(self, params: ReadParams) -> int:
        size = params.page_size or self.params.settings.page_size or self.default_page_size
        if self.max_page_size is not None:
            size = min(size, self.max_page_size)
        return size

    def metadata_value(self, key: str) -> str:
        """Return a post-authentication value or fail with ``missing-expected-values``."""

        value = self.params.metadata.get(key)
        if not value:
            raise ConnectorError(ErrorTag.MISSING_EXPECTED_VALUES, f"connector metadata '{key}' is required")
        return value

    def _not_implemented(self, operation: str) -> ConnectorError:
        return ConnectorError(ErrorTag.NOT_IMPLEMENTED, f"{operation} is not supported by provider '{self.provider_id}'")

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        raise self._not_implemented("read")

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        raise self._not_implemented("write")

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        raise self._not_implemented("delete")

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        raise self._not_implemented("list_object_metadata")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider_id!r}, base_url={self.base_url!r})"


def ensure_supported(object_name: str, supported: Iterable[str], operation: str) -> None:
    """Raise ``operation-not-supported-for-object`` when ``object_name`` is outside ``supported``."""

    if object_name.lower() not in {item.lower() for item in supported}:
        raise ConnectorError(ErrorTag.OPERATION_NOT_SUPPORTED, f"{operation} is not supported for object '{object_name}'")
