"""
Uniform access to SaaS provider REST APIs.

Build a connector with :func:`new_connector` and drive it with the value
types from :mod:`saas_connectors.core.models`::

    connector = new_connector("hubspot", client)
    page = connector.read(ReadParams(object_name="contacts", fields={"email"}))

The authenticated ``httpx.Client`` is supplied by the caller.
"""

from .adapters.base import BaseConnector, Connector, ConnectorParams
from .config import ProviderSettings, SettingsBundle, load_settings
from .connector import new_connector, supported_providers
from .core import (
    BatchWriteParams,
    BatchWriteResult,
    CallContext,
    ConnectorError,
    DeleteParams,
    DeleteResult,
    ErrorTag,
    HTTPError,
    ListObjectMetadataResult,
    ObjectMetadata,
    ReadParams,
    ReadResult,
    RecordCountParams,
    RecordCountResult,
    WriteParams,
    WriteResult,
    has_tag,
)

__all__ = [
    "BaseConnector",
    "Connector",
    "ConnectorParams",
    "ProviderSettings",
    "SettingsBundle",
    "load_settings",
    "new_connector",
    "supported_providers",
    "BatchWriteParams",
    "BatchWriteResult",
    "CallContext",
    "ConnectorError",
    "DeleteParams",
    "DeleteResult",
    "ErrorTag",
    "HTTPError",
    "ListObjectMetadataResult",
    "ObjectMetadata",
    "ReadParams",
    "ReadResult",
    "RecordCountParams",
    "RecordCountResult",
    "WriteParams",
    "WriteResult",
    "has_tag",
]
