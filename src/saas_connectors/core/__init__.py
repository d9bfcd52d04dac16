"""
Core infrastructure shared by every connector.

The package stays small and free of HTTP concerns: it exposes the error
taxonomy, the per-call context, typed JSON navigation, the value types passed
between callers and connectors, the provider catalogue and logging helpers.
"""

from .context import CallContext
from .errors import ConnectorError, ErrorTag, HTTPError, has_tag
from .jsonquery import JSONQueryError, Query
from .logging import bind_extra, configure_logging, get_logger, log_progress, redact_headers
from .models import (
    BatchStatus,
    BatchWriteParams,
    BatchWriteResult,
    BatchWriteType,
    DeleteParams,
    DeleteResult,
    FieldMetadata,
    FieldValue,
    ListObjectMetadataResult,
    ObjectMetadata,
    ReadParams,
    ReadResult,
    ReadResultRow,
    RecordCountParams,
    RecordCountResult,
    SubscriptionEventType,
    SubscriptionResult,
    SubscriptionStatus,
    ValueType,
    WriteParams,
    WriteResult,
)
from .registry import ProviderDescriptor, ProviderRegistry, ProviderStatus, RegistryLoadError, load_default_registry

__all__ = [
    "CallContext",
    "ConnectorError",
    "ErrorTag",
    "HTTPError",
    "has_tag",
    "JSONQueryError",
    "Query",
    "bind_extra",
    "configure_logging",
    "get_logger",
    "log_progress",
    "redact_headers",
    "BatchStatus",
    "BatchWriteParams",
    "BatchWriteResult",
    "BatchWriteType",
    "DeleteParams",
    "DeleteResult",
    "FieldMetadata",
    "FieldValue",
    "ListObjectMetadataResult",
    "ObjectMetadata",
    "ReadParams",
    "ReadResult",
    "ReadResultRow",
    "RecordCountParams",
    "RecordCountResult",
    "SubscriptionEventType",
    "SubscriptionResult",
    "SubscriptionStatus",
    "ValueType",
    "WriteParams",
    "WriteResult",
    "ProviderDescriptor",
    "ProviderRegistry",
    "ProviderStatus",
    "RegistryLoadError",
    "load_default_registry",
]
