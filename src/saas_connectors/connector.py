"""
Connector construction.

:func:`new_connector` resolves a provider from the catalogue, applies settings
overrides and instantiates the matching adapter. The caller owns the
authenticated ``httpx.Client``; connectors never close it.
"""

from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional, Tuple

import httpx

from .adapters.base import BaseConnector, ConnectorParams
from .adapters.providers import (
    DynamicsCRMConnector,
    GetResponseConnector,
    GitLabConnector,
    HubSpotConnector,
    IntercomConnector,
    NetSuiteConnector,
    PipedriveConnector,
    QuickBooksConnector,
)
from .adapters.salesforce import PardotConnector, SalesforceConnector
from .config import ProviderSettings, load_settings
from .core.errors import ConnectorError, ErrorTag
from .core.logging import get_logger
from .core.registry import DEFAULT_MODULE, ProviderRegistry, load_default_registry

LOGGER = get_logger(__name__)

ConnectorFactory = Callable[[ConnectorParams], BaseConnector]

# Keyed by (provider id, module); the empty module is the provider's default API.
CONNECTORS: Mapping[Tuple[str, str], ConnectorFactory] = {
    ("salesforce", ""): SalesforceConnector,
    ("salesforce", "pardot"): PardotConnector,
    ("hubspot", ""): HubSpotConnector,
    ("intercom", ""): IntercomConnector,
    ("dynamicscrm", ""): DynamicsCRMConnector,
    ("gitlab", ""): GitLabConnector,
    ("pipedrive", ""): PipedriveConnector,
    ("getresponse", ""): GetResponseConnector,
    ("quickbooks", ""): QuickBooksConnector,
    ("netsuite", ""): NetSuiteConnector,
}


def new_connector(
    provider: str,
    client: httpx.Client,
    *,
    module: str = "",
    workspace: str = "",
    metadata: Optional[Mapping[str, str]] = None,
    settings: Optional[ProviderSettings] = None,
    registry: Optional[ProviderRegistry] = None,
) -> BaseConnector:
    """
    Build the connector for ``provider``.

    Parameters
    ----------
    provider:
        Catalogue id, e.g. ``salesforce`` or ``hubspot``.
    client:
        Authenticated HTTP client; credentials are the caller's concern.
    module:
        Optional API surface, e.g. ``pardot`` for Salesforce.
    workspace:
        Substituted for ``{{workspace}}`` in the base URL template.
    metadata:
        Post-authentication values (``realmId``, ``businessUnitId``, ...).
    settings:
        Overrides; when omitted they are read from the settings file.
    registry:
        Alternative catalogue, mainly for tests.

    Raises
    ------
    ConnectorError
        ``not-implemented`` for unknown providers or modules.
    """

    catalogue = registry or load_default_registry()
    descriptor = catalogue.require(provider)
    module_key = "" if module in ("", DEFAULT_MODULE) else module.lower()
    factory = CONNECTORS.get((descriptor.provider_id, module_key))
    if factory is None:
        raise ConnectorError(ErrorTag.NOT_IMPLEMENTED, f"no connector for provider '{provider}' module '{module or DEFAULT_MODULE}'")

    resolved = settings if settings is not None else load_settings().for_provider(descriptor.provider_id)
    params = ConnectorParams(
        provider=descriptor,
        client=client,
        module=module_key,
        workspace=workspace,
        metadata=dict(metadata or {}),
        settings=resolved,
    )
    connector = factory(params)
    LOGGER.debug(
        "Connector created",
        extra={"provider": descriptor.provider_id, "module": module_key or DEFAULT_MODULE, "base_url": connector.base_url},
    )
    return connector


def supported_providers() -> Dict[str, Tuple[str, ...]]:
    """Provider ids with an adapter, mapped to their non-default modules."""

    providers: Dict[str, Tuple[str, ...]] = {}
    for provider_id, module in CONNECTORS:
        modules = providers.setdefault(provider_id, ())
        if module:
            providers[provider_id] = modules + (module,)
    return providers
