"""
Provider adapters.

Every adapter builds on :class:`~saas_connectors.adapters.base.BaseConnector`
and exposes the subset of the uniform operations its provider supports.
"""

from .base import BaseConnector, Connector, ConnectorParams
from .providers import (
    DynamicsCRMConnector,
    GetResponseConnector,
    GitLabConnector,
    HubSpotConnector,
    IntercomConnector,
    NetSuiteConnector,
    PipedriveConnector,
    QuickBooksConnector,
)
from .salesforce import PardotConnector, SalesforceConnector
from .webhooks import SharedSecretVerifier

__all__ = [
    "BaseConnector",
    "Connector",
    "ConnectorParams",
    "DynamicsCRMConnector",
    "GetResponseConnector",
    "GitLabConnector",
    "HubSpotConnector",
    "IntercomConnector",
    "NetSuiteConnector",
    "PardotConnector",
    "PipedriveConnector",
    "QuickBooksConnector",
    "SalesforceConnector",
    "SharedSecretVerifier",
]
