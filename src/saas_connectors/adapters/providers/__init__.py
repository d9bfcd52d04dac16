"""
Single-API provider adapters.

Each module declares where its provider keeps records, continuation tokens
and identifiers; the shared service pipelines do the rest.
"""

from .dynamicscrm import DynamicsCRMConnector
from .getresponse import GetResponseConnector
from .gitlab import GitLabConnector
from .hubspot import HubSpotConnector
from .intercom import IntercomConnector
from .netsuite import NetSuiteConnector
from .pipedrive import PipedriveConnector
from .quickbooks import QuickBooksConnector

__all__ = [
    "DynamicsCRMConnector",
    "GetResponseConnector",
    "GitLabConnector",
    "HubSpotConnector",
    "IntercomConnector",
    "NetSuiteConnector",
    "PipedriveConnector",
    "QuickBooksConnector",
]
