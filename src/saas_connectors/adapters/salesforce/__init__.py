"""Salesforce adapters: CRM REST, Bulk API 2.0, change events and the Pardot module."""

from .bulk import BulkAPI, BulkOperationResult, FailInfo, JobInfo, JobResults, JobState
from .connector import API_VERSION, SalesforceConnector
from .events import CollapsedSubscriptionEvent, SubscriptionEvent
from .pardot import PardotConnector

__all__ = [
    "API_VERSION",
    "BulkAPI",
    "BulkOperationResult",
    "CollapsedSubscriptionEvent",
    "FailInfo",
    "JobInfo",
    "JobResults",
    "JobState",
    "PardotConnector",
    "SalesforceConnector",
    "SubscriptionEvent",
]
