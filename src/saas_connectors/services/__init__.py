"""
Service-layer pipelines shared by provider adapters: read, write, metadata,
pagination, client-side filtering and the bounded join barrier.
"""

from .concurrency import BarrierResult, run_simultaneously
from .filtering import Order, TimeFilter, time_filter
from .metadata import fetch_sample_metadata, infer_value_type, list_object_metadata, sample_metadata
from .read import ReadPlan, page_url, project, read_page, records_at, resolve_links
from .write import WritePlan, delete_record, write_record

__all__ = [
    "BarrierResult",
    "run_simultaneously",
    "Order",
    "TimeFilter",
    "time_filter",
    "fetch_sample_metadata",
    "infer_value_type",
    "list_object_metadata",
    "sample_metadata",
    "ReadPlan",
    "page_url",
    "project",
    "read_page",
    "records_at",
    "resolve_links",
    "WritePlan",
    "delete_record",
    "write_record",
]
