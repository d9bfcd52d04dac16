"""GitLab REST v4 connector; pages are linked through the ``Link`` response header."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from ...core.context import CallContext
from ...core.errors import ErrorTag
from ...core.models import (
    DeleteParams,
    DeleteResult,
    ListObjectMetadataResult,
    ObjectMetadata,
    ReadParams,
    ReadResult,
    WriteParams,
    WriteResult,
    format_rfc3339_utc,
)
from ...services.metadata import fetch_sample_metadata, list_object_metadata
from ...services.pagination import link_header
from ...services.read import ReadPlan, page_url, read_page, records_at
from ...services.write import WritePlan, delete_record, write_record, write_url
from ...transport.urlbuilder import URL
from ..base import BaseConnector
from ..webhooks import SharedSecretVerifier

WEBHOOK_TOKEN_HEADER = "X-Gitlab-Token"
WEBHOOK_SECRET_KEY = "webhookSecret"

# Objects whose list endpoints understand updated_after / updated_before.
UPDATED_FILTER_OBJECTS = frozenset({"projects", "issues", "merge_requests"})


class GitLabConnector(BaseConnector):
    status_overrides = {409: ErrorTag.CONFLICT, 422: ErrorTag.UNPROCESSABLE}
    default_page_size = 100
    max_page_size = 100

    def read(self, params: ReadParams, *, context: Optional[CallContext] = None) -> ReadResult:
        params.validate()

        def _first_page() -> URL:
            url = self.url(params.object_name).with_query("per_page", str(self.page_size(params)))
            if params.object_name.lower() in UPDATED_FILTER_OBJECTS:
                if params.since is not None:
                    url.with_query("updated_after", format_rfc3339_utc(params.since))
                if params.until is not None:
                    url.with_query("updated_before", format_rfc3339_utc(params.until))
            return url

        plan = ReadPlan(records=records_at(), next_page=link_header("next"))
        return read_page(self.http, page_url(params, _first_page), plan, params, context=context)

    def write(self, params: WriteParams, *, context: Optional[CallContext] = None) -> WriteResult:
        params.validate()
        plan = WritePlan(create_method="POST", update_method="PUT")
        return write_record(self.http, write_url(self.url(params.object_name), params), params, plan, context=context)

    def delete(self, params: DeleteParams, *, context: Optional[CallContext] = None) -> DeleteResult:
        params.validate()
        return delete_record(self.http, self.url(params.object_name, params.record_id), params, context=context)

    def list_object_metadata(self, names: Iterable[str], *, context: Optional[CallContext] = None) -> ListObjectMetadataResult:
        def _fetch(name: str) -> ObjectMetadata:
            url = self.url(name).with_query("per_page", "1")
            return fetch_sample_metadata(self.http, url, name, records_at(optional=True), context=context)

        return list_object_metadata(names, _fetch, max_concurrent=self.max_concurrency, context=context)

    def verify_webhook_message(self, headers: Mapping[str, str], body: bytes = b"") -> bool:
        """Compare ``X-Gitlab-Token`` with the secret configured for the webhook."""

        verifier = SharedSecretVerifier(secret=self.metadata_value(WEBHOOK_SECRET_KEY), header=WEBHOOK_TOKEN_HEADER)
        return verifier.verify(headers, body)
