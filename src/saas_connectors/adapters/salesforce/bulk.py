"""
Salesforce Bulk API 2.0: ingest jobs (upsert, delete) and query jobs.

An ingest job walks ``Open -> UploadComplete -> InProgress`` and ends in
``JobComplete``, ``Failed`` or ``Aborted``. The library creates the job,
uploads the CSV and closes it; callers poll :meth:`BulkAPI.get_job_results`
which classifies the terminal state and, on partial failure, attributes the
failed rows to record references using the ``failedResults`` CSV.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from enum import Enum
from logging import LoggerAdapter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import httpx

from ...core.context import CallContext
from ...core.errors import ConnectorError, ErrorTag
from ...core.logging import bind_extra, log_progress
from ...transport.client import JSONHTTPClient
from ...transport.urlbuilder import URL

SF_ID_COLUMN = "sf__Id"
SF_ERROR_COLUMN = "sf__Error"

MESSAGE_IN_PROGRESS = "Job is still in progress. Please try again later."
MESSAGE_ABORTED = "Job aborted. Please refer to the JobInfo for more details."
MESSAGE_FAILED = "No records processed successfully. This is likely due the CSV being empty or issues with CSV column names."
MESSAGE_UNKNOWN = "Job is in an unknown state."
MESSAGE_PARTIAL = "Some records are not processed successfully. Please refer to the 'failureDetails' for more details."


class BulkOperation(str, Enum):
    INSERT = "insert"
    UPSERT = "upsert"
    UPDATE = "update"
    DELETE = "delete"
    QUERY = "query"
    QUERY_ALL = "queryAll"


class JobState(str, Enum):
    OPEN = "Open"
    UPLOAD_COMPLETE = "UploadComplete"
    IN_PROGRESS = "InProgress"
    JOB_COMPLETE = "JobComplete"
    FAILED = "Failed"
    ABORTED = "Aborted"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    def can_transition(self, target: "JobState") -> bool:
        """Legal moves of the job lifecycle; ``Aborted`` is reachable from any non-terminal state."""

        if self.is_terminal:
            return False
        if target is JobState.ABORTED:
            return True
        return target in _FORWARD.get(self, frozenset())


_TERMINAL_STATES = frozenset({JobState.JOB_COMPLETE, JobState.FAILED, JobState.ABORTED})
_FORWARD = {
    JobState.OPEN: frozenset({JobState.UPLOAD_COMPLETE}),
    JobState.UPLOAD_COMPLETE: frozenset({JobState.IN_PROGRESS}),
    JobState.IN_PROGRESS: frozenset({JobState.JOB_COMPLETE, JobState.FAILED}),
}


def is_status_done(state: str) -> bool:
    return state in (JobState.JOB_COMPLETE.value, JobState.FAILED.value, JobState.ABORTED.value)


@dataclass(slots=True)
class JobInfo:
    """Job description as returned by ``GET jobs/ingest/{id}`` or ``jobs/query/{id}``."""

    id: str
    object: str = ""
    operation: str = ""
    state: str = ""
    external_id_field_name: str = ""
    number_records_processed: int = 0
    number_records_failed: int = 0
    created_date: str = ""
    created_by_id: str = ""
    content_type: str = ""
    line_ending: str = ""
    column_delimiter: str = ""
    job_type: str = ""
    api_version: Optional[float] = None
    error_message: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Any) -> "JobInfo":
        if not isinstance(payload, dict):
            raise ConnectorError(ErrorTag.PARSE_ERROR, "job info is not a JSON object")

        def _int(key: str) -> int:
            value = payload.get(key)
            return int(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else 0

        api_version = payload.get("apiVersion")
        return cls(
            id=str(payload.get("id") or ""),
            object=str(payload.get("object") or ""),
            operation=str(payload.get("operation") or ""),
            state=str(payload.get("state") or ""),
            external_id_field_name=str(payload.get("externalIdFieldName") or ""),
            number_records_processed=_int("numberRecordsProcessed"),
            number_records_failed=_int("numberRecordsFailed"),
            created_date=str(payload.get("createdDate") or ""),
            created_by_id=str(payload.get("createdById") or ""),
            content_type=str(payload.get("contentType") or ""),
            line_ending=str(payload.get("lineEnding") or ""),
            column_delimiter=str(payload.get("columnDelimiter") or ""),
            job_type=str(payload.get("jobType") or ""),
            api_version=float(api_version) if isinstance(api_version, (int, float)) and not isinstance(api_version, bool) else None,
            error_message=str(payload.get("errorMessage") or ""),
            raw=payload,
        )

    @property
    def is_done(self) -> bool:
        return is_status_done(self.state)


@dataclass(slots=True)
class BulkOperationResult:
    job_id: str
    state: str


@dataclass(slots=True)
class FailInfo:
    """Failed references grouped by error message; rows too short to attribute land in ``unparsed_rows``."""

    failure_type: str
    failed_updates: Dict[str, List[str]] = field(default_factory=dict)
    failed_creates: Dict[str, List[str]] = field(default_factory=dict)
    unparsed_rows: List[List[str]] = field(default_factory=list)
    reason: str = ""


@dataclass(slots=True)
class JobResults:
    job_id: str
    state: str
    job_info: Optional[JobInfo] = None
    failure_details: Optional[FailInfo] = None
    message: str = ""

    @property
    def is_done(self) -> bool:
        return is_status_done(self.state)


def incomplete_job_message(state: str) -> str:
    if state in (JobState.IN_PROGRESS.value, JobState.UPLOAD_COMPLETE.value):
        return MESSAGE_IN_PROGRESS
    if state == JobState.ABORTED.value:
        return MESSAGE_ABORTED
    if state == JobState.FAILED.value:
        return MESSAGE_FAILED
    return MESSAGE_UNKNOWN


def column_indices(header: List[str], names: Iterable[str]) -> Dict[str, int]:
    """Locate ``names`` in ``header`` case-insensitively; a missing column raises ``key-not-found``."""

    indices: Dict[str, int] = {}
    for name in names:
        for position, value in enumerate(header):
            if value.lower() == name.lower():
                indices[name] = position
                break
        else:
            raise ConnectorError(ErrorTag.KEY_NOT_FOUND, f"'{name}'")
    return indices


def classify_failures(job: JobInfo, csv_text: str) -> JobResults:
    """Attribute each failed row of a ``failedResults`` CSV to a record reference."""

    info = FailInfo(failure_type="Partial")
    columns = [SF_ID_COLUMN, SF_ERROR_COLUMN]
    if job.external_id_field_name:
        columns.append(job.external_id_field_name)

    reader = csv.reader(io.StringIO(csv_text))
    indices: Optional[Dict[str, int]] = None
    width = 0
    for row in reader:
        if indices is None:
            indices = column_indices(row, columns)
            width = max(indices.values()) + 1
            continue
        if not row:
            continue
        if len(row) < width:
            info.unparsed_rows.append(row)
            continue
        sf_id = row[indices[SF_ID_COLUMN]]
        message = row[indices[SF_ERROR_COLUMN]]
        bucket = info.failed_creates if sf_id == "" else info.failed_updates

        if job.operation == BulkOperation.UPSERT.value:
            reference = row[indices[job.external_id_field_name]] if job.external_id_field_name else ""
        elif job.operation == BulkOperation.DELETE.value:
            reference = sf_id
        else:
            raise ConnectorError(ErrorTag.UNSUPPORTED_OPERATION, job.operation)
        bucket.setdefault(message, []).append(reference)

    return JobResults(job_id=job.id, state=job.state, job_info=job, failure_details=info, message=MESSAGE_PARTIAL)


def _read_csv(data: Any) -> bytes:
    if data is None:
        raise ConnectorError(ErrorTag.MISSING_CSV_DATA, "CSV data is required")
    if isinstance(data, str):
        payload = data.encode("utf-8")
    elif isinstance(data, (bytes, bytearray)):
        payload = bytes(data)
    elif hasattr(data, "read"):
        content = data.read()
        payload = content.encode("utf-8") if isinstance(content, str) else bytes(content)
    else:
        raise ConnectorError(ErrorTag.MISSING_CSV_DATA, f"unsupported CSV source {type(data).__name__}")
    return payload


class BulkAPI:
    """
    Bulk API 2.0 client bound to one Salesforce instance.

    Parameters
    ----------
    http:
        JSON client of the owning connector.
    rest_url:
        Factory returning ``{instance}/services/data/vXX.X`` plus path segments.
    domain:
        Instance origin used to resolve ``nextRecordsUrl`` paths.
    logger:
        Logger of the owning connector.
    """

    def __init__(self, http: JSONHTTPClient, rest_url: Callable[..., URL], domain: Callable[[], str], logger: LoggerAdapter) -> None:
        self.http = http
        self.rest_url = rest_url
        self.domain = domain
        self.logger = logger

    # -- ingest -------------------------------------------------------------

    def bulk_write(
        self,
        object_name: str,
        external_id_field: str,
        csv_data: Any,
        mode: str = BulkOperation.UPSERT.value,
        *,
        context: Optional[CallContext] = None,
    ) -> BulkOperationResult:
        """Upsert records from CSV; only ``upsert`` mode is supported."""

        if mode != BulkOperation.UPSERT.value:
            raise ConnectorError(ErrorTag.UNSUPPORTED_MODE, f"'{mode}'")
        if not object_name:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "object name is required")
        if not external_id_field:
            raise ConnectorError(ErrorTag.MISSING_EXTERNAL_ID, "external id field is required for upsert")
        payload = _read_csv(csv_data)
        body = {
            "object": object_name,
            "operation": BulkOperation.UPSERT.value,
            "externalIdFieldName": external_id_field,
            "contentType": "CSV",
            "lineEnding": "LF",
        }
        return self._ingest(body, payload, context=context)

    def bulk_delete(self, object_name: str, csv_data: Any, *, context: Optional[CallContext] = None) -> BulkOperationResult:
        """Delete the records whose ids are listed in the CSV."""

        if not object_name:
            raise ConnectorError(ErrorTag.MISSING_OBJECTS, "object name is required")
        payload = _read_csv(csv_data)
        body = {
            "object": object_name,
            "operation": BulkOperation.DELETE.value,
            "contentType": "CSV",
            "lineEnding": "LF",
        }
        return self._ingest(body, payload, context=context)

    def _ingest(self, body: Mapping[str, Any], payload: bytes, *, context: Optional[CallContext]) -> BulkOperationResult:
        logger = bind_extra(self.logger, object=body.get("object"), operation=body.get("operation"))

        log_progress(logger, "Creating bulk job", phase="bulk", step="create-job", status="start")
        try:
            response = self.http.post(self.rest_url("jobs/ingest"), dict(body), context=context)
        except ConnectorError as exc:
            raise ConnectorError(ErrorTag.CREATE_JOB, str(exc)) from exc
        job_id, state = self._job_identity(response.unmarshal())
        if state.lower() != "open":
            raise ConnectorError(ErrorTag.INVALID_JOB_STATE, f"expected job state to be open, got {state or 'nothing'}")

        job_logger = bind_extra(logger, job_id=job_id)
        log_progress(job_logger, "Uploading CSV", phase="bulk", step="upload", status="start")
        try:
            self.http.put_csv(self.rest_url("jobs/ingest", job_id, "batches"), payload, context=context)
        except ConnectorError as exc:
            raise ConnectorError(ErrorTag.CSV_UPLOAD_FAILURE, str(exc)) from exc

        log_progress(job_logger, "Closing bulk job", phase="bulk", step="complete", status="start")
        try:
            response = self.http.patch(self.rest_url("jobs/ingest", job_id), {"state": JobState.UPLOAD_COMPLETE.value}, context=context)
        except ConnectorError as exc:
            raise ConnectorError(ErrorTag.UPDATE_JOB, str(exc)) from exc
        job_id, state = self._job_identity(response.unmarshal())
        log_progress(job_logger, "Bulk job submitted", phase="bulk", step="complete", status=state)
        return BulkOperationResult(job_id=job_id, state=state)

    @staticmethod
    def _job_identity(payload: Any) -> tuple[str, str]:
        if not isinstance(payload, dict):
            raise ConnectorError(ErrorTag.PARSE_ERROR, "job response is not a JSON object")
        job_id = payload.get("id")
        state = payload.get("state", "")
        if not isinstance(job_id, str) or not isinstance(state, (str, type(None))):
            raise ConnectorError(ErrorTag.PARSE_ERROR, "job response has no string 'id'")
        return job_id, state or ""

    def get_job_info(self, job_id: str, *, context: Optional[CallContext] = None) -> JobInfo:
        response = self.http.get(self.rest_url("jobs/ingest", job_id), context=context)
        return JobInfo.from_payload(response.unmarshal())

    def get_job_results(self, job_id: str, *, context: Optional[CallContext] = None) -> JobResults:
        """Classify an ingest job; partial failures are attributed row by row."""

        job = self.get_job_info(job_id, context=context)
        if job.state != JobState.JOB_COMPLETE.value:
            return JobResults(job_id=job.id, state=job.state, job_info=job, message=incomplete_job_message(job.state))
        if job.number_records_failed == 0:
            return JobResults(job_id=job.id, state=job.state, job_info=job)

        response = self.http.get_raw(self.rest_url("jobs/ingest", job.id, "failedResults"), context=context)
        return classify_failures(job, response.text)

    def get_successful_job_results(self, job_id: str, *, context: Optional[CallContext] = None) -> httpx.Response:
        return self.http.get_raw(self.rest_url("jobs/ingest", job_id, "successfulResults"), context=context)

    def list_ingest_jobs(self, job_ids: Iterable[str] = (), *, context: Optional[CallContext] = None) -> List[JobInfo]:
        """
        List V2 ingest jobs, optionally only those in ``job_ids``.

        Salesforce keeps terminal jobs for seven days only; older ids are
        simply not found.
        """

        wanted = list(job_ids)
        pending = set(wanted)
        jobs: List[JobInfo] = []
        location: str = self.rest_url("jobs/ingest").with_query("jobType", "V2Ingest").to_string()

        while True:
            payload = self.http.get(location, context=context).unmarshal()
            if not isinstance(payload, dict):
                raise ConnectorError(ErrorTag.PARSE_ERROR, "ingest job listing is not a JSON object")
            for record in payload.get("records") or []:
                info = JobInfo.from_payload(record)
                if not wanted or info.id in wanted:
                    jobs.append(info)
                    pending.discard(info.id)
            if payload.get("done", True):
                break
            if wanted and not pending:
                break
            next_records = payload.get("nextRecordsUrl")
            if not isinstance(next_records, str) or not next_records:
                break
            location = self.domain() + next_records
        return jobs

    # -- query --------------------------------------------------------------

    def bulk_query(self, soql: str, include_deleted: bool = False, *, context: Optional[CallContext] = None) -> JobInfo:
        if not soql:
            raise ConnectorError(ErrorTag.MISSING_EXPECTED_VALUES, "query is required")
        operation = BulkOperation.QUERY_ALL if include_deleted else BulkOperation.QUERY
        try:
            response = self.http.post(self.rest_url("jobs/query"), {"operation": operation.value, "query": soql}, context=context)
        except ConnectorError as exc:
            raise ConnectorError(ErrorTag.CREATE_JOB, str(exc)) from exc
        return JobInfo.from_payload(response.unmarshal())

    def get_bulk_query_info(self, job_id: str, *, context: Optional[CallContext] = None) -> JobInfo:
        response = self.http.get(self.rest_url("jobs/query", job_id), context=context)
        return JobInfo.from_payload(response.unmarshal())

    def get_bulk_query_results(self, job_id: str, *, context: Optional[CallContext] = None) -> httpx.Response:
        return self.http.get_raw(self.rest_url("jobs/query", job_id, "results"), headers={"Accept": "text/csv"}, context=context)
