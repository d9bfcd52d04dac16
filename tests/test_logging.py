from __future__ import annotations

import io
import logging

from saas_connectors.core.logging import (
    PACKAGE_LOGGER,
    StructuredLogFormatter,
    bind_extra,
    configure_logging,
    get_logger,
    log_progress,
    redact_headers,
)


def test_redact_headers_hides_credentials():
    redacted = redact_headers({"Authorization": "Bearer abc", "Accept": "application/json", "Cookie": "sid=1"})

    assert redacted == {"Authorization": "<redacted>", "Accept": "application/json", "Cookie": "<redacted>"}
    assert redact_headers(None) == {}


def test_formatter_appends_extras_in_focus_order():
    record = logging.LogRecord("saas_connectors.test", logging.INFO, __file__, 1, "Read page", None, None)
    record.rows = 3
    record.object = "contacts"
    record.provider = "hubspot"

    output = StructuredLogFormatter().format(record)

    assert output.endswith("| provider=hubspot object=contacts rows=3")


def test_bind_extra_merges_without_mutating_parent(caplog):
    logger = get_logger("saas_connectors.tests.logging", extra={"provider": "gitlab"})
    child = bind_extra(logger, object="issues")

    with caplog.at_level(logging.INFO, logger="saas_connectors"):
        child.info("Fetched", extra={"rows": 2})

    record = caplog.records[-1]
    assert (record.provider, record.object, record.rows) == ("gitlab", "issues", 2)
    assert "object" not in logger.extra


def test_log_progress_records_phase(caplog):
    logger = get_logger("saas_connectors.tests.progress")

    with caplog.at_level(logging.INFO, logger="saas_connectors"):
        log_progress(logger, "Uploading CSV", phase="bulk", step="upload", status="started", extra={"job_id": "750"})

    record = caplog.records[-1]
    assert (record.phase, record.step, record.status, record.job_id) == ("bulk", "upload", "started", "750")


def test_configure_logging_replaces_its_handler():
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    first, second = io.StringIO(), io.StringIO()

    try:
        configure_logging("debug", stream=first)
        handler = configure_logging("debug", stream=second)
        get_logger("saas_connectors.tests.configure", extra={"provider": "intercom"}).debug("Ready")

        assert first.getvalue() == ""
        assert second.getvalue().rstrip().endswith("Ready | provider=intercom")
        assert package_logger.level == logging.DEBUG
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(logging.NOTSET)
