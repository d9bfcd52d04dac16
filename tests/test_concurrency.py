from __future__ import annotations

import threading
import time

from saas_connectors.core.context import CallContext
from saas_connectors.core.errors import ConnectorError, ErrorTag, has_tag
from saas_connectors.services.concurrency import run_simultaneously


def test_collects_values_and_errors_by_key():
    def _boom():
        raise ConnectorError(ErrorTag.NOT_FOUND, "missing")

    result = run_simultaneously({"a": lambda: 1, "b": _boom, "c": lambda: 3})

    assert result.values == {"a": 1, "c": 3}
    assert has_tag(result.errors["b"], ErrorTag.NOT_FOUND)


def test_never_exceeds_max_concurrent():
    lock = threading.Lock()
    state = {"running": 0, "peak": 0}

    def _job():
        with lock:
            state["running"] += 1
            state["peak"] = max(state["peak"], state["running"])
        time.sleep(0.02)
        with lock:
            state["running"] -= 1
        return True

    result = run_simultaneously({str(index): _job for index in range(8)}, max_concurrent=2)

    assert len(result.values) == 8
    assert state["peak"] <= 2


def test_cancelled_context_skips_pending_jobs():
    context = CallContext()
    context.cancel()
    calls = []

    result = run_simultaneously({"a": lambda: calls.append("a"), "b": lambda: calls.append("b")}, context=context)

    assert calls == []
    assert set(result.errors) == {"a", "b"}
    assert all(has_tag(error, ErrorTag.CANCELLED) for error in result.errors.values())


def test_empty_job_set():
    result = run_simultaneously({})

    assert result.values == {}
    assert result.errors == {}
