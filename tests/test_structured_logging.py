from __future__ import annotations

import json
import logging

import pytest

from arroz_trace.runtime.contract import TraceabilityContract
from arroz_trace.runtime.errors import AlreadyExists
from arroz_trace.runtime.state_store import MemoryStateStore
from arroz_trace.util.structured_logging import configure_structured_logging, log_event


def _events(caplog: pytest.LogCaptureFixture) -> list:
    out = []
    for rec in caplog.records:
        try:
            out.append(json.loads(rec.getMessage()))
        except ValueError:
            continue
    return out


def test_log_event_is_one_json_line(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("arroz_trace.test")
    with caplog.at_level(logging.INFO, logger="arroz_trace.test"):
        log_event(logger, "sample", b=2, a="x")

    (ev,) = _events(caplog)
    assert ev["event"] == "sample"
    assert ev["a"] == "x" and ev["b"] == 2
    assert isinstance(ev["ts_ms"], int)


def test_log_event_falls_back_for_unserializable_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("arroz_trace.test")
    with caplog.at_level(logging.INFO, logger="arroz_trace.test"):
        log_event(logger, "sample", blob=object())

    assert caplog.records[-1].getMessage().startswith("event=sample")


def test_record_operations_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    contract = TraceabilityContract(MemoryStateStore())

    with caplog.at_level(logging.INFO, logger="arroz_trace"):
        contract.tolva.register(json.dumps({"id": "T1"}))
        with pytest.raises(AlreadyExists):
            contract.tolva.register(json.dumps({"id": "T1"}))
        contract.tolva.list()

    names = [e["event"] for e in _events(caplog)]
    assert "record_registered" in names
    assert "invocation_rolled_back" in names
    assert "query_executed" in names

    rejected = [e for e in _events(caplog) if e["event"] == "record_rejected"]
    assert rejected and rejected[0]["code"] == "already_exists"


def test_configure_is_idempotent(monkeypatch: pytest.MonkeyPatch) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        monkeypatch.setattr(root, "_arroz_configured", False, raising=False)
        configure_structured_logging("WARNING")
        handlers = list(root.handlers)
        assert root.level == logging.WARNING

        configure_structured_logging("DEBUG")
        assert root.handlers == handlers
        assert root.level == logging.DEBUG
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
