from __future__ import annotations

import io
import json
import logging

from samvaad.logger import JSONFormatter, StructuredLogger


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("samvaad.test", logging.WARNING, __file__, 1, "reap of %s", ("u1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_lifecycle_context_is_promoted():
    entry = json.loads(JSONFormatter().format(
        _record(event="REAP_PARTIAL", identity_id="u1", attempt=2),
    ))

    assert entry["message"] == "reap of u1"
    assert entry["level"] == "WARNING"
    assert entry["event"] == "REAP_PARTIAL"
    assert entry["identity_id"] == "u1"
    assert entry["extra"] == {"attempt": "2"}


def test_plain_record_has_no_extra_block():
    entry = json.loads(JSONFormatter().format(_record()))

    assert "extra" not in entry
    assert "event" not in entry


def test_structured_logger_writes_json_lines(tmp_path):
    stream = io.StringIO()
    log = StructuredLogger(
        name="samvaad.tests.stream", level=logging.DEBUG, stream=stream,
        log_file=str(tmp_path / "out.log"),
    )

    log.info("profile created", extra={"event": "PROFILE_CREATE", "user_id": "u1"})

    line = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert line["event"] == "PROFILE_CREATE"
    assert line["user_id"] == "u1"
    assert (tmp_path / "out.log").read_text(encoding="utf-8").strip()
