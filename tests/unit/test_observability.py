from __future__ import annotations

import io
import json
import logging

from ergon.observability import add_error, bind_context, current_errors, get_logger, set_state, snapshot
from ergon.observability.ids import new_session_id, new_tool_call_id
from ergon.observability.logging import _JsonFormatter


def _capture(name: str) -> tuple[logging.Logger, io.StringIO]:
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(_JsonFormatter())
    logger = logging.getLogger(name)
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, stream


def test_context_binding_resets_per_turn() -> None:
    bind_context(session_id="s1", turn_id=1)
    set_state("COMPLETE")
    add_error("boom")
    assert snapshot() == {"session_id": "s1", "turn_id": 1, "state": "COMPLETE", "errors": ["boom"]}

    bind_context(session_id="s1", turn_id=2)
    assert current_errors() == []
    assert "state" not in snapshot()


def test_kv_logger_writes_json_with_fields_and_context() -> None:
    _, stream = _capture("ergon.test.kv")
    bind_context(session_id="abc", turn_id=3)

    get_logger("ergon.test.kv").info("turn done", latency_ms=12.5, tools=["a"], obj=object())

    line = json.loads(stream.getvalue())
    assert line["level"] == "INFO"
    assert line["message"] == "turn done"
    assert line["latency_ms"] == 12.5
    assert line["tools"] == ["a"]
    assert line["obj"].startswith("<object")
    assert line["session_id"] == "abc"
    assert line["turn_id"] == 3


def test_disabled_levels_are_skipped() -> None:
    logger, stream = _capture("ergon.test.levels")
    logger.setLevel(logging.WARNING)

    log = get_logger("ergon.test.levels")
    log.debug("hidden")
    log.warning("shown", extra={"k": 1})

    lines = stream.getvalue().splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["k"] == 1


def test_exception_includes_traceback() -> None:
    _, stream = _capture("ergon.test.exc")
    try:
        raise RuntimeError("kaboom")
    except RuntimeError:
        get_logger("ergon.test.exc").exception("call failed")

    line = json.loads(stream.getvalue())
    assert line["level"] == "ERROR"
    assert "RuntimeError: kaboom" in line["exc_info"]


def test_ids() -> None:
    assert len(new_session_id()) == 24
    assert new_tool_call_id().startswith("call_")
    assert new_tool_call_id() != new_tool_call_id()
