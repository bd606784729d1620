from __future__ import annotations

import json
import logging

from construct_map.logging import JsonFormatter, PlainFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("construct_map.test", logging.INFO, __file__, 1, "Connections bridged", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_plain_formatter_prefixes_step_and_phase() -> None:
    line = PlainFormatter().format(_record(step="bridge", phase="complete", duration_ms=4))
    assert line.endswith("construct_map.test: [bridge:complete] Connections bridged (duration_ms=4)")


def test_json_formatter_keeps_safe_extras_only() -> None:
    payload = json.loads(JsonFormatter().format(_record(step="bridge", bridged=3, opaque=object())))
    assert payload["message"] == "Connections bridged"
    assert payload["level"] == "INFO"
    assert payload["step"] == "bridge"
    assert payload["bridged"] == 3
    assert "opaque" not in payload
