"""
Structured event log.

- One JSON object per line on stdout
- Unbuffered: every event is flushed as it is written
- Credential-bearing fields are masked before serialization
- Process-wide static fields (e.g. env) can be stamped onto every line
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Callable, Mapping


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

# Field names whose values never reach the log
SECRET_FIELDS: frozenset[str] = frozenset({"api_key", "openai_api_key", "authorization"})
MASK = "***"

_static_fields: dict[str, Any] = {}


def configure(**static_fields: Any) -> None:
    """
    Set fields stamped onto every subsequent event.

    Event-supplied keys win over static ones. Calling with no arguments
    clears them.
    """
    _static_fields.clear()
    _static_fields.update(static_fields)


def _masked(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            k: (MASK if k in SECRET_FIELDS and v else _masked(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_masked(v) for v in value]
    return value


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event.

    The caller supplies an event dict with at least an `event_type`; the
    dict itself is never modified. A missing `ts_ms` is stamped with the
    current wall-clock time.

    str-based enums serialize as their values. Never raises.
    """
    record: dict[str, Any] = {"ts_ms": time.time_ns() // 1_000_000, **_static_fields}
    record.update(_masked(event))

    try:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        fallback: dict[str, Any] = {
            "ts_ms": record.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(record),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
