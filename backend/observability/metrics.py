"""
Timing metrics for generation.

Responsibilities:
- Time spans with the monotonic clock
- Emit each finished span as one METRIC_TIMER log event
- Let callers abandon a span (cancelled / failed before it completed)
  without emitting anything

Two shapes are supported:
- timed(): a block that always emits, exceptions included
- start_timer() / stop_timer() / discard_timer(): spans whose end is an
  event rather than a block exit (e.g. first streamed token)

Metrics are never aggregated here; one span = one log line.
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


# timer_id -> (metric_name, started_ns)
_open_spans: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """
    Open a span and return its opaque id.

    Every id must eventually reach stop_timer() or discard_timer().
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _open_spans[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    message_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Close a span and log its duration.

    Returns:
        duration_ms, or None if the id is unknown or already closed
    """
    span = _open_spans.pop(timer_id, None)
    if span is None:
        return None

    name, started_ns = span
    duration_ms = (time.monotonic_ns() - started_ns) // 1_000_000

    log_event({
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "message_id": message_id,
        "details": details or {},
    })
    return duration_ms


def discard_timer(timer_id: str) -> bool:
    """Drop a span without logging. Returns False if it was not open."""
    return _open_spans.pop(timer_id, None) is not None


def active_timer_count() -> int:
    return len(_open_spans)


@contextmanager
def timed(
    name: str,
    *,
    message_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Time a block; the metric is logged once however the block exits.

        with timed("generation_duration", message_id=message.id):
            await run_generation()
    """
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(timer_id, message_id=message_id, details=details)
