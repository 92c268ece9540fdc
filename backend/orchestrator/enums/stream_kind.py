"""
Stream kind enumeration.

A generation carries two independent content streams. Display-side
buffers are keyed by (message_id, StreamKind).
"""

from __future__ import annotations

from enum import Enum


class StreamKind(str, Enum):
    TEXT = "text"
    REASONING = "reasoning"
