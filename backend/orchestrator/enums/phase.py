"""
Generation lifecycle phase enumeration.

Rules:
- This enum defines ONLY the per-message streaming phases.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    """
    Phase of a single message's generation session.

    idle -> started -> (reasoning)? -> texting -> ended | cancelled | errored
    """

    IDLE = "idle"
    STARTED = "started"
    REASONING = "reasoning"
    TEXTING = "texting"
    ENDED = "ended"
    CANCELLED = "cancelled"
    ERRORED = "errored"


TERMINAL_PHASES: frozenset[Phase] = frozenset({
    Phase.ENDED,
    Phase.CANCELLED,
    Phase.ERRORED,
})
