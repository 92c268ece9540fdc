"""
Immutable generation session state.

One GenerationSession exists per in-flight message. It is replaced, never
mutated, by orchestrator.reducer.reduce().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from orchestrator.enums.phase import Phase, TERMINAL_PHASES

if TYPE_CHECKING:
    from orchestrator.cancellation import CancellationToken


@dataclass(frozen=True)
class GenerationSession:
    """
    Ephemeral per-message generation state.

    Fields:
    - phase: current lifecycle phase
    - accumulated_text / accumulated_reasoning: everything emitted so far
    - text_started: a TEXT_START has been seen (reasoning may no longer open)
    - text_open: between TEXT_START and TEXT_END
    - cancellation_token: excluded from equality; the reducer never reads it
    """

    message_id: str
    phase: Phase = Phase.IDLE
    accumulated_text: str = ""
    accumulated_reasoning: str = ""
    text_started: bool = False
    text_open: bool = False
    cancellation_token: CancellationToken | None = field(
        default=None, compare=False, repr=False
    )

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def has_streamed_content(self) -> bool:
        return bool(self.accumulated_text or self.accumulated_reasoning)
