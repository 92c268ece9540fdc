"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for every tunable behavior of the streaming engine.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Placeholder content
# =============================================================================

# A message entity is never content-less: empty text is represented by this.
PLACEHOLDER_TEXT: Final[str] = "\u200b"

# =============================================================================
# Batching / flushing
# =============================================================================

# Display side: max latency between a chunk arriving and reaching the store
CHUNK_FLUSH_INTERVAL_MS: Final[int] = 16

# Generation side: adjacent chunks of one kind are coalesced for this long
EVENT_BATCH_INTERVAL_MS: Final[int] = 16

# =============================================================================
# Provider connectivity
# =============================================================================

# Read timeout is the safety net bounding cancellation latency
PROVIDER_TIMEOUT_S: Final[float] = 60.0

# SDK-level transport retries (fallback retry is handled separately)
PROVIDER_MAX_RETRIES: Final[int] = 0

DEFAULT_OPENAI_MODEL: Final[str] = "gpt-4o"

# =============================================================================
# Parameter-rejection fallback
# =============================================================================

PARAM_REJECTION_PATTERNS: Final[Tuple[str, ...]] = (
    "400",
    "Bad Request",
    "Unknown parameter",
    "reasoning",
)

PARAM_REJECTION_STATUS_CODES: Final[Tuple[int, ...]] = (400,)

# =============================================================================
# Reasoning
# =============================================================================

REASONING_EFFORTS: Final[Tuple[str, ...]] = ("low", "medium", "high")

# =============================================================================
# Model resolution
# =============================================================================

NO_MODELS_WARNING: Final[str] = "no models available"

# =============================================================================
# Conversations / titles
# =============================================================================

DEFAULT_CONVERSATION_TITLE: Final[str] = "New Chat"

TITLE_PROMPT: Final[str] = (
    "Generate a concise 3-8 word title for this conversation. "
    "Return ONLY the title."
)
TITLE_USER_MAX_CHARS: Final[int] = 500
TITLE_ASSISTANT_MAX_CHARS: Final[int] = 1000
TITLE_MAX_CHARS: Final[int] = 100
TITLE_TOKEN_PREFIX: Final[str] = "title-"

# =============================================================================
# Structured output
# =============================================================================

STRUCTURED_PARSE_PREVIEW_CHARS: Final[int] = 200

# =============================================================================
# Request channel
# =============================================================================

PAYLOAD_PREVIEW_CHARS: Final[int] = 100
