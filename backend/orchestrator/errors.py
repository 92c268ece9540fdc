"""
Generation error hierarchy and user-facing error descriptions.

describe_error() is the single place where an exception raised anywhere
in a generation is mapped to an ErrorCode plus the text shown to the user.
"""

from __future__ import annotations

import openai

from orchestrator.enums.error_code import ErrorCode


# -------------------------
# Exceptions
# -------------------------

class GenerationError(Exception):
    """Base class for errors raised by the generation pipeline itself."""

    code: ErrorCode = ErrorCode.INTERNAL


class NoModelAvailableError(GenerationError):
    """
    Raised when model resolution yields no configuration.

    Carries the resolution warnings so they can be surfaced to the user.
    """

    code = ErrorCode.NO_MODEL

    def __init__(self, message: str, warnings: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.warnings = warnings


class ModelConfigError(GenerationError):
    """Raised when the resolved model configuration is unusable."""

    code = ErrorCode.CONFIGURATION


class StructuredOutputError(GenerationError):
    """
    Raised when a response expected to have a specific shape cannot be
    parsed (direct parse and salvage both failed) or fails validation.
    """

    code = ErrorCode.PARSE


# -------------------------
# Description
# -------------------------

def describe_error(exc: BaseException) -> tuple[ErrorCode, str]:
    """
    Map an exception to (code, user-facing message).

    Typed SDK exceptions are matched first; anything else falls back to
    substring rules over the message text.
    """
    message = str(exc) or type(exc).__name__

    if isinstance(exc, GenerationError):
        return exc.code, message

    if isinstance(exc, openai.AuthenticationError):
        return ErrorCode.AUTH, "Invalid API key. Please check your model configuration."
    if isinstance(exc, openai.RateLimitError):
        return ErrorCode.RATE_LIMIT, "Rate limit exceeded. Please try again later."
    if isinstance(exc, openai.APIConnectionError):
        # APITimeoutError is a subclass
        return ErrorCode.NETWORK, "Network error. Please check your connection and try again."
    if isinstance(exc, openai.NotFoundError):
        return ErrorCode.MODEL_NOT_FOUND, f"Model not available: {message}"
    if isinstance(exc, openai.BadRequestError):
        return ErrorCode.BAD_REQUEST, f"Request rejected by provider: {message}"

    lowered = message.lower()
    if "api key" in lowered:
        return ErrorCode.AUTH, "Invalid API key. Please check your model configuration."
    if "rate limit" in lowered:
        return ErrorCode.RATE_LIMIT, "Rate limit exceeded. Please try again later."
    if "network" in lowered or "fetch" in lowered or "connection" in lowered:
        return ErrorCode.NETWORK, "Network error. Please check your connection and try again."
    if "model" in lowered:
        return ErrorCode.MODEL_NOT_FOUND, f"Model not available: {message}"

    return ErrorCode.PROVIDER, f"Provider service error: {message}"
