"""
Error codes carried by terminal Error events and error responses.

Rules:
- Codes are stable wire values; user-facing text is produced separately.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Classification of terminal generation failures.

    AUTH:
        Provider rejected the credentials.
    RATE_LIMIT:
        Provider throttled the request.
    NETWORK:
        Connection failure or provider read timeout.
    MODEL_NOT_FOUND:
        Provider does not know the configured model.
    BAD_REQUEST:
        Provider rejected the request (after any parameter fallback).
    NO_MODEL:
        Model resolution produced no configuration.
    CONFIGURATION:
        A model configuration is unusable (e.g. missing credentials).
    PARSE:
        Structured output could not be parsed or validated.
    PROVIDER:
        Any other provider-side failure.
    INTERNAL:
        Failure inside this process (e.g. illegal lifecycle transition).
    """

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    MODEL_NOT_FOUND = "model_not_found"
    BAD_REQUEST = "bad_request"
    NO_MODEL = "no_model"
    CONFIGURATION = "configuration"
    PARSE = "parse"
    PROVIDER = "provider"
    INTERNAL = "internal"
