"""
Retry-with-capability-fallback (v1).

Purpose:
- Recover locally when a provider rejects an optional parameter
  (e.g. reasoning effort) by re-issuing the request once without it
- Keep the rejection heuristic swappable per provider

Rules:
- attempt(True) first; attempt(False) at most once; never loop
- Only a parameter-rejection error with optional params present retries
- Every other error, and any second failure, propagates unchanged
- Cancellation is NOT a failure and must never trigger a retry
"""
from __future__ import annotations

import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar, runtime_checkable

from observability.logger import log_event

from constants import PARAM_REJECTION_PATTERNS, PARAM_REJECTION_STATUS_CODES


T = TypeVar("T")


# =============================================================================
# Classification
# =============================================================================

@runtime_checkable
class ParamRejectionClassifier(Protocol):
    """
    Decides whether an error means "the provider rejected an optional
    parameter".

    This is a heuristic: a false negative simply means no retry, a false
    positive costs one extra provider call.
    """

    def __call__(self, error: BaseException) -> bool: ...


@dataclass(frozen=True)
class PatternParamRejectionClassifier:
    """
    Default classifier: case-insensitive substring match over the error
    text, plus an optional HTTP status code match (`status_code` attribute,
    as carried by openai.APIStatusError).
    """

    patterns: tuple[str, ...] = PARAM_REJECTION_PATTERNS
    status_codes: tuple[int, ...] = PARAM_REJECTION_STATUS_CODES

    def __call__(self, error: BaseException) -> bool:
        status = getattr(error, "status_code", None)
        if status is not None and status in self.status_codes:
            return True

        if not self.patterns:
            return False
        pattern = "|".join(re.escape(p) for p in self.patterns)
        return re.search(pattern, str(error), flags=re.IGNORECASE) is not None


is_param_rejection_error: ParamRejectionClassifier = PatternParamRejectionClassifier()


# =============================================================================
# Policy
# =============================================================================

async def run_with_fallback(
    attempt: Callable[[bool], Awaitable[T]],
    *,
    has_optional_params: bool,
    is_param_rejection_error: Callable[[BaseException], bool] = is_param_rejection_error,
    context: dict[str, object] | None = None,
) -> T:
    """
    Run attempt(with_optional_params=True), falling back once to
    attempt(with_optional_params=False) on a parameter rejection.

    Args:
        attempt:
            Coroutine factory taking `with_optional_params`.
        has_optional_params:
            Whether the first attempt actually carries optional params.
            If False, no retry can strip anything, so none is made.
        is_param_rejection_error:
            Classifier for the first attempt's error.
        context:
            Extra fields for the fallback log event.
    """
    try:
        return await attempt(True)
    except Exception as exc:
        if not has_optional_params or not is_param_rejection_error(exc):
            raise

        log_event({
            "ts_ms": time.time_ns() // 1_000_000,
            "event_type": "PARAM_REJECTION_FALLBACK",
            "exception": type(exc).__name__,
            "message": str(exc),
            **(context or {}),
        })

    return await attempt(False)
