"""
Cooperative cancellation registry.

Responsibilities:
- Issue one CancellationToken per generation
- Alias a token under its provisional request id and its final message id
- Cancel by either id
- Drop bookkeeping once a generation has resolved

Non-responsibilities:
- NO task cancellation (adapters observe tokens at chunk boundaries)
- NO terminal event emission
- NO retry logic

The registry is the only state shared by concurrent generation tasks and
may also be touched from transport threads, so every access to the map
holds a threading.Lock. Token callbacks always run outside that lock.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from observability.logger import log_event


class GenerationCancelledError(Exception):
    """Raised by CancellationToken.raise_if_cancelled()."""


# ---------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------

class CancellationToken:
    """
    One-way cancellation flag.

    Semantics:
    - is_cancelled flips from False to True exactly once
    - cancel() returns True only for the call that flipped it
    - callbacks registered via on_cancel() run once, on the flipping call
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "CANCEL_CALLBACK_FAILED",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
        return True

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register a callback; runs immediately if already cancelled."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelledError("generation cancelled")


# ---------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------

class CancellationManager:
    """
    Process-wide registry of active generation tokens.

    Lifecycle:
    1. create_token(request_id) before the message id exists
    2. register_token(message_id, token) once the placeholder is allocated
    3. cancel(request_id | message_id) from a stop request
    4. complete(message_id) exactly once after the terminal event
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[str, CancellationToken] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_token(self, token_id: str) -> CancellationToken:
        """
        Create a fresh token under token_id.

        An existing token under the same id is cancelled and replaced.
        """
        token = CancellationToken()
        with self._lock:
            previous = self._tokens.get(token_id)
            self._tokens[token_id] = token

        if previous is not None:
            previous.cancel()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CANCEL_TOKEN_REPLACED",
                "token_id": token_id,
            })
        return token

    def register_token(self, token_id: str, token: CancellationToken) -> None:
        """
        Register an existing token under an additional id.

        A different token already registered under token_id is cancelled.
        """
        with self._lock:
            previous = self._tokens.get(token_id)
            self._tokens[token_id] = token

        if previous is not None and previous is not token:
            previous.cancel()

    def cancel(self, token_id: str) -> bool:
        """
        Cancel the token registered under token_id.

        Returns:
            True if this call cancelled it; False if unknown or already cancelled.
        """
        with self._lock:
            token = self._tokens.get(token_id)

        if token is None:
            return False

        cancelled = token.cancel()
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CANCEL_REQUESTED",
            "token_id": token_id,
            "decision": "cancelled" if cancelled else "already_cancelled",
        })
        return cancelled

    def complete(self, token_id: str) -> None:
        """Remove token_id and every other id aliasing the same token."""
        with self._lock:
            token = self._tokens.pop(token_id, None)
            if token is None:
                return
            for alias in [k for k, v in self._tokens.items() if v is token]:
                del self._tokens[alias]

    def get_token(self, token_id: str) -> CancellationToken | None:
        with self._lock:
            return self._tokens.get(token_id)

    def cancel_all(self) -> int:
        """Cancel every registered token. Returns how many were cancelled."""
        with self._lock:
            tokens = {id(t): t for t in self._tokens.values()}.values()
        return sum(1 for token in tokens if token.cancel())

    @property
    def active_count(self) -> int:
        """Number of distinct registered tokens."""
        with self._lock:
            return len({id(t) for t in self._tokens.values()})


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000
