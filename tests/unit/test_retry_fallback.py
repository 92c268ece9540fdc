# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest

import orchestrator.retry as retry_mod
from orchestrator.retry import (
    ParamRejectionClassifier,
    PatternParamRejectionClassifier,
    is_param_rejection_error,
    run_with_fallback,
)


class StatusError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def _recording_attempt(failures: list[BaseException | None]):
    calls: list[bool] = []

    async def attempt(with_optional_params: bool) -> str:
        calls.append(with_optional_params)
        failure = failures[len(calls) - 1]
        if failure is not None:
            raise failure
        return "ok"

    return attempt, calls


def test_default_classifier_patterns():
    assert is_param_rejection_error(Exception("400 Bad Request"))
    assert is_param_rejection_error(Exception("unknown PARAMETER: reasoning_effort"))
    assert is_param_rejection_error(StatusError("nope", 400))
    assert not is_param_rejection_error(Exception("connection reset"))
    assert not is_param_rejection_error(StatusError("server exploded", 500))


def test_classifier_is_replaceable():
    strict = PatternParamRejectionClassifier(patterns=("unsupported_parameter",), status_codes=())

    assert isinstance(strict, ParamRejectionClassifier)
    assert strict(Exception("error: unsupported_parameter"))
    assert not strict(Exception("400 Bad Request"))


@pytest.mark.asyncio
async def test_success_first_try_makes_one_attempt():
    attempt, calls = _recording_attempt([None])

    assert await run_with_fallback(attempt, has_optional_params=True) == "ok"
    assert calls == [True]


@pytest.mark.asyncio
async def test_param_rejection_retries_exactly_once_without_optional_params(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(retry_mod, "log_event", emitted.append)

    attempt, calls = _recording_attempt([Exception("400 Bad Request: reasoning"), None])

    result = await run_with_fallback(
        attempt,
        has_optional_params=True,
        context={"message_id": "msg_1"},
    )

    assert result == "ok"
    assert calls == [True, False]
    assert [e["event_type"] for e in emitted] == ["PARAM_REJECTION_FALLBACK"]
    assert emitted[0]["message_id"] == "msg_1"


@pytest.mark.asyncio
async def test_second_failure_propagates_and_never_loops():
    second = Exception("400 Bad Request again")
    attempt, calls = _recording_attempt([Exception("400 Bad Request"), second, None])

    with pytest.raises(Exception) as excinfo:
        await run_with_fallback(attempt, has_optional_params=True)

    assert excinfo.value is second
    assert calls == [True, False]


@pytest.mark.asyncio
async def test_no_optional_params_means_no_retry():
    attempt, calls = _recording_attempt([Exception("400 Bad Request"), None])

    with pytest.raises(Exception, match="400"):
        await run_with_fallback(attempt, has_optional_params=False)

    assert calls == [True]


@pytest.mark.asyncio
async def test_non_rejection_error_propagates_unchanged():
    original = ConnectionError("socket closed")
    attempt, calls = _recording_attempt([original])

    with pytest.raises(ConnectionError) as excinfo:
        await run_with_fallback(attempt, has_optional_params=True)

    assert excinfo.value is original
    assert calls == [True]


@pytest.mark.asyncio
async def test_custom_classifier_is_used():
    attempt, calls = _recording_attempt([Exception("400 Bad Request")])

    with pytest.raises(Exception):
        await run_with_fallback(
            attempt,
            has_optional_params=True,
            is_param_rejection_error=lambda exc: False,
        )

    assert calls == [True]
