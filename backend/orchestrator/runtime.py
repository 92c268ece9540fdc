"""
Generation runtime: the execution shell of the generation side.

Responsibilities:
- Run the send-message workflow (conversation, user turn, placeholder)
- Regenerate an existing assistant message in place
- Own one asyncio.Task per active generation
- Resolve the model, build parameters, call the adapter under the
  retry-with-fallback policy
- Drive the per-message StreamingLifecycle to exactly one terminal event
- Release cancellation bookkeeping on every terminal path
- Kick off title generation after the first exchange

Non-responsibilities:
- Transport (session.gateway / server.routes)
- Provider IO (adapters.llm)
- Display-side state (display.runtime)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from adapters.llm.base import GenerationAdapter, GenerationParams, GenerationResult
from context.message import ContentPart, Conversation, Message, Role, TextPart
from context.model_config import ModelConfig, validate_model_config
from context.text import has_meaningful_content
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.cancellation import (
    CancellationManager,
    CancellationToken,
    GenerationCancelledError,
)
from orchestrator.emitter import StreamEventEmitter
from orchestrator.errors import ModelConfigError, NoModelAvailableError
from orchestrator.events import Event, EventType, MessageAdded, MessageRemoved
from orchestrator.lifecycle import StreamingLifecycle
from orchestrator.reasoning_policy import resolve_reasoning_effort
from orchestrator.resolution import (
    ResolutionContext,
    ResolutionResult,
    adopt_system_default,
    resolve,
)
from orchestrator.retry import is_param_rejection_error, run_with_fallback
from services.message_repository import UnknownMessageError, new_id
from services.title_generation import (
    TitleGenerator,
    should_trigger_auto_generation,
    title_token_id,
)

from constants import DEFAULT_CONVERSATION_TITLE, PLACEHOLDER_TEXT, TITLE_TOKEN_PREFIX

if TYPE_CHECKING:
    from config import AppConfig
    from services.message_repository import MessageRepository
    from services.model_registry import ModelRegistry


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class GenerationInProgressError(Exception):
    """Raised when an operation conflicts with an active generation."""


# =============================================================================
# Requests / results
# =============================================================================

@dataclass(frozen=True)
class SendMessageRequest:
    """
    A user turn to append and answer.

    request_id is the provisional cancellation id; callers that may want
    to stop the generation before they learn the assistant message id
    should supply one.
    """
    text: str
    conversation_id: str | None = None
    attachments: tuple[ContentPart, ...] = ()
    model_id: str | None = None
    reasoning_effort: str | None = None
    request_id: str | None = None


@dataclass(frozen=True)
class SendMessageResult:
    request_id: str
    conversation_id: str
    user_message_id: str
    assistant_message_id: str


@dataclass(frozen=True)
class _GenerationJob:
    placeholder: Message
    token: CancellationToken
    explicit_model_id: str | None
    reasoning_effort: str | None


# =============================================================================
# Runtime
# =============================================================================

class GenerationRuntime:
    """
    Process-wide generation shell.

    Guarantees:
    - Every spawned generation emits START and exactly one terminal event
    - Terminal content is persisted before the terminal event is emitted
    - CancellationManager.complete() runs exactly once per generation
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        adapter: GenerationAdapter,
        repository: MessageRepository,
        registry: ModelRegistry,
        publish: Callable[[Event], Awaitable[None]],
        cancellation: CancellationManager | None = None,
        classifier: Callable[[BaseException], bool] = is_param_rejection_error,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config
        self._adapter = adapter
        self._repository = repository
        self._registry = registry
        self._publish = publish
        self._cancellation = cancellation or CancellationManager()
        self._classifier = classifier
        self._now_ms = now_ms
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._titles = TitleGenerator(
            adapter=adapter,
            repository=repository,
            cancellation=self._cancellation,
            publish=publish,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def cancellation(self) -> CancellationManager:
        return self._cancellation

    @property
    def active_generations(self) -> list[str]:
        return sorted(k for k in self._tasks if not k.startswith(TITLE_TOKEN_PREFIX))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_message(self, request: SendMessageRequest) -> SendMessageResult:
        """
        Persist the user turn and start generating the assistant reply.

        Returns as soon as the generation task is spawned.

        Raises:
            ValueError if the message has no content.
        """
        if not request.text.strip() and not request.attachments:
            raise ValueError("message has no content")

        request_id = request.request_id or new_id("req")
        token = self._cancellation.create_token(request_id)

        try:
            conversation = self._ensure_conversation(request.conversation_id, request.model_id)

            now = self._now_ms()
            content: list[ContentPart] = [TextPart(request.text)] if request.text else []
            content.extend(request.attachments)
            user_message = self._repository.add_message(Message(
                id=new_id("msg"),
                conversation_id=conversation.id,
                role=Role.USER,
                content=content,
                created_at_ms=now,
                updated_at_ms=now,
            ))
            await self._publish(MessageAdded(
                event_type=EventType.MESSAGE_ADDED,
                ts_ms=now,
                message=user_message,
            ))

            assistant_ts = max(self._now_ms(), now + 1)
            placeholder = Message(
                id=new_id("msg"),
                conversation_id=conversation.id,
                role=Role.ASSISTANT,
                content=[TextPart(PLACEHOLDER_TEXT)],
                created_at_ms=assistant_ts,
                updated_at_ms=assistant_ts,
            )
            self._cancellation.register_token(placeholder.id, token)
        except Exception:
            self._cancellation.complete(request_id)
            raise

        self._spawn(placeholder.id, self._run_generation(_GenerationJob(
            placeholder=placeholder,
            token=token,
            explicit_model_id=request.model_id,
            reasoning_effort=request.reasoning_effort,
        )))

        return SendMessageResult(
            request_id=request_id,
            conversation_id=conversation.id,
            user_message_id=user_message.id,
            assistant_message_id=placeholder.id,
        )

    def stop_generation(self, token_id: str) -> bool:
        """Cancel by provisional request id or assistant message id."""
        return self._cancellation.cancel(token_id)

    def cancel_title(self, conversation_id: str) -> bool:
        return self._titles.cancel(conversation_id)

    async def delete_message(self, message_id: str) -> bool:
        """
        Delete a message and announce the removal.

        Raises:
            GenerationInProgressError if the message is still generating.
        """
        if message_id in self._tasks:
            raise GenerationInProgressError(f"message {message_id} is still generating")

        deleted = self._repository.delete_message(message_id)
        if deleted is None:
            return False

        await self._publish(MessageRemoved(
            event_type=EventType.MESSAGE_REMOVED,
            ts_ms=self._now_ms(),
            conversation_id=deleted.conversation_id,
            message_id=deleted.id,
        ))
        return True

    async def regenerate_message(
        self,
        message_id: str,
        *,
        model_id: str | None = None,
        reasoning_effort: str | None = None,
    ) -> Message:
        """
        Re-run generation for an existing assistant message in place.

        The message keeps its id and position; its content is reset to the
        placeholder and only the messages before it are sent as context.
        Returns the cleared message as persisted.

        Raises:
            UnknownMessageError if the id is not stored.
            ValueError if the message is not an assistant message.
            GenerationInProgressError if it is still generating.
        """
        existing = self._repository.get_message(message_id)
        if existing is None:
            raise UnknownMessageError(message_id)
        if existing.role is not Role.ASSISTANT:
            raise ValueError("only assistant messages can be regenerated")
        if message_id in self._tasks:
            raise GenerationInProgressError(f"message {message_id} is still generating")

        placeholder = Message(
            id=existing.id,
            conversation_id=existing.conversation_id,
            role=Role.ASSISTANT,
            content=[TextPart(PLACEHOLDER_TEXT)],
            created_at_ms=existing.created_at_ms,
            updated_at_ms=self._now_ms(),
        )
        token = self._cancellation.create_token(message_id)
        try:
            cleared = self._repository.add_message(placeholder)
        except Exception:
            self._cancellation.complete(message_id)
            raise

        log_event({
            "event_type": "REGENERATE_REQUESTED",
            "message_id": message_id,
            "conversation_id": existing.conversation_id,
        })
        self._spawn(message_id, self._run_generation(_GenerationJob(
            placeholder=placeholder,
            token=token,
            explicit_model_id=model_id,
            reasoning_effort=reasoning_effort,
        )))
        return cleared

    def resolve_model(
        self,
        *,
        explicit_model_id: str | None = None,
        conversation_id: str | None = None,
    ) -> ResolutionResult:
        """Resolve the model for a request and log the decision."""
        conversation = (
            self._repository.get_conversation(conversation_id) if conversation_id else None
        )
        result = resolve(ResolutionContext(
            available_models=tuple(self._registry.list_models()),
            explicit_model_id=explicit_model_id,
            conversation_model_id=conversation.model_id if conversation else None,
            user_default_model_id=self._registry.get_default_model_id(),
        ))

        for warning in result.warnings:
            log_event({
                "event_type": "MODEL_RESOLUTION_WARNING",
                "conversation_id": conversation_id,
                "warning": warning,
            })
        log_event({
            "event_type": "MODEL_RESOLVED",
            "conversation_id": conversation_id,
            "source": result.source.value,
            "model_id": result.model_config.id if result.model_config else None,
            "trace": list(result.trace),
        })
        return result

    async def wait_idle(self) -> None:
        """Wait until every generation and title task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel everything in flight and wait for terminal events."""
        self._cancellation.cancel_all()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def _run_generation(self, job: _GenerationJob) -> None:
        message_id = job.placeholder.id
        lifecycle = StreamingLifecycle(
            placeholder=job.placeholder,
            repository=self._repository,
            emitter=StreamEventEmitter(
                publish=self._publish,
                batch_interval_ms=self._config.event_batch_interval_ms,
            ),
            token=job.token,
            now_ms=self._now_ms,
        )

        try:
            with timed("generation_duration", message_id=message_id):
                await lifecycle.start()
                model_config, params = self._prepare(job)
                lifecycle.model_id = model_config.id
                result = await self._generate(job, lifecycle, model_config, params)

            if job.token.is_cancelled or result.cancelled:
                await lifecycle.cancelled()
            else:
                await lifecycle.complete(result)
                self._maybe_generate_title(job.placeholder.conversation_id, model_config)

        except asyncio.CancelledError:
            job.token.cancel()
            if not lifecycle.session.is_terminal:
                await lifecycle.cancelled()
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            if lifecycle.session.is_terminal:
                raise
            await lifecycle.error(exc, was_cancelled=job.token.is_cancelled)

        finally:
            lifecycle.close()
            self._cancellation.complete(message_id)

    def _prepare(self, job: _GenerationJob) -> tuple[ModelConfig, GenerationParams]:
        resolution = self.resolve_model(
            explicit_model_id=job.explicit_model_id,
            conversation_id=job.placeholder.conversation_id,
        )
        model_config = resolution.model_config
        if model_config is None:
            raise NoModelAvailableError(
                "No AI model is configured. Add a model in settings.",
                resolution.warnings,
            )

        if self._config.auto_adopt_default_model:
            adopt_system_default(resolution, self._registry)

        problems = validate_model_config(model_config)
        if problems:
            raise ModelConfigError("; ".join(problems))

        params = GenerationParams.from_model(model_config).merged_over(
            self._config.default_params()
        )
        effort = resolve_reasoning_effort(
            job.reasoning_effort or self._config.reasoning_effort,
            model_config,
        )
        return model_config, replace(params, reasoning_effort=effort)

    async def _generate(
        self,
        job: _GenerationJob,
        lifecycle: StreamingLifecycle,
        model_config: ModelConfig,
        params: GenerationParams,
    ) -> GenerationResult:
        history = self._history_for(job.placeholder)

        async def attempt(with_optional_params: bool) -> GenerationResult:
            return await self._adapter.generate(
                messages=history,
                model_config=model_config,
                params=params,
                callbacks=lifecycle,
                token=job.token,
                system_prompt=self._config.system_prompt,
                include_reasoning=with_optional_params,
            )

        def is_rejection(exc: BaseException) -> bool:
            # A retry after content was streamed would duplicate output
            return not lifecycle.has_streamed_content and self._classifier(exc)

        return await run_with_fallback(
            attempt,
            has_optional_params=params.has_optional_params,
            is_param_rejection_error=is_rejection,
            context={"message_id": job.placeholder.id, "model": model_config.model_id},
        )

    def _history_for(self, placeholder: Message) -> list[Message]:
        """Meaningful messages positioned before the one being generated."""
        messages = self._repository.list_messages(placeholder.conversation_id)
        cut = next(
            (i for i, m in enumerate(messages) if m.id == placeholder.id),
            len(messages),
        )
        return [m for m in messages[:cut] if has_meaningful_content(m)]

    # ------------------------------------------------------------------
    # Titles
    # ------------------------------------------------------------------

    def _maybe_generate_title(self, conversation_id: str, model_config: ModelConfig) -> None:
        if not self._config.auto_generate_titles:
            return
        conversation = self._repository.get_conversation(conversation_id)
        if conversation is None or conversation.title != DEFAULT_CONVERSATION_TITLE:
            return
        if not should_trigger_auto_generation(self._repository.list_messages(conversation_id)):
            return
        self._spawn(
            title_token_id(conversation_id),
            self._generate_title(conversation_id, model_config),
        )

    async def _generate_title(self, conversation_id: str, model_config: ModelConfig) -> None:
        try:
            await self._titles.generate(conversation_id, model_config=model_config)
        except GenerationCancelledError:
            log_event({
                "event_type": "TITLE_GENERATION_CANCELLED",
                "conversation_id": conversation_id,
            })

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _ensure_conversation(self, conversation_id: str | None, model_id: str | None) -> Conversation:
        if conversation_id:
            existing = self._repository.get_conversation(conversation_id)
            if existing is not None:
                return existing
        return self._repository.create_conversation(
            conversation_id=conversation_id,
            title=DEFAULT_CONVERSATION_TITLE,
            model_id=model_id,
        )

    def _spawn(self, key: str, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks[key] = task

        def _cleanup(done: asyncio.Task[None]) -> None:
            if self._tasks.get(key) is done:
                del self._tasks[key]
            if done.cancelled():
                return
            exc = done.exception()
            if exc is not None:
                log_event({
                    "event_type": "GENERATION_TASK_FAILED",
                    "task": key,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

        task.add_done_callback(_cleanup)
