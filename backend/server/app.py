"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (adapter, repository, registry, runtime)
- Register routes
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.llm.base import GenerationAdapter
from adapters.llm.streaming import OpenAIStreamingAdapter
from config import AppConfig
from observability.logger import log_event
from orchestrator.runtime import GenerationRuntime
from services.message_repository import InMemoryMessageRepository, MessageRepository
from services.model_registry import ModelRegistry, load_registry
from session.channel import EventBroadcaster
from session.gateway import ChatGateway

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    adapter: GenerationAdapter | None = None,
    repository: MessageRepository | None = None,
    registry: ModelRegistry | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with injected collaborators (fake adapter, seeded registry)
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    repository = repository or InMemoryMessageRepository()
    registry = registry if registry is not None else load_registry(config)

    # One adapter per process; it caches provider clients per endpoint/key
    adapter = adapter or OpenAIStreamingAdapter(
        timeout_s=config.provider_timeout_s,
        max_retries=config.provider_max_retries,
    )

    broadcaster = EventBroadcaster()
    runtime = GenerationRuntime(
        config=config,
        adapter=adapter,
        repository=repository,
        registry=registry,
        publish=broadcaster.publish,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        log_event({"event_type": "APP_STARTED", "env": config.env})
        yield
        await runtime.shutdown()
        log_event({"event_type": "APP_STOPPED", "env": config.env})

    app = FastAPI(title="Chat Streaming API", lifespan=lifespan)

    app.state.config = config
    app.state.repository = repository
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.runtime = runtime
    app.state.gateway = ChatGateway(runtime=runtime, repository=repository)

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # desktop shell loads from a local origin
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
