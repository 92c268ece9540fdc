"""
Deterministic model resolution.

Priority order, first match wins:
1. explicit model id (per request)
2. conversation model id
3. user default model id
4. system default: earliest-created available model (ties broken by id)

Rules:
- resolve() is pure: same context -> equal result
- A named id missing from available_models is a warning, never fatal;
  resolution falls through to the next tier
- The "adopt system default as user default" side effect lives in
  adopt_system_default() and is applied only if the caller chooses to
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from context.model_config import ModelConfig
from orchestrator.enums.resolution_source import ResolutionSource
from constants import NO_MODELS_WARNING


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class ResolutionContext:
    """Pure input to resolve()."""
    available_models: tuple[ModelConfig, ...] = ()
    explicit_model_id: str | None = None
    conversation_model_id: str | None = None
    user_default_model_id: str | None = None


@dataclass(frozen=True)
class ResolutionResult:
    """
    Outcome of resolve().

    source names exactly the tier that supplied model_config;
    model_config is None iff source is NONE.
    """
    model_config: ModelConfig | None
    source: ResolutionSource
    trace: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolutionValidation:
    is_valid: bool
    errors: tuple[str, ...]
    result: ResolutionResult


class DefaultModelStore(Protocol):
    """Narrow view of the model registry used for auto-adoption."""

    def get_default_model_id(self) -> str | None: ...
    def set_default_model_id(self, model_id: str) -> None: ...


# (source, label used in trace/warnings)
_TIERS: tuple[tuple[ResolutionSource, str], ...] = (
    (ResolutionSource.EXPLICIT, "explicit model ID"),
    (ResolutionSource.CONVERSATION, "conversation model ID"),
    (ResolutionSource.USER_DEFAULT, "user default model ID"),
)


# =============================================================================
# Public API
# =============================================================================

def resolve(context: ResolutionContext) -> ResolutionResult:
    """Resolve which model configuration serves a request."""
    trace: list[str] = []
    warnings: list[str] = []

    if not context.available_models:
        trace.append("No models available")
        return ResolutionResult(
            model_config=None,
            source=ResolutionSource.NONE,
            trace=tuple(trace),
            warnings=(NO_MODELS_WARNING,),
        )

    by_id = {m.id: m for m in context.available_models}
    tier_ids = (
        context.explicit_model_id,
        context.conversation_model_id,
        context.user_default_model_id,
    )

    for (source, label), model_id in zip(_TIERS, tier_ids):
        if not model_id:
            continue
        trace.append(f"Checking {label}: {model_id}")
        model = by_id.get(model_id)
        if model is not None:
            trace.append(f"✓ Resolved from {label}")
            return ResolutionResult(
                model_config=model,
                source=source,
                trace=tuple(trace),
                warnings=tuple(warnings),
            )
        warning = f'{label[0].upper()}{label[1:]} "{model_id}" not found'
        trace.append(f"✗ {warning}")
        warnings.append(warning)

    system_default = min(
        context.available_models,
        key=lambda m: (m.created_at_ms, m.id),
    )
    trace.append(f"Using system default (earliest created): {system_default.id}")
    return ResolutionResult(
        model_config=system_default,
        source=ResolutionSource.SYSTEM_DEFAULT,
        trace=tuple(trace),
        warnings=tuple(warnings),
    )


def get_active_model_id(result: ResolutionResult) -> str | None:
    if result.model_config is None:
        return None
    return result.model_config.id


def validate_resolution(result: ResolutionResult) -> ResolutionValidation:
    """Check that a result is usable for a generation."""
    errors: list[str] = []

    if result.model_config is None:
        errors.append("No model could be resolved")
        errors.extend(result.warnings)
    else:
        if not result.model_config.model_id:
            errors.append(f"Model {result.model_config.id!r} has no provider model id")
        if result.source is ResolutionSource.NONE:
            errors.append("Resolved model has source 'none'")

    return ResolutionValidation(
        is_valid=not errors,
        errors=tuple(errors),
        result=result,
    )


def adopt_system_default(result: ResolutionResult, store: DefaultModelStore) -> bool:
    """
    Persist a system-default pick as the user default, once.

    Returns True if the default was adopted.
    """
    if result.source is not ResolutionSource.SYSTEM_DEFAULT or result.model_config is None:
        return False
    if store.get_default_model_id():
        return False
    store.set_default_model_id(result.model_config.id)
    return True
