"""
Model resolution tier enumeration.

Rules:
- Values are the wire/log names of each tier.
- Priority order lives in orchestrator.resolution, not here.
"""

from __future__ import annotations

from enum import Enum


class ResolutionSource(str, Enum):
    """Which tier supplied the resolved model configuration."""

    EXPLICIT = "explicit"
    CONVERSATION = "conversation"
    USER_DEFAULT = "user-default"
    SYSTEM_DEFAULT = "system-default"
    NONE = "none"
