"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PipelineConfig:
    """Settings for the chat processing pipeline."""

    # Number of prior messages handed to processors as context.
    history_limit: int = 10
    # Session used for local chat, which has no session id of its own.
    default_session_id: str = "local-chat"
    # Relayed IM bodies are clipped to this many characters.
    relay_max_chars: int = 800
    slt_timezone: str = "America/Los_Angeles"
