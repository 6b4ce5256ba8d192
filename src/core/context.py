"""Per-run processing context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from core.models import ChatMessage
from core.ports import Connection


@dataclass
class ProcessingContext:
    """Mutable scratch state shared by the processors of one pipeline run.

    The orchestrator creates a fresh instance for every message and drops it
    when the run ends, so nothing here leaks between runs or accounts.
    ``recent_history`` is ordered oldest first and is fetched before any
    processor runs, so it never contains the message being processed.
    """

    account_id: str
    session_id: str
    connection: Optional[Connection] = None
    recent_history: tuple[ChatMessage, ...] = field(default_factory=tuple)
    persisted: bool = False
    broadcast: bool = False

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and bool(self.connection.is_connected)
