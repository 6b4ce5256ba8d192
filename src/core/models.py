"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any world-client or transport-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

# Chat type tags as reported by the world client. The set is open: adapters
# may pass any other tag through and processors simply ignore it.
CHAT_NORMAL = "Normal"
CHAT_WHISPER = "Whisper"
CHAT_SHOUT = "Shout"
CHAT_IM = "IM"
CHAT_GROUP = "Group"
CHAT_SYSTEM = "System"

NULL_KEY = "00000000-0000-0000-0000-000000000000"


@dataclass(frozen=True)
class ChatMessage:
    """One chat or instant message flowing through the pipeline.

    Instances are never mutated; processors that change a message return a
    replacement built with ``dataclasses.replace``.
    """

    sender_name: str
    message: str
    chat_type: str
    timestamp: datetime
    account_id: str
    channel: int = 0
    sender_id: Optional[str] = None
    target_id: Optional[str] = None
    session_id: Optional[str] = None
    session_name: Optional[str] = None
    region_name: Optional[str] = None
    slt_time: Optional[str] = None
    slt_date_time: Optional[str] = None

    def _type_is(self, tag: str) -> bool:
        return (self.chat_type or "").lower() == tag.lower()

    @property
    def is_direct(self) -> bool:
        return self._type_is(CHAT_IM)

    @property
    def is_group(self) -> bool:
        return self._type_is(CHAT_GROUP)

    @property
    def is_normal(self) -> bool:
        return self._type_is(CHAT_NORMAL)


@dataclass(frozen=True)
class ProcessorResult:
    """Outcome of a single processor invocation."""

    success: bool = True
    error: Optional[str] = None
    replacement: Optional[ChatMessage] = None
    reply: Optional[str] = None
    continue_processing: bool = True

    @classmethod
    def ok(cls) -> "ProcessorResult":
        return cls()

    @classmethod
    def stop(cls) -> "ProcessorResult":
        return cls(continue_processing=False)

    @classmethod
    def failed(cls, error: str) -> "ProcessorResult":
        return cls(success=False, error=error)

    @classmethod
    def replaced(cls, message: ChatMessage) -> "ProcessorResult":
        return cls(replacement=message)

    @classmethod
    def respond(cls, text: str) -> "ProcessorResult":
        return cls(reply=text)


@dataclass(frozen=True)
class AccountRecord:
    """Account settings the processors need (relay target configuration)."""

    account_id: str
    display_name: str = ""
    avatar_relay_uuid: Optional[str] = None


@dataclass(frozen=True)
class CommandResult:
    """Result returned by a command collaborator or relay command."""

    success: bool
    message: Optional[str] = None
