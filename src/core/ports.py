"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the world connection, storage,
broadcast and helper services so that the core can be reused with different
backends. Storage-style ports are synchronous like the SQLite adapter;
anything that talks to the network is a coroutine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from core.models import AccountRecord, ChatMessage, CommandResult


class Connection(Protocol):
    """Live connection of one account to the world server."""

    @property
    def is_connected(self) -> bool:
        ...

    @property
    def agent_id(self) -> Optional[str]:
        ...

    async def send_chat(self, text: str) -> None:
        ...

    async def send_direct_message(self, text: str, target_id: str) -> None:
        ...

    async def set_sitting(self, sitting: bool, target_id: Optional[str] = None) -> bool:
        ...


class ConnectionResolver(Protocol):
    def get_connection(self, account_id: str) -> Optional[Connection]:
        ...


class HistoryProvider(Protocol):
    def get_recent_history(
        self, account_id: str, session_id: str, limit: int
    ) -> Sequence[ChatMessage]:
        """Return up to ``limit`` messages for the session, oldest first."""
        ...


class PersistencePort(Protocol):
    def save(self, message: ChatMessage) -> None:
        """Persist a message; raise on failure."""
        ...


class BroadcastPort(Protocol):
    async def publish(self, account_id: str, message: ChatMessage) -> None:
        """Push a message to every subscriber of the account; raise on failure."""
        ...


class GroupPolicyPort(Protocol):
    def is_ignored(self, account_id: str, group_id: str) -> bool:
        ...


class LinkRewriterPort(Protocol):
    async def rewrite(self, text: str, account_id: str) -> str:
        ...


class CommandPort(Protocol):
    def is_command(self, text: str) -> bool:
        ...

    async def execute(
        self, account_id: str, sender_id: str, sender_name: str, text: str
    ) -> CommandResult:
        ...


class AutoReplyPort(Protocol):
    @property
    def is_enabled(self) -> bool:
        ...

    async def respond(
        self, message: ChatMessage, history: Sequence[ChatMessage]
    ) -> Optional[str]:
        ...


class AccountLookupPort(Protocol):
    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        ...


@dataclass(frozen=True)
class Collaborators:
    """Everything the built-in processors and the orchestrator consume."""

    connections: ConnectionResolver
    history: HistoryProvider
    persistence: PersistencePort
    broadcast: BroadcastPort
    group_policy: GroupPolicyPort
    link_rewriter: LinkRewriterPort
    commands: CommandPort
    auto_reply: AutoReplyPort
    accounts: AccountLookupPort
