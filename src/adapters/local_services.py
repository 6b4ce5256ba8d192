"""Local, configuration-driven collaborators.

These adapters stand in for the world connection and the helper services
when chat is replayed offline. They satisfy the same ports as the live
integrations, so the pipeline cannot tell the difference.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence
from urllib.parse import parse_qs

from core.models import ChatMessage, CommandResult

LOGGER = logging.getLogger(__name__)

AGENT_LINK_RE = re.compile(r"secondlife:///app/agent/([^/\s]+)/(about|inspect|displayname)", re.IGNORECASE)


@dataclass(frozen=True)
class SentChat:
    """One outbound send recorded by a ConsoleConnection."""

    kind: str
    text: str
    target_id: Optional[str] = None


class ConsoleConnection:
    """Connection that logs and records sends instead of talking to a grid."""

    def __init__(self, agent_id: Optional[str] = None, connected: bool = True) -> None:
        self._agent_id = agent_id
        self._connected = connected
        self.sitting_on: Optional[str] = None
        self.sent: list[SentChat] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def agent_id(self) -> Optional[str]:
        return self._agent_id

    def disconnect(self) -> None:
        self._connected = False

    async def send_chat(self, text: str) -> None:
        LOGGER.info("[chat] %s", text)
        self.sent.append(SentChat(kind="chat", text=text))

    async def send_direct_message(self, text: str, target_id: str) -> None:
        LOGGER.info("[im -> %s] %s", target_id, text)
        self.sent.append(SentChat(kind="im", text=text, target_id=target_id))

    async def set_sitting(self, sitting: bool, target_id: Optional[str] = None) -> bool:
        if sitting and not target_id:
            return False
        self.sitting_on = target_id if sitting else None
        return True


class ConnectionRegistry:
    """Maps account ids to their connections."""

    def __init__(self) -> None:
        self._connections: dict[str, ConsoleConnection] = {}

    def add(self, account_id: str, connection: ConsoleConnection) -> None:
        self._connections[account_id] = connection

    def get_connection(self, account_id: str) -> Optional[ConsoleConnection]:
        return self._connections.get(account_id)


class DisplayNameLinkRewriter:
    """Replaces agent links with display names it knows about.

    Links whose id is not a valid UUID, or whose agent is unknown, are left
    exactly as they were.
    """

    def __init__(self, display_names: Optional[dict[str, str]] = None) -> None:
        self._names = {key.lower(): value for key, value in (display_names or {}).items()}

    async def rewrite(self, text: str, account_id: str) -> str:
        def _replace(match: re.Match) -> str:
            raw_id = match.group(1)
            try:
                agent_id = str(uuid.UUID(raw_id))
            except ValueError:
                return match.group(0)
            return self._names.get(agent_id, match.group(0))

        return AGENT_LINK_RE.sub(_replace, text)


class PrefixCommandHandler:
    """Answers ``<prefix><name>&key=value`` messages from allowed senders.

    The prefix comes from configuration (``command=`` by default).

    Responses come from configuration; senders outside the allow list get a
    denial, which is a normal result rather than an error.
    """

    def __init__(
        self,
        prefix: str = "command=",
        allowed_senders: Iterable[str] = (),
        responses: Optional[dict[str, str]] = None,
    ) -> None:
        self._prefix = prefix.lower()
        self._allowed = {sender.lower() for sender in allowed_senders}
        self._responses = {key.lower(): value for key, value in (responses or {}).items()}

    def is_command(self, text: str) -> bool:
        if not text or not text.strip():
            return False
        return text.lstrip().lower().startswith(self._prefix)

    def parse(self, text: str) -> tuple[str, dict[str, list[str]]]:
        """Split ``<prefix><name>&key=value`` into the command name and its arguments."""

        body = text.strip()[len(self._prefix):]
        name, _, query = body.partition("&")
        return name.strip().lower(), parse_qs(query, keep_blank_values=True)

    async def execute(self, account_id: str, sender_id: str, sender_name: str, text: str) -> CommandResult:
        if self._allowed and sender_id.lower() not in self._allowed:
            LOGGER.info("Command from %s denied for account %s", sender_name, account_id)
            return CommandResult(False, "Not authorized")

        name, args = self.parse(text)
        if name not in self._responses:
            return CommandResult(False, f"Unknown command: {name or '(empty)'}")
        LOGGER.debug("Command %s from %s with args %s", name, sender_name, args)
        return CommandResult(True, self._responses[name])


class KeywordAutoReply:
    """Replies with a canned answer when chat mentions a configured keyword.

    The same answer is not sent twice in a row to one session.
    """

    def __init__(self, enabled: bool = False, replies: Optional[dict[str, str]] = None) -> None:
        self._enabled = enabled
        self._replies = {key.lower(): value for key, value in (replies or {}).items()}
        self._last_sent: dict[tuple[str, str], str] = {}

    @property
    def is_enabled(self) -> bool:
        return self._enabled and bool(self._replies)

    async def respond(self, message: ChatMessage, history: Sequence[ChatMessage]) -> Optional[str]:
        lowered = (message.message or "").lower()
        for keyword in sorted(self._replies):
            if keyword in lowered:
                reply = self._replies[keyword]
                session = (message.account_id, message.session_id or "")
                if self._last_sent.get(session) == reply:
                    return None
                self._last_sent[session] = reply
                return reply
        return None
