"""Forwards incoming IMs to the account's configured relay avatar."""

from __future__ import annotations

import logging
from typing import Optional

from core.context import ProcessingContext
from core.models import NULL_KEY, AccountRecord, ChatMessage, ProcessorResult
from core.ports import AccountLookupPort
from core.processor import ChatProcessor

LOGGER = logging.getLogger(__name__)

RELAY_MAX_CHARS = 800
ELLIPSIS = "..."


def agent_link(agent_id: str) -> str:
    """Viewer link that renders as a clickable agent name."""

    return f"secondlife:///app/agent/{agent_id}/about"


def truncate_relay_text(text: str, max_chars: int = RELAY_MAX_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + ELLIPSIS


def format_relay_message(sender_id: str, text: str, max_chars: int = RELAY_MAX_CHARS) -> str:
    return f"[IM RELAY] {agent_link(sender_id)} containing: {truncate_relay_text(text, max_chars)}"


def same_identity(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()


def relay_target(account: Optional[AccountRecord]) -> Optional[str]:
    """Return the account's relay avatar, or None when unset or the null key."""

    if account is None:
        return None
    target = (account.avatar_relay_uuid or "").strip()
    if not target or same_identity(target, NULL_KEY):
        return None
    return target


class RelayProcessor(ChatProcessor):
    """Sends a copy of every incoming IM to the relay avatar.

    Loops are avoided by never relaying to the account itself, never
    relaying the account's own IMs and never relaying IMs that came from the
    relay avatar.
    """

    name = "IM Relay"
    default_priority = 15

    def __init__(self, accounts: AccountLookupPort, max_chars: int = RELAY_MAX_CHARS) -> None:
        self._accounts = accounts
        self._max_chars = max_chars

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        if not message.is_direct or not message.sender_id:
            return ProcessorResult.ok()

        try:
            await self._relay(message, context)
        except Exception:
            LOGGER.exception("Error processing IM relay for account %s", context.account_id)
        return ProcessorResult.ok()

    async def _relay(self, message: ChatMessage, context: ProcessingContext) -> None:
        account = self._accounts.get_account(context.account_id)
        if account is None:
            LOGGER.warning("Account %s not found for IM relay", context.account_id)
            return

        target = relay_target(account)
        if target is None:
            LOGGER.debug("Account %s has no relay avatar configured", context.account_id)
            return

        own_id = context.connection.agent_id if context.connection is not None else None
        if same_identity(target, own_id):
            LOGGER.warning(
                "Account %s has its relay avatar set to its own id %s, not relaying",
                context.account_id,
                own_id,
            )
            return
        if same_identity(message.sender_id, own_id):
            LOGGER.debug("Skipping IM relay for own message on account %s", context.account_id)
            return
        if same_identity(message.sender_id, target):
            LOGGER.debug("Skipping IM relay from relay avatar on account %s", context.account_id)
            return

        if not context.is_connected:
            LOGGER.warning("Cannot relay IM, account %s is not connected", context.account_id)
            return

        body = format_relay_message(message.sender_id, message.message, self._max_chars)
        await context.connection.send_direct_message(body, target)
        LOGGER.info(
            "Relayed IM from %s to relay avatar %s for account %s",
            message.sender_name,
            target,
            context.account_id,
        )
