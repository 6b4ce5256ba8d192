"""Remote control of the account by its relay avatar.

The relay avatar can IM the account a small set of commands:

- ``//sit <uuid>``: sit on an object
- ``//stand``: stand up
- ``//say <text>``: speak in local chat
- ``//im <uuid> <text>``: send an IM on the account's behalf

Every command gets a ``✓``/``✗`` IM back so the sender knows what happened.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Optional

from core.context import ProcessingContext
from core.models import ChatMessage, CommandResult, ProcessorResult
from core.ports import AccountLookupPort, Connection
from core.processor import ChatProcessor
from core.processors.relay import relay_target, same_identity

LOGGER = logging.getLogger(__name__)

_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
SIT_RE = re.compile(rf"^//sit\s+({_UUID})$", re.IGNORECASE)
STAND_RE = re.compile(r"^//stand$", re.IGNORECASE)
SAY_RE = re.compile(r"^//say\s+(.+)$", re.IGNORECASE | re.DOTALL)
IM_RE = re.compile(rf"^//im\s+({_UUID})\s+(.+)$", re.IGNORECASE | re.DOTALL)

USAGE = "Supported commands: //sit <uuid>, //stand, //say <message>, //im <uuid> <message>"


def _parse_uuid(raw: str) -> Optional[str]:
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        return None


async def run_relay_command(connection: Connection, text: str) -> CommandResult:
    """Execute one relay command against the connection."""

    command = text.strip()

    match = SIT_RE.match(command)
    if match:
        target = _parse_uuid(match.group(1))
        if target is None:
            return CommandResult(False, f"Invalid UUID format: {match.group(1)}")
        if await connection.set_sitting(True, target):
            return CommandResult(True, f"Sitting on object {target}")
        return CommandResult(False, f"Failed to sit on object {target} - object not found or unreachable")

    if STAND_RE.match(command):
        if await connection.set_sitting(False):
            return CommandResult(True, "Standing up")
        return CommandResult(False, "Failed to stand up")

    match = SAY_RE.match(command)
    if match:
        said = match.group(1).strip()
        if not said:
            return CommandResult(False, "Say command requires a message")
        await connection.send_chat(said)
        return CommandResult(True, f"Said in local chat: {said}")

    match = IM_RE.match(command)
    if match:
        target = _parse_uuid(match.group(1))
        if target is None:
            return CommandResult(False, f"Invalid UUID format: {match.group(1)}")
        body = match.group(2).strip()
        if not body:
            return CommandResult(False, "IM command requires a message")
        await connection.send_direct_message(body, target)
        return CommandResult(True, f"Sent IM to {target}: {body}")

    return CommandResult(False, f"Unknown command: {command}. {USAGE}")


class CommandRelayProcessor(ChatProcessor):
    name = "Avatar Command Relay"
    default_priority = 16

    def __init__(self, accounts: AccountLookupPort) -> None:
        self._accounts = accounts

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        if not message.is_direct or not message.sender_id:
            return ProcessorResult.ok()

        try:
            await self._handle(message, context)
        except Exception:
            LOGGER.exception("Error processing command relay for account %s", context.account_id)
        return ProcessorResult.ok()

    async def _handle(self, message: ChatMessage, context: ProcessingContext) -> None:
        target = relay_target(self._accounts.get_account(context.account_id))
        if target is None or not same_identity(message.sender_id, target):
            return

        if not context.is_connected:
            LOGGER.warning(
                "Account %s is not connected, cannot process relay command", context.account_id
            )
            return

        LOGGER.info(
            "Processing relay command from %s for account %s: %s",
            message.sender_name,
            context.account_id,
            message.message,
        )
        result = await run_relay_command(context.connection, message.message)
        if result.success:
            LOGGER.info("Relay command succeeded for account %s: %s", context.account_id, result.message)
            feedback = f"✓ {result.message}"
        else:
            LOGGER.warning("Relay command failed for account %s: %s", context.account_id, result.message)
            feedback = f"✗ {result.message}"
        await context.connection.send_direct_message(feedback, target)
