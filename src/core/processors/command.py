"""Hands IM commands to the command collaborator."""

from __future__ import annotations

import logging

from core.context import ProcessingContext
from core.models import ChatMessage, ProcessorResult
from core.ports import CommandPort
from core.processor import ChatProcessor

LOGGER = logging.getLogger(__name__)


class CommandProcessor(ChatProcessor):
    """Executes recognised IM commands and answers with their response text.

    Authorization lives in the collaborator; a denied command is simply a
    result without a response.
    """

    name = "Commands"
    default_priority = 40

    def __init__(self, commands: CommandPort) -> None:
        self._commands = commands

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        if not message.is_direct or not message.sender_id:
            return ProcessorResult.ok()

        try:
            if not self._commands.is_command(message.message):
                return ProcessorResult.ok()

            result = await self._commands.execute(
                context.account_id,
                message.sender_id,
                message.sender_name,
                message.message,
            )
        except Exception:
            LOGGER.exception("Error processing command from %s", message.sender_name)
            return ProcessorResult.ok()

        LOGGER.info(
            "Processed command from %s: success=%s, message=%s",
            message.sender_name,
            result.success,
            result.message,
        )
        if result.success and result.message:
            return ProcessorResult.respond(result.message)
        return ProcessorResult.ok()
