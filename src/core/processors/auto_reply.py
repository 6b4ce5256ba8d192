"""Asks the auto-reply generator for an answer to local chat."""

from __future__ import annotations

import logging

from core.context import ProcessingContext
from core.models import ChatMessage, ProcessorResult
from core.ports import AutoReplyPort
from core.processor import ChatProcessor

LOGGER = logging.getLogger(__name__)


class AutoReplyProcessor(ChatProcessor):
    name = "AI Chat"
    default_priority = 50

    def __init__(self, generator: AutoReplyPort) -> None:
        self._generator = generator

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        if not message.is_normal or not message.sender_id:
            return ProcessorResult.ok()

        try:
            if not self._generator.is_enabled:
                return ProcessorResult.ok()
            response = await self._generator.respond(message, context.recent_history)
        except Exception:
            LOGGER.exception("Error generating auto-reply for message from %s", message.sender_name)
            return ProcessorResult.ok()

        if not response:
            return ProcessorResult.ok()

        LOGGER.debug("Auto-reply to %s: %s", message.sender_name, response)
        return ProcessorResult.respond(response)
