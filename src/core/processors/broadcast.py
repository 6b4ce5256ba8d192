"""Pushes the current message to the account's live web subscribers."""

from __future__ import annotations

import logging

from core.context import ProcessingContext
from core.models import ChatMessage, ProcessorResult
from core.ports import BroadcastPort
from core.processor import ChatProcessor

LOGGER = logging.getLogger(__name__)


class BroadcastProcessor(ChatProcessor):
    name = "Broadcast"
    default_priority = 30

    def __init__(self, broadcaster: BroadcastPort) -> None:
        self._broadcaster = broadcaster

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        if context.broadcast:
            return ProcessorResult.ok()

        try:
            await self._broadcaster.publish(context.account_id, message)
        except Exception:
            LOGGER.exception("Error broadcasting chat message for account %s", context.account_id)
            return ProcessorResult.failed("Failed to broadcast message")

        context.broadcast = True
        return ProcessorResult.ok()
