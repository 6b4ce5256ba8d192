"""Saves the current message through the persistence collaborator."""

from __future__ import annotations

import logging

from core.context import ProcessingContext
from core.models import ChatMessage, ProcessorResult
from core.ports import PersistencePort
from core.processor import ChatProcessor

LOGGER = logging.getLogger(__name__)


class PersistenceProcessor(ChatProcessor):
    name = "Database Save"
    default_priority = 20

    def __init__(self, store: PersistencePort) -> None:
        self._store = store

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        # At most one save per run, however many save processors are registered.
        if context.persisted:
            return ProcessorResult.ok()

        try:
            self._store.save(message)
        except Exception:
            LOGGER.exception("Error saving chat message for account %s", context.account_id)
            return ProcessorResult.failed("Failed to save to database")

        context.persisted = True
        return ProcessorResult.ok()
