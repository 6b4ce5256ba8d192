"""Chat message processing pipeline.

This module is integration-agnostic. It only relies on ports for the world
connection and history, enabling different adapters without changes here.

For every message the orchestrator:
1) Builds a fresh ProcessingContext (connection + recent history)
2) Snapshots the registered processors, ordered by (priority, registration)
3) Runs each processor in turn, isolating its failures
4) Carries replacement messages forward to later processors
5) Dispatches replies through the account connection
6) Stops on a stop result, after the last processor, or on shutdown
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
import threading
from typing import Optional

from core.config import PipelineConfig
from core.context import ProcessingContext
from core.models import ChatMessage, ProcessorResult
from core.ports import Collaborators, ConnectionResolver, HistoryProvider
from core.processor import ChatProcessor, ProcessorEntry
from core.processors import builtin_processors

LOGGER = logging.getLogger(__name__)


def _normalize(message: ChatMessage) -> ChatMessage:
    if message.message is None:
        return dataclasses.replace(message, message="")
    return message


class ChatPipeline:
    """Registers chat processors and runs messages through them."""

    def __init__(
        self,
        connections: ConnectionResolver,
        history: HistoryProvider,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self._connections = connections
        self._history = history
        self._config = config or PipelineConfig()
        self._entries: dict[tuple[type, int], ProcessorEntry] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count()
        self._shutdown = False

    @property
    def config(self) -> PipelineConfig:
        return self._config

    def register(self, processor: ChatProcessor, priority: Optional[int] = None) -> None:
        """Add a processor, replacing any entry with the same type and priority."""

        if priority is None:
            priority = processor.default_priority
        key = (type(processor), priority)
        with self._lock:
            existing = self._entries.get(key)
            # A replaced entry keeps its slot among equal priorities.
            sequence = existing.sequence if existing else next(self._sequence)
            self._entries[key] = ProcessorEntry(
                processor=processor,
                priority=priority,
                name=processor.name,
                sequence=sequence,
            )
        LOGGER.debug("Registered chat processor %s with priority %s", processor.name, priority)

    def unregister(self, processor: ChatProcessor) -> int:
        """Remove every entry holding this processor instance."""

        with self._lock:
            keys = [key for key, entry in self._entries.items() if entry.processor is processor]
            for key in keys:
                del self._entries[key]
        for _ in keys:
            LOGGER.debug("Unregistered chat processor %s", processor.name)
        return len(keys)

    def entries(self) -> list[ProcessorEntry]:
        """Return the registered processors in execution order."""

        return list(self._snapshot())

    def _snapshot(self) -> tuple[ProcessorEntry, ...]:
        with self._lock:
            entries = list(self._entries.values())
        return tuple(sorted(entries, key=lambda entry: entry.sort_key))

    def request_shutdown(self) -> None:
        """Ask in-flight runs to stop before their next processor."""

        self._shutdown = True
        LOGGER.info("Chat pipeline shutdown requested")

    @property
    def shutting_down(self) -> bool:
        return self._shutdown

    async def process(self, message: ChatMessage, account_id: str) -> None:
        """Run one message through the pipeline.

        Never raises for processor or collaborator failures. If the calling
        task is cancelled, the current processor is allowed to finish and the
        cancellation is then re-raised.
        """

        message = _normalize(message)
        try:
            context = self._build_context(message, account_id)
            await self._run(message, context)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Error in chat processing pipeline for account %s", account_id)

    def _build_context(self, message: ChatMessage, account_id: str) -> ProcessingContext:
        session_id = message.session_id or self._config.default_session_id

        connection = None
        try:
            connection = self._connections.get_connection(account_id)
        except Exception:
            LOGGER.exception("Failed to resolve connection for account %s", account_id)

        history: tuple[ChatMessage, ...] = ()
        try:
            history = tuple(
                self._history.get_recent_history(account_id, session_id, self._config.history_limit)
            )
        except Exception:
            LOGGER.exception(
                "Failed to load chat history for account %s, session %s", account_id, session_id
            )

        return ProcessingContext(
            account_id=account_id,
            session_id=session_id,
            connection=connection,
            recent_history=history,
        )

    async def _run(self, message: ChatMessage, context: ProcessingContext) -> None:
        for entry in self._snapshot():
            if self._shutdown:
                LOGGER.debug("Chat processing for account %s stopped by shutdown", context.account_id)
                break

            # Shielded so that a cancelled run never interrupts a processor
            # halfway through a save or a broadcast.
            step = asyncio.ensure_future(self._invoke(entry, message, context))
            cancelled = False
            try:
                result = await asyncio.shield(step)
            except asyncio.CancelledError:
                cancelled = True
                result = await step

            if result is not None:
                if not result.success:
                    LOGGER.warning("Chat processor %s failed: %s", entry.name, result.error)
                if result.replacement is not None:
                    message = _normalize(result.replacement)
                if result.reply:
                    await self._dispatch_reply(result.reply, message, context)

            if cancelled:
                LOGGER.info(
                    "Chat processing for account %s cancelled after %s", context.account_id, entry.name
                )
                raise asyncio.CancelledError()

            if result is not None and not result.continue_processing:
                LOGGER.debug("Chat processing stopped by %s", entry.name)
                break

    async def _invoke(
        self, entry: ProcessorEntry, message: ChatMessage, context: ProcessingContext
    ) -> Optional[ProcessorResult]:
        try:
            return await entry.processor.process(message, context)
        except Exception:
            LOGGER.exception("Error in chat processor %s", entry.name)
            return None

    async def _dispatch_reply(self, text: str, message: ChatMessage, context: ProcessingContext) -> None:
        connection = context.connection
        if connection is None or not connection.is_connected:
            LOGGER.debug("No live connection for account %s, reply dropped", context.account_id)
            return

        try:
            if message.is_normal:
                await connection.send_chat(text)
            elif message.is_direct and message.sender_id:
                await connection.send_direct_message(text, message.sender_id)
            else:
                LOGGER.debug("No reply route for chat type %s", message.chat_type)
        except Exception:
            LOGGER.exception("Failed to send reply for account %s", context.account_id)


def build_pipeline(collaborators: Collaborators, config: Optional[PipelineConfig] = None) -> ChatPipeline:
    """Create a pipeline with every built-in processor at its default priority."""

    config = config or PipelineConfig()
    pipeline = ChatPipeline(collaborators.connections, collaborators.history, config)
    for processor in builtin_processors(collaborators, config):
        pipeline.register(processor)
    return pipeline
