"""Rewrites world links and URLs embedded in chat text."""

from __future__ import annotations

import dataclasses
import logging

from core.context import ProcessingContext
from core.models import ChatMessage, ProcessorResult
from core.ports import LinkRewriterPort
from core.processor import ChatProcessor
from core.slt_time import SLT_ZONE, format_slt, format_slt_with_date

LOGGER = logging.getLogger(__name__)


class LinkRewriteProcessor(ChatProcessor):
    name = "URL Processing"
    default_priority = 10

    def __init__(self, rewriter: LinkRewriterPort, slt_zone: str = SLT_ZONE) -> None:
        self._rewriter = rewriter
        self._slt_zone = slt_zone

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        try:
            rewritten = await self._rewriter.rewrite(message.message, context.account_id)
        except Exception:
            # Unparseable links fall back to the original text.
            LOGGER.exception("Error processing URLs in chat message for account %s", context.account_id)
            return ProcessorResult.ok()

        if rewritten is None or rewritten == message.message:
            return ProcessorResult.ok()

        return ProcessorResult.replaced(
            dataclasses.replace(
                message,
                message=rewritten,
                slt_time=format_slt(message.timestamp, self._slt_zone),
                slt_date_time=format_slt_with_date(message.timestamp, self._slt_zone),
            )
        )
