"""Drops traffic from groups the account has chosen to ignore."""

from __future__ import annotations

import logging

from core.context import ProcessingContext
from core.models import ChatMessage, ProcessorResult
from core.ports import GroupPolicyPort
from core.processor import ChatProcessor

LOGGER = logging.getLogger(__name__)


class GroupIgnoreFilterProcessor(ChatProcessor):
    """Stops the pipeline for group messages from ignored groups.

    Runs first so that ignored traffic is never stored, broadcast or answered.
    Policy lookups that fail let the message through.
    """

    name = "Group Ignore Filter"
    default_priority = 5

    def __init__(self, policy: GroupPolicyPort) -> None:
        self._policy = policy

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        if not message.is_group or not message.target_id:
            return ProcessorResult.ok()

        try:
            ignored = self._policy.is_ignored(context.account_id, message.target_id)
        except Exception:
            LOGGER.exception(
                "Error checking ignore status for group %s on account %s",
                message.target_id,
                context.account_id,
            )
            return ProcessorResult.ok()

        if ignored:
            LOGGER.debug(
                "Filtering out message from ignored group %s on account %s",
                message.target_id,
                context.account_id,
            )
            return ProcessorResult.stop()
        return ProcessorResult.ok()
