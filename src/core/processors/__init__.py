"""Built-in chat processors, listed in default priority order."""

from __future__ import annotations

from core.config import PipelineConfig
from core.ports import Collaborators
from core.processor import ChatProcessor
from core.processors.auto_reply import AutoReplyProcessor
from core.processors.broadcast import BroadcastProcessor
from core.processors.command import CommandProcessor
from core.processors.command_relay import CommandRelayProcessor
from core.processors.ignore_filter import GroupIgnoreFilterProcessor
from core.processors.link_rewrite import LinkRewriteProcessor
from core.processors.persistence import PersistenceProcessor
from core.processors.relay import RelayProcessor

__all__ = [
    "AutoReplyProcessor",
    "BroadcastProcessor",
    "CommandProcessor",
    "CommandRelayProcessor",
    "GroupIgnoreFilterProcessor",
    "LinkRewriteProcessor",
    "PersistenceProcessor",
    "RelayProcessor",
    "builtin_processors",
]


def builtin_processors(collaborators: Collaborators, config: PipelineConfig) -> list[ChatProcessor]:
    return [
        GroupIgnoreFilterProcessor(collaborators.group_policy),
        LinkRewriteProcessor(collaborators.link_rewriter, config.slt_timezone),
        RelayProcessor(collaborators.accounts, config.relay_max_chars),
        CommandRelayProcessor(collaborators.accounts),
        PersistenceProcessor(collaborators.persistence),
        BroadcastProcessor(collaborators.broadcast),
        CommandProcessor(collaborators.commands),
        AutoReplyProcessor(collaborators.auto_reply),
    ]
