"""Chat processor contract.

A processor is one ordered, independently failing step of the chat pipeline.
Processors see the current message plus the shared per-run context and report
what should happen next through a ProcessorResult.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from core.context import ProcessingContext
from core.models import ChatMessage, ProcessorResult


class ChatProcessor(ABC):
    """Base class for pipeline processors."""

    # Human-readable name used in logs.
    name: str = "processor"
    # Only consulted when the processor is registered without a priority.
    default_priority: int = 100

    @abstractmethod
    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        """Handle one message.

        Expected failures are reported with ``ProcessorResult.failed`` rather
        than raised; anything that does escape is logged by the pipeline and
        treated as a no-op.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


@dataclass(frozen=True)
class ProcessorEntry:
    """A registered processor and its position in the pipeline."""

    processor: ChatProcessor
    priority: int
    name: str
    sequence: int

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.priority, self.sequence)
