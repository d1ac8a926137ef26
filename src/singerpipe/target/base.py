from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from singerpipe.core.logger import get_logger
from singerpipe.models.messages import RecordMessage, SchemaMessage, StateMessage
from singerpipe.target.processor import MessageSource, ProcessingStats, process_reader
from singerpipe.target.validation import SchemaContext


class Target(ABC):
    """A consumer of Singer messages.

    Only ``process_record`` is required. Records reach it after they have been
    validated against their stream's schema.
    """

    def __init__(self):
        self.log = get_logger(self.__class__.__name__)

    # --- Required method ---
    @abstractmethod
    def process_record(self, record: RecordMessage) -> None:
        raise NotImplementedError

    # --- Optional hooks ---
    def process_state(self, state: StateMessage) -> None:
        pass

    def process_schema(self, context: SchemaContext, schema: SchemaMessage) -> None:
        """Register the stream's schema unless it is already known."""
        if not context.has_schema(schema.stream):
            context.insert_schema(schema)

    def process_reader(
        self,
        context: Optional[SchemaContext],
        source: MessageSource,
    ) -> ProcessingStats:
        """Read a message stream from ``source`` and dispatch each message in order."""
        if context is None:
            context = SchemaContext()
        return process_reader(self, context, source)
