"""
Target-side driver for a newline-delimited message stream.

Messages are decoded and dispatched strictly in arrival order. Processing stops
at the first decode, validation or handler error; the exception propagates
unchanged and nothing after the failing line is delivered.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Iterable, Iterator, Protocol, Tuple, Union

from singerpipe.core.exceptions import SingerError
from singerpipe.core.logger import get_logger
from singerpipe.models.messages import (
    Message,
    RecordMessage,
    SchemaMessage,
    StateMessage,
    parse_message,
)
from singerpipe.target.validation import SchemaContext

log = get_logger(__name__)

# A file object, an iterable of lines, or a whole stream in one value.
MessageSource = Union[bytes, bytearray, str, Iterable[Union[bytes, str]]]


class MessageHandler(Protocol):
    def process_schema(self, context: SchemaContext, schema: SchemaMessage) -> None:
        ...

    def process_record(self, record: RecordMessage) -> None:
        ...

    def process_state(self, state: StateMessage) -> None:
        ...


@dataclass
class ProcessingStats:
    lines: int = 0
    schemas: int = 0
    records: int = 0
    states: int = 0

    @property
    def messages(self) -> int:
        return self.schemas + self.records + self.states

    def as_dict(self) -> dict:
        return {
            "lines": self.lines,
            "messages": self.messages,
            "schemas": self.schemas,
            "records": self.records,
            "states": self.states,
        }


def iter_messages(source: MessageSource) -> Iterator[Tuple[int, Message]]:
    """Yield ``(line_number, message)`` for every non-blank line of ``source``.

    ``source`` may be a binary or text file object, any iterable of lines, or
    a whole stream held in one ``bytes`` or ``str`` value.
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    elif isinstance(source, str):
        source = io.StringIO(source)
    for line_number, raw in enumerate(source, start=1):
        if not raw.strip():
            continue
        yield line_number, parse_message(raw, line_number=line_number)


def process_reader(
    handler: MessageHandler,
    context: SchemaContext,
    source: MessageSource,
) -> ProcessingStats:
    stats = ProcessingStats()
    try:
        for line_number, message in iter_messages(source):
            stats.lines = line_number
            if isinstance(message, SchemaMessage):
                handler.process_schema(context, message)
                stats.schemas += 1
            elif isinstance(message, RecordMessage):
                context.validate_record(message)
                handler.process_record(message)
                stats.records += 1
            else:
                handler.process_state(message)
                stats.states += 1
    except SingerError as exc:
        exc.messages_processed = stats.messages
        raise

    log.debug(
        f"Processed {stats.messages} messages: "
        f"schemas={stats.schemas} records={stats.records} states={stats.states}"
    )
    return stats
