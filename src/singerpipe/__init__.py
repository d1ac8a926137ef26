"""singerpipe.

Singer tap/target protocol engine: message models, a thread-safe line-delimited
message writer, an adapter for taps that run as external programs, and a
target-side reader that validates records against per-stream JSON schemas.
"""

from singerpipe.models.catalog import Catalog, CatalogStream, StreamMetadata
from singerpipe.models.messages import (
    Message,
    RecordMessage,
    SchemaMessage,
    StateMessage,
    parse_message,
    serialize_message,
)
from singerpipe.models.tap_context import TapContext
from singerpipe.pipeline import PipelineResult, SingerPipeline
from singerpipe.tap.base import Tap
from singerpipe.tap.external import ExternalTap
from singerpipe.tap.writer import MessageWriter
from singerpipe.target.base import Target
from singerpipe.target.processor import ProcessingStats, iter_messages
from singerpipe.target.validation import SchemaContext

__version__ = "0.1.0"

__all__ = [
    "Catalog",
    "CatalogStream",
    "ExternalTap",
    "Message",
    "MessageWriter",
    "PipelineResult",
    "ProcessingStats",
    "RecordMessage",
    "SchemaContext",
    "SchemaMessage",
    "SingerPipeline",
    "StateMessage",
    "StreamMetadata",
    "Tap",
    "TapContext",
    "Target",
    "iter_messages",
    "parse_message",
    "serialize_message",
]
