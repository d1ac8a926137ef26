"""
Singer wire messages.

Each message is a pydantic model tagged by an uppercase ``type`` field, and
``Message`` is the discriminated union over the three variants. A message is
framed on the wire as one compact JSON object per line.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from singerpipe.core.exceptions import DeserializationError, InvalidConversionError

MessageKind = Literal["schema", "record", "state"]

StreamName = Annotated[str, Field(min_length=1)]


class _BaseMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @property
    def kind(self) -> MessageKind:
        return self.type.lower()  # type: ignore[attr-defined]

    def is_schema(self) -> bool:
        return isinstance(self, SchemaMessage)

    def is_record(self) -> bool:
        return isinstance(self, RecordMessage)

    def is_state(self) -> bool:
        return isinstance(self, StateMessage)

    def as_schema(self) -> Optional["SchemaMessage"]:
        return self if isinstance(self, SchemaMessage) else None

    def as_record(self) -> Optional["RecordMessage"]:
        return self if isinstance(self, RecordMessage) else None

    def as_state(self) -> Optional["StateMessage"]:
        return self if isinstance(self, StateMessage) else None

    @classmethod
    def from_message(cls, message: "_BaseMessage"):
        """Narrow ``message`` to this variant or raise ``InvalidConversionError``."""
        if not isinstance(message, cls):
            expected = cls.model_fields["type"].default.lower()
            raise InvalidConversionError(expected=expected, found=message.kind)
        return message

    def to_json(self) -> str:
        return serialize_message(self)  # type: ignore[arg-type]


class SchemaMessage(_BaseMessage):
    type: Literal["SCHEMA"] = "SCHEMA"
    stream: StreamName
    json_schema: Dict[str, Any] = Field(alias="schema")
    key_properties: List[str]
    bookmark_properties: Optional[List[str]] = None


class RecordMessage(_BaseMessage):
    type: Literal["RECORD"] = "RECORD"
    stream: StreamName
    record: Any
    version: Optional[str] = None
    time_extracted: Optional[datetime] = None

    @field_validator("time_extracted")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def new(cls, stream: str, record: Any) -> "RecordMessage":
        return cls(stream=stream, record=record)


class StateMessage(_BaseMessage):
    type: Literal["STATE"] = "STATE"
    value: Any


Message = Annotated[
    Union[SchemaMessage, RecordMessage, StateMessage],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def serialize_message(message: Message) -> str:
    """Serialize a message to a single line of compact JSON (no trailing newline)."""
    return message.model_dump_json(by_alias=True)


def parse_message(data: Union[str, bytes], *, line_number: Optional[int] = None) -> Message:
    """Decode one JSON object into a message.

    Raises:
        DeserializationError: malformed JSON, unknown ``type`` or missing fields.
    """
    try:
        return _MESSAGE_ADAPTER.validate_json(data)
    except ValidationError as exc:
        raise DeserializationError(_describe(exc), line_number=line_number) from exc


def message_from_dict(payload: Dict[str, Any]) -> Message:
    try:
        return _MESSAGE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise DeserializationError(_describe(exc)) from exc


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(p) for p in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]
