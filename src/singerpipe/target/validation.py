"""
Per-stream JSON schema registry.

Schemas are compiled once when a stream's SCHEMA message is first seen and
every RECORD for that stream is validated against the compiled form. All
schemas are interpreted as JSON Schema draft 4, whatever ``$schema`` they
declare.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List

from jsonschema import Draft4Validator
from jsonschema.exceptions import SchemaError as JSONSchemaError

from singerpipe.core.exceptions import (
    SchemaCompilationError,
    SchemaNotRegisteredError,
    SchemaValidationError,
)
from singerpipe.core.logger import get_logger
from singerpipe.models.messages import RecordMessage, SchemaMessage

SCHEMA_DRAFT = Draft4Validator

log = get_logger(__name__)


@dataclass(frozen=True)
class CompiledSchema:
    """A schema document together with the validator compiled from it.

    The validator is built from a private copy of the document, so later
    mutation of the SCHEMA message does not affect validation.
    """

    stream: str
    document: Dict[str, Any]
    validator: Draft4Validator = field(repr=False)

    @classmethod
    def compile(cls, stream: str, document: Dict[str, Any]) -> "CompiledSchema":
        owned = copy.deepcopy(document)
        try:
            SCHEMA_DRAFT.check_schema(owned)
        except JSONSchemaError as exc:
            raise SchemaCompilationError(stream, exc.message) from exc
        return cls(stream=stream, document=owned, validator=SCHEMA_DRAFT(owned))

    def is_valid(self, value: Any) -> bool:
        return self.validator.is_valid(value)

    def validate(self, value: Any) -> None:
        first = next(iter(self.validator.iter_errors(value)), None)
        if first is not None:
            raise SchemaValidationError(self.stream, first.message, list(first.absolute_path))


class SchemaContext:
    """Compiled validators keyed by stream name."""

    def __init__(self):
        self._schemas: Dict[str, CompiledSchema] = {}

    def has_schema(self, stream: str) -> bool:
        return stream in self._schemas

    def insert_schema(self, schema: SchemaMessage) -> CompiledSchema:
        """Compile and register ``schema``; a known stream keeps its validator."""
        existing = self._schemas.get(schema.stream)
        if existing is not None:
            return existing
        compiled = CompiledSchema.compile(schema.stream, schema.json_schema)
        self._schemas[schema.stream] = compiled
        log.debug(f"Registered schema for stream '{schema.stream}'")
        return compiled

    def validate_record(self, record: RecordMessage) -> None:
        compiled = self._schemas.get(record.stream)
        if compiled is None:
            raise SchemaNotRegisteredError(record.stream)
        if not compiled.is_valid(record.record):
            compiled.validate(record.record)

    def get(self, stream: str) -> CompiledSchema:
        try:
            return self._schemas[stream]
        except KeyError as exc:
            raise SchemaNotRegisteredError(stream) from exc

    @property
    def streams(self) -> List[str]:
        return list(self._schemas)

    def __contains__(self, stream: object) -> bool:
        return stream in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)
