import pytest

from singerpipe.core.exceptions import (
    SchemaCompilationError,
    SchemaNotRegisteredError,
    SchemaValidationError,
)
from singerpipe.models.messages import RecordMessage, SchemaMessage
from singerpipe.target.validation import SchemaContext

PERSON_SCHEMA = {
    "$schema": "http://json-schema.org/schema#",
    "title": "Person",
    "type": "object",
    "properties": {
        "id": {"type": "integer", "minimum": 1},
        "name": {"type": "string"},
    },
    "required": ["id", "name"],
}


def _people_schema(document=None) -> SchemaMessage:
    return SchemaMessage(stream="people", schema=document or PERSON_SCHEMA, key_properties=["id"])


def test_validate_record_requires_registered_schema():
    context = SchemaContext()

    for payload in ({"id": 1, "name": "Vincent"}, None, [], "anything"):
        with pytest.raises(SchemaNotRegisteredError) as exc:
            context.validate_record(RecordMessage.new("people", payload))
        assert exc.value.stream == "people"


def test_insert_schema_registers_stream():
    context = SchemaContext()
    assert not context.has_schema("people")

    context.insert_schema(_people_schema())

    assert context.has_schema("people")
    assert "people" in context
    assert context.streams == ["people"]
    assert len(context) == 1


def test_re_registering_keeps_original_validator():
    context = SchemaContext()
    first = context.insert_schema(_people_schema())

    second = context.insert_schema(_people_schema({"type": "object", "properties": {"id": {"type": "string"}}}))

    assert second is first
    assert context.get("people") is first
    # still validated against the original document
    context.validate_record(RecordMessage.new("people", {"id": 2, "name": "Jules"}))


def test_validation_boundary():
    context = SchemaContext()
    context.insert_schema(_people_schema())

    context.validate_record(RecordMessage.new("people", {"id": 1, "name": "Vincent"}))

    with pytest.raises(SchemaValidationError) as exc:
        context.validate_record(RecordMessage.new("people", {"id": 0, "name": "x"}))

    assert exc.value.stream == "people"
    assert exc.value.path == ["id"]
    assert "minimum" in exc.value.description or "less than" in exc.value.description


def test_validation_reports_missing_required_field():
    context = SchemaContext()
    context.insert_schema(_people_schema())

    with pytest.raises(SchemaValidationError) as exc:
        context.validate_record(RecordMessage.new("people", {"id": 3}))

    assert "'name' is a required property" in exc.value.description


def test_invalid_schema_document_fails_compilation():
    context = SchemaContext()

    with pytest.raises(SchemaCompilationError) as exc:
        context.insert_schema(_people_schema({"type": "not-a-type"}))

    assert exc.value.stream == "people"
    assert not context.has_schema("people")


def test_compiled_schema_owns_a_copy_of_the_document():
    document = {"type": "object", "properties": {"id": {"type": "integer"}}}
    context = SchemaContext()
    context.insert_schema(_people_schema(document))

    document["properties"]["id"]["type"] = "string"

    context.validate_record(RecordMessage.new("people", {"id": 5}))
    assert context.get("people").document["properties"]["id"]["type"] == "integer"


def test_get_unknown_stream_raises():
    with pytest.raises(SchemaNotRegisteredError):
        SchemaContext().get("nope")
