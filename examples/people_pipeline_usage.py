"""
Example: running an in-process tap into a validating target.

Run it directly, or use the module as a CLI plugin:

    PYTHONPATH=examples singerpipe --plugin people_pipeline_usage sync people --config unused.json
"""

from singerpipe import (
    Catalog,
    MessageWriter,
    RecordMessage,
    SchemaContext,
    SchemaMessage,
    SingerPipeline,
    StateMessage,
    Tap,
    TapContext,
    Target,
)
from singerpipe.tap.registry import register_tap

PEOPLE_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "integer"},
        "name": {"type": "string"},
        "email": {"type": ["string", "null"]},
    },
    "required": ["id", "name"],
}

PEOPLE = [
    {"id": 1, "name": "Ada", "email": "ada@example.com"},
    {"id": 2, "name": "Grace", "email": None},
]


@register_tap("people")
class PeopleTap(Tap):
    def discover(self, context: TapContext) -> Catalog:
        return Catalog(streams=[{"stream": "people", "tap_stream_id": "people", "schema": PEOPLE_SCHEMA}])

    def sync(self, context: TapContext, writer: MessageWriter) -> None:
        writer.write_schema(SchemaMessage(stream="people", schema=PEOPLE_SCHEMA, key_properties=["id"]))
        for person in PEOPLE:
            writer.write_record(RecordMessage.new("people", person))
        writer.write_state(StateMessage(value={"people": {"last_id": PEOPLE[-1]["id"]}}))


class PrintTarget(Target):
    def process_record(self, record: RecordMessage) -> None:
        print(f"{record.stream}: {record.record}")

    def process_state(self, state: StateMessage) -> None:
        print(f"checkpoint: {state.value}")


if __name__ == "__main__":
    schemas = SchemaContext()
    result = SingerPipeline(pipeline_name="people").run(PeopleTap(), PrintTarget(), schema_context=schemas)
    print(f"Run {result.run_id} completed")
    print(f"   Streams: {schemas.streams}")
    print(f"   Stats: {result.stats.as_dict()}")
