from __future__ import annotations

import tempfile
import uuid
from dataclasses import dataclass, field
from typing import Optional

from singerpipe.core.events import build_default_bus, publish_event, set_global_bus, timed_stage
from singerpipe.core.logger import get_logger, push_run_id, reset_run_id
from singerpipe.models.tap_context import TapContext
from singerpipe.target.base import Target
from singerpipe.target.processor import ProcessingStats
from singerpipe.target.validation import SchemaContext
from singerpipe.tap.base import Tap
from singerpipe.tap.writer import MessageWriter

# Sync output larger than this spills from memory to a temporary file.
SPOOL_MAX_BYTES = 16 * 1024 * 1024


@dataclass
class PipelineResult:
    run_id: str
    pipeline_name: str
    bytes_synced: int
    stats: ProcessingStats = field(default_factory=ProcessingStats)

    def as_dict(self) -> dict:
        return {
            "status": "success",
            "run_id": self.run_id,
            "pipeline_name": self.pipeline_name,
            "bytes_synced": self.bytes_synced,
            "stats": self.stats.as_dict(),
        }


class SingerPipeline:
    """
    Runs a tap into a target in-process.

    The tap's sync output is spooled in full before the target reads it, so a
    failing tap never delivers a partial stream to the target.

    Example:
        >>> pipeline = SingerPipeline(pipeline_name="github-to-warehouse")
        >>> result = pipeline.run(ExternalTap("tap-github"), MyTarget(),
        ...                       tap_context=TapContext(config="config.json"))
        >>> result.stats.records
    """

    def __init__(self, pipeline_name: str = "singer", run_id: Optional[str] = None):
        self.pipeline_name = pipeline_name
        self.run_id = str(run_id) if run_id is not None else str(uuid.uuid4())

    def run(
        self,
        tap: Tap,
        target: Target,
        *,
        tap_context: Optional[TapContext] = None,
        schema_context: Optional[SchemaContext] = None,
    ) -> PipelineResult:
        log = get_logger(__name__)
        tap_context = tap_context or TapContext()
        schema_context = schema_context if schema_context is not None else SchemaContext()

        token = push_run_id(self.run_id)
        bus = build_default_bus(run_id=self.run_id, pipeline_name=self.pipeline_name)
        if bus is not None:
            bus.start()
            set_global_bus(bus)
        try:
            log.info(f"Pipeline '{self.pipeline_name}' started with run_id={self.run_id}")
            publish_event(stage="pipeline", status="started")
            result = self._run(tap, target, tap_context, schema_context)
            publish_event(stage="pipeline", status="completed", counts=result.stats.as_dict())
            log.info(f"Pipeline '{self.pipeline_name}' completed: {result.stats.records} records")
            return result
        except Exception as exc:
            publish_event(
                stage="pipeline",
                status="failed",
                error={"code": type(exc).__name__, "message": str(exc)},
            )
            raise
        finally:
            reset_run_id(token)
            if bus is not None:
                bus.shutdown()
            set_global_bus(None)

    def _run(
        self,
        tap: Tap,
        target: Target,
        tap_context: TapContext,
        schema_context: SchemaContext,
    ) -> PipelineResult:
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as spool:
            writer = MessageWriter(spool)
            with timed_stage("tap.sync", details={"tap": type(tap).__name__}) as stage:
                tap.sync(tap_context, writer)
                sink = writer.into_inner()
                bytes_synced = sink.tell()
                stage.counts = {"bytes": bytes_synced}

            sink.seek(0)
            with timed_stage("target.process", details={"target": type(target).__name__}) as stage:
                stats = target.process_reader(schema_context, sink)
                stage.counts = stats.as_dict()

        return PipelineResult(
            run_id=self.run_id,
            pipeline_name=self.pipeline_name,
            bytes_synced=bytes_synced,
            stats=stats,
        )
