from __future__ import annotations

import json
import os
import sys
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

from singerpipe.core.logger import get_logger

DEFAULT_SCHEMA_VERSION = "1.0"

log = get_logger(__name__)

# Optional global bus for framework-wide access without changing signatures
_GLOBAL_BUS: Optional["EventBus"] = None


def set_global_bus(bus: Optional["EventBus"]) -> None:
    global _GLOBAL_BUS
    _GLOBAL_BUS = bus


def get_global_bus() -> Optional["EventBus"]:
    return _GLOBAL_BUS


def publish_event(
    *,
    stage: str,
    status: str,
    duration_ms: Optional[int] = None,
    counts: Optional[Dict[str, Any]] = None,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[Dict[str, Any]] = None,
) -> None:
    """Module-level helper to publish events to the global bus (if configured).

    Similar to the logging API but for functional events; a no-op when no bus
    is installed.
    """
    bus = _GLOBAL_BUS
    if bus is None:
        return
    bus.publish(
        stage=stage,
        status=status,
        duration_ms=duration_ms,
        counts=counts,
        details=details,
        error=error,
    )


class timed_stage:
    """Context manager to track duration of a stage and publish start/complete/fail events.

    Usage:
        with timed_stage("tap.sync", details={"tap": "tap-github"}) as stage:
            copied = tap.sync(context, writer)
            stage.counts = {"bytes": copied}
    """

    def __init__(
        self,
        stage: str,
        *,
        counts: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.stage = stage
        self.counts = counts
        self.details = details
        self._start_ms: Optional[int] = None

    def __enter__(self) -> "timed_stage":
        self._start_ms = int(time.time() * 1000)
        publish_event(stage=self.stage, status="started", details=self.details)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # type: ignore
        duration_ms = int(time.time() * 1000) - (self._start_ms or 0)
        if exc_type is not None:
            error_info = {
                "code": exc_type.__name__,
                "message": str(exc_val),
            }
            publish_event(
                stage=self.stage,
                status="failed",
                duration_ms=duration_ms,
                counts=self.counts,
                details=self.details,
                error=error_info,
            )
        else:
            publish_event(
                stage=self.stage,
                status="completed",
                duration_ms=duration_ms,
                counts=self.counts,
                details=self.details,
            )
        return False  # Don't suppress exceptions


@dataclass
class FunctionalEvent:
    """Structured functional event for pipeline lifecycle and metrics.

    Decoupled from debug logging; designed for progress lines and durable JSONL.
    """

    schema_version: str = DEFAULT_SCHEMA_VERSION
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    seq_no: int = 0
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    run_id: str = "-"
    pipeline_name: str = "-"

    stage: str = "-"  # e.g., pipeline, tap.sync, target.process
    status: str = "-"  # started|completed|failed

    duration_ms: Optional[int] = None
    counts: Optional[Dict[str, Any]] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None


class EventObserver:
    """Observer interface for handling functional events."""

    # Whether this observer should be periodically flushed when the queue is idle.
    periodic_flush: bool = True

    def handle(self, event: FunctionalEvent) -> None:  # pragma: no cover
        raise NotImplementedError


class StderrObserver(EventObserver):
    """Emit concise human-readable progress to stderr (stdout carries messages)."""

    def handle(self, event: FunctionalEvent) -> None:
        counts = event.counts or {}
        duration = f" duration_ms={event.duration_ms}" if event.duration_ms is not None else ""
        msg = (
            f"{event.ts} | run={event.run_id} | pipe={event.pipeline_name} | "
            f"{event.stage} {event.status}{duration}"
        )
        if counts:
            msg += f" | counts={counts}"
        if event.error:
            brief_err = {k: event.error.get(k) for k in ("code", "message") if k in event.error}
            msg += f" | error={brief_err}"
        print(msg, file=sys.stderr)


class MemoryJSONLObserver(EventObserver):
    """In-memory JSONL buffer that writes once on flush.

    Layout: <base_path>/<pipeline_name>/<YYYY-MM-DD>/<run_id>.jsonl
    """

    periodic_flush: bool = False

    def __init__(self, base_path: str, pipeline_name: str, run_id: str) -> None:
        self._buf: List[str] = []
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        self.dir_path = os.path.join(base_path, pipeline_name, date_str)
        self.file_path = os.path.join(self.dir_path, f"{run_id}.jsonl")

    @property
    def events(self) -> List[Dict[str, Any]]:
        return [json.loads(rec) for rec in self._buf]

    def handle(self, event: FunctionalEvent) -> None:
        self._buf.append(json.dumps(asdict(event), ensure_ascii=False, default=str))

    def flush(self) -> None:
        if not self._buf:
            return
        os.makedirs(self.dir_path, exist_ok=True)
        content_bytes = ("\n".join(self._buf) + "\n").encode("utf-8")
        with open(self.file_path, "wb") as f:
            f.write(content_bytes)


class EventBus:
    """Event bus with background dispatcher and bounded queue.

    Automatically tracks duration for paired started/completed events.
    """

    def __init__(
        self,
        *,
        run_id: str,
        pipeline_name: str,
        observers: Optional[List[EventObserver]] = None,
        queue_size: int = 10_000,
    ) -> None:
        self.run_id = str(run_id)
        self.pipeline_name = pipeline_name

        self._observers: List[EventObserver] = observers or []
        self._q: Queue[FunctionalEvent] = Queue(maxsize=max(1, queue_size))
        self._seq_no = 0
        self._seq_lock = threading.Lock()
        self._running = False
        self._worker: Optional[threading.Thread] = None
        self._dropped = 0
        self._stage_start_times: Dict[str, int] = {}

    @property
    def dropped(self) -> int:
        return self._dropped

    def _dispatch(self, evt: FunctionalEvent) -> None:
        for obs in self._observers:
            try:
                obs.handle(evt)
            except Exception:
                # Isolate observer failures from the pipeline
                log.warning(f"Event observer {type(obs).__name__} failed", exc_info=True)

    def _dispatch_loop(self) -> None:
        while self._running:
            try:
                evt = self._q.get(timeout=0.5)
            except Empty:
                for obs in self._observers:
                    if getattr(obs, "periodic_flush", True) is False:
                        continue
                    flush = getattr(obs, "flush", None)
                    if callable(flush):
                        flush()
                continue
            self._dispatch(evt)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._worker = threading.Thread(target=self._dispatch_loop, name="functional_event_bus", daemon=True)
        self._worker.start()

    def shutdown(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=2.0)
        # Drain any remaining items in queue
        while True:
            try:
                evt = self._q.get_nowait()
            except Empty:
                break
            self._dispatch(evt)
        for obs in self._observers:
            flush = getattr(obs, "flush", None)
            if callable(flush):
                flush()
        self._worker = None

    def publish(
        self,
        *,
        stage: str,
        status: str,
        duration_ms: Optional[int] = None,
        counts: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> None:
        now_ms = int(time.time() * 1000)

        with self._seq_lock:
            if status == "started":
                self._stage_start_times[stage] = now_ms
            elif status in ("completed", "failed") and duration_ms is None:
                start_ms = self._stage_start_times.pop(stage, None)
                if start_ms is not None:
                    duration_ms = now_ms - start_ms
            self._seq_no += 1
            seq_no = self._seq_no

        evt = FunctionalEvent(
            seq_no=seq_no,
            run_id=self.run_id,
            pipeline_name=self.pipeline_name,
            stage=stage,
            status=status,
            duration_ms=duration_ms,
            counts=counts,
            details=details,
            error=error,
        )
        try:
            self._q.put_nowait(evt)
        except Full:
            # Drop rather than block producers
            self._dropped += 1


def _env_flag(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val not in (None, "") else default


def build_default_bus(*, run_id: str, pipeline_name: str) -> Optional[EventBus]:
    """Construct an EventBus from environment variables.

    SINGERPIPE_EVENTS_ENABLED: "true" | "false" (default: "false")
    SINGERPIPE_EVENTS_TRANSPORTS: comma list of "stderr", "jsonl" (default: "stderr")
    SINGERPIPE_EVENTS_PATH: base path for the jsonl transport (default: "./pipeline_events")
    SINGERPIPE_EVENTS_QUEUE_SIZE: int (default: 10000)
    """
    enabled = _env_flag("SINGERPIPE_EVENTS_ENABLED", "false").lower() == "true"
    if not enabled:
        return None

    transports = [s.strip() for s in _env_flag("SINGERPIPE_EVENTS_TRANSPORTS", "stderr").split(",") if s.strip()]
    base_path = _env_flag("SINGERPIPE_EVENTS_PATH", "./pipeline_events")
    try:
        q_size = int(_env_flag("SINGERPIPE_EVENTS_QUEUE_SIZE", "10000"))
    except ValueError:
        q_size = 10000

    observers: List[EventObserver] = []
    if "stderr" in transports:
        observers.append(StderrObserver())
    if "jsonl" in transports:
        observers.append(MemoryJSONLObserver(base_path=base_path, pipeline_name=pipeline_name, run_id=run_id))

    return EventBus(run_id=run_id, pipeline_name=pipeline_name, observers=observers, queue_size=q_size)
