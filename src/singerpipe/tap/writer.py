"""
Line-delimited message writer.

A ``MessageWriter`` is a handle onto a shared, lock-guarded buffered sink.
``clone()`` hands out further handles onto the same lock and buffer so several
threads can emit messages concurrently; each ``write_message`` call lands as one
uninterrupted JSON object plus newline, but ordering across threads is not
defined. ``into_inner()`` returns the sink only when exactly one handle is
left; a handle stops counting once it is released, reclaimed or garbage
collected.
"""

from __future__ import annotations

import io
import sys
import threading
import weakref
from typing import BinaryIO, Optional, Union

from singerpipe.core.exceptions import (
    SingerIOError,
    WriterClosedError,
    WriterOwnershipError,
    WriterPoisonedError,
)
from singerpipe.core.logger import get_logger
from singerpipe.models.messages import (
    Message,
    RecordMessage,
    SchemaMessage,
    StateMessage,
    serialize_message,
)

DEFAULT_BUFFER_SIZE = 8 * 1024
NEWLINE = b"\n"

log = get_logger(__name__)


class _SharedSink:
    """The sink, its buffer and lock, plus a count of live writer handles."""

    def __init__(self, sink: BinaryIO, buffer_size: int):
        self.sink = sink
        self.buffer_size = max(1, buffer_size)
        self.buffer = bytearray()
        # Reentrant so a handle collected by gc inside a locked section can still drop itself.
        self.lock = threading.RLock()
        self.owners = 1
        self.poisoned = False

    def drop_owner(self) -> None:
        with self.lock:
            self.owners -= 1

    def _drain(self) -> None:
        if not self.buffer:
            return
        data = bytes(self.buffer)
        self.buffer.clear()
        self.sink.write(data)

    def write_locked(self, *chunks: bytes) -> None:
        with self.lock:
            if self.poisoned:
                raise WriterPoisonedError()
            try:
                for chunk in chunks:
                    self.buffer += chunk
                if len(self.buffer) >= self.buffer_size:
                    self._drain()
            except OSError as exc:
                self.poisoned = True
                raise SingerIOError("failed writing to sink", exc) from exc
            except BaseException:
                self.poisoned = True
                raise

    def flush_locked(self) -> None:
        with self.lock:
            if self.poisoned:
                raise WriterPoisonedError()
            try:
                self._drain()
                flush = getattr(self.sink, "flush", None)
                if callable(flush):
                    flush()
            except OSError as exc:
                self.poisoned = True
                raise SingerIOError("failed flushing sink", exc) from exc


class MessageWriter:
    """Writes Singer messages to a binary sink, one JSON object per line."""

    def __init__(self, sink: BinaryIO, *, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self._attach(_SharedSink(sink, buffer_size))

    def _attach(self, shared: _SharedSink) -> None:
        # The owner count drops exactly once: on release, on reclaim or when the handle is collected.
        self._shared: Optional[_SharedSink] = shared
        self._finalizer = weakref.finalize(self, shared.drop_owner)

    @classmethod
    def _from_shared(cls, shared: _SharedSink) -> "MessageWriter":
        writer = cls.__new__(cls)
        writer._attach(shared)
        return writer

    @classmethod
    def to_stdout(cls) -> "MessageWriter":
        return cls(sys.stdout.buffer)

    @classmethod
    def to_buffer(cls, *, buffer_size: int = DEFAULT_BUFFER_SIZE) -> "MessageWriter":
        return cls(io.BytesIO(), buffer_size=buffer_size)

    def _require_shared(self) -> _SharedSink:
        if self._shared is None:
            raise WriterClosedError()
        return self._shared

    @property
    def owners(self) -> int:
        """Number of live handles onto this writer's sink."""
        shared = self._require_shared()
        with shared.lock:
            return shared.owners

    # --- Sharing ---
    def clone(self) -> "MessageWriter":
        shared = self._require_shared()
        with shared.lock:
            shared.owners += 1
        return MessageWriter._from_shared(shared)

    def release(self) -> None:
        """Drop this handle. Buffered bytes stay in place for the remaining handles."""
        if self._shared is None:
            return
        self._shared = None
        self._finalizer()

    def __enter__(self) -> "MessageWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # type: ignore
        self.release()
        return False

    # --- Writing ---
    def write_message(self, message: Message) -> None:
        shared = self._require_shared()
        payload = serialize_message(message).encode("utf-8")
        shared.write_locked(payload, NEWLINE)

    def write_schema(self, schema: SchemaMessage) -> None:
        self.write_message(schema)

    def write_record(self, record: RecordMessage) -> None:
        self.write_message(record)

    def write_state(self, state: StateMessage) -> None:
        self.write_message(state)

    def write(self, data: Union[bytes, bytearray, memoryview]) -> int:
        """Write raw bytes under the writer lock, with no framing applied.

        Raises ``TypeError`` for anything that is not a bytes-like object.
        """
        shared = self._require_shared()
        chunk = memoryview(data).tobytes()
        shared.write_locked(chunk)
        return len(chunk)

    def flush(self) -> None:
        self._require_shared().flush_locked()

    # --- Reclaim ---
    def into_inner(self) -> BinaryIO:
        """Flush and return the sink, consuming this handle.

        Raises:
            WriterOwnershipError: another handle onto the sink is still alive.
            WriterPoisonedError: a previous write failed while holding the lock.
        """
        shared = self._require_shared()
        with shared.lock:
            if shared.owners > 1:
                raise WriterOwnershipError(shared.owners)
            if shared.poisoned:
                raise WriterPoisonedError()
        shared.flush_locked()
        self._shared = None
        self._finalizer()
        log.debug("Reclaimed sink from message writer")
        return shared.sink

    def getvalue(self) -> bytes:
        """Flush and return everything written so far when the sink is a ``BytesIO``."""
        shared = self._require_shared()
        if not isinstance(shared.sink, io.BytesIO):
            raise TypeError("getvalue() is only available for in-memory writers")
        self.flush()
        return shared.sink.getvalue()
