"""
Adapter for taps that run as a separate program.

The program is resolved the way ``subprocess.Popen`` resolves executables
(``PATH`` lookup when the name is not a path). In sync mode the child's stdout
is copied byte-for-byte into a ``MessageWriter``; framing is the child's
responsibility. The copy runs until stdout reaches EOF and only then waits for
the exit status, so a child whose stdout stays open after it exits (for
example because a grandchild inherited the descriptor) blocks the copy. No
timeout is applied; callers that need one must terminate the process
themselves, and whatever was copied before that point stays in the writer.
"""

from __future__ import annotations

import json
import subprocess
import tempfile
from typing import IO, Dict, List, Mapping, Optional

from singerpipe.core.exceptions import (
    DeserializationError,
    SingerIOError,
    TapCommandError,
    TapExecError,
)
from singerpipe.models.catalog import Catalog
from singerpipe.models.tap_context import TapContext
from singerpipe.tap.base import Tap
from singerpipe.tap.writer import MessageWriter

COPY_CHUNK_SIZE = 64 * 1024
TAP_NO_STDERR_MESSAGE = "The taps process exited with an error but didn't write any data to stderr"


class ExternalTap(Tap):
    def __init__(
        self,
        tap: str,
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
    ):
        super().__init__()
        self.tap = tap
        self.env: Optional[Dict[str, str]] = dict(env) if env is not None else None
        self.cwd = cwd

    def _spawn(self, args: List[str], *, stdout: int, stderr) -> subprocess.Popen:
        try:
            return subprocess.Popen(
                [self.tap, *args],
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
                env=self.env,
                cwd=self.cwd,
            )
        except OSError as exc:
            raise TapExecError(self.tap, exc) from exc

    @staticmethod
    def _exit_status(returncode: int) -> tuple[Optional[int], Optional[int]]:
        # Popen reports death by signal N as -N.
        if returncode < 0:
            return None, -returncode
        return returncode, None

    def discover(self, context: TapContext) -> Catalog:
        """Run the tap with ``--discover`` and parse its stdout as a catalog.

        Raises:
            OptionNotSetError: ``config`` is not set on the context.
            TapExecError: the tap could not be started.
            TapCommandError: the tap exited unsuccessfully; ``detail`` is the
                JSON error it wrote to stderr.
            DeserializationError: stdout (or stderr on failure) was not the
                expected JSON.
        """
        args = context.discover_args()
        self.log_info(f"Running discovery: {self.tap}")
        proc = self._spawn(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        try:
            stdout, stderr = proc.communicate()
        except OSError as exc:
            raise SingerIOError(f"failed reading output of {self.tap!r}", exc) from exc

        if proc.returncode != 0:
            exit_code, signal = self._exit_status(proc.returncode)
            try:
                error_value = json.loads(stderr)
            except ValueError as exc:
                raise DeserializationError(f"tap stderr is not JSON: {exc}") from exc
            raise TapCommandError(exit_code, json.dumps(error_value, separators=(",", ":")), signal=signal)

        catalog = Catalog.from_json(stdout)
        self.log_info(f"Discovery completed: {len(catalog.streams)} streams")
        return catalog

    def sync(self, context: TapContext, writer: MessageWriter) -> int:
        """Run the tap in sync mode, copying its stdout into ``writer``.

        Returns the number of bytes copied.

        Raises:
            OptionNotSetError: ``config`` is not set on the context.
            TapExecError: the tap could not be started.
            TapCommandError: the tap exited unsuccessfully; ``detail`` is the
                last non-empty stderr line.
        """
        args = context.sync_args()
        self.log_info(f"Running sync: {self.tap}")

        # stderr goes to a temp file so a chatty tap cannot stall on a full
        # stderr pipe while we are blocked reading stdout.
        with tempfile.TemporaryFile() as stderr_file:
            proc = self._spawn(args, stdout=subprocess.PIPE, stderr=stderr_file)
            assert proc.stdout is not None

            try:
                copied = _copy_stream(proc.stdout, writer)
            except OSError as exc:
                _terminate(proc)
                raise SingerIOError(f"failed copying output of {self.tap!r}", exc) from exc
            except BaseException:
                _terminate(proc)
                raise
            finally:
                proc.stdout.close()

            returncode = proc.wait()
            self.log_debug(f"Tap exited with {returncode} after {copied} bytes")

            if returncode != 0:
                exit_code, signal = self._exit_status(returncode)
                stderr_file.seek(0)
                detail = _last_nonempty_line(stderr_file) or TAP_NO_STDERR_MESSAGE
                raise TapCommandError(exit_code, detail, signal=signal)

        self.log_info(f"Sync completed: {copied} bytes")
        return copied


def _terminate(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.wait()


def _copy_stream(source: IO[bytes], writer: MessageWriter) -> int:
    copied = 0
    read = getattr(source, "read1", source.read)
    while True:
        chunk = read(COPY_CHUNK_SIZE)
        if not chunk:
            return copied
        copied += writer.write(chunk)


def _last_nonempty_line(stream: IO[bytes]) -> Optional[str]:
    last: Optional[str] = None
    for raw in stream:
        line = raw.decode("utf-8", errors="replace").strip()
        if line:
            last = line
    return last
