"""
Custom exception classes for the singerpipe framework.

Every failure surfaced by the protocol engine derives from ``SingerError`` so
callers can catch the whole family, while the concrete subclasses carry the
structured details (exit code, stderr text, stream name, violation) needed to
render an actionable message.
"""

from typing import Any, List, Optional


class SingerError(Exception):
    """Base exception class for all singerpipe exceptions."""

    # Set by the stream processor when a read aborts part way through.
    messages_processed: Optional[int] = None


class TapExecError(SingerError):
    """
    Raised when a tap process could not be started at all.

    This differs from ``TapCommandError``: the executable was never run
    (not found, permission denied, ...), so there is no exit code.
    """

    def __init__(self, tap: str, cause: OSError):
        self.tap = tap
        self.cause = cause
        super().__init__(f"Failed to exec the command {tap!r}: {cause}")


class TapCommandError(SingerError):
    """
    Raised when a tap process ran but did not exit successfully.

    ``exit_code`` is ``None`` when the process was killed by a signal, in which
    case ``signal`` holds the signal number.
    """

    def __init__(self, exit_code: Optional[int], detail: str, *, signal: Optional[int] = None):
        self.exit_code = exit_code
        self.detail = detail
        self.signal = signal
        status = f"exit code ({exit_code})" if exit_code is not None else f"killed by signal ({signal})"
        super().__init__(f"Command failed to exit successfully. {status}\n stderr: {detail}")


class SingerIOError(SingerError):
    """Raised when reading from a pipe or writing to a sink fails."""

    def __init__(self, message: str, cause: Optional[OSError] = None):
        self.cause = cause
        super().__init__(f"IOError {message}" + (f": {cause}" if cause else ""))


class DeserializationError(SingerError):
    """Raised when JSON is malformed or does not match the expected shape."""

    def __init__(self, reason: str, *, line_number: Optional[int] = None):
        self.reason = reason
        self.line_number = line_number
        where = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"Failed to deserialize the value{where}: {reason}")


class InvalidConversionError(SingerError):
    """Raised when narrowing a message to a variant it is not."""

    def __init__(self, expected: str, found: str):
        self.expected = expected
        self.found = found
        super().__init__(f"Invalid conversion :: found ({found}) expected ({expected})")


class OptionError(SingerError):
    """Base class for tap invocation option misuse."""

    def __init__(self, message: str, option: str):
        self.option = option
        super().__init__(message)


class InvalidOptionError(OptionError):
    """Raised when an option name is not one of the recognised keys."""

    def __init__(self, option: str):
        super().__init__(f"Option is not valid: {option}", option)


class OptionNotSetError(OptionError):
    """Raised when a recognised option has no value."""

    def __init__(self, option: str):
        super().__init__(f"Option not set: {option}", option)


class SchemaError(SingerError):
    """Base class for JSON schema registration and validation failures."""

    pass


class SchemaNotRegisteredError(SchemaError):
    def __init__(self, stream: str):
        self.stream = stream
        super().__init__(f"The JSON schema for stream {stream} has not been registered")


class SchemaCompilationError(SchemaError):
    def __init__(self, stream: str, reason: str):
        self.stream = stream
        self.reason = reason
        super().__init__(f"The value could not be compiled to a JSON schema for stream {stream}: {reason}")


class SchemaValidationError(SchemaError):
    """Raised when a record does not conform to its stream's schema.

    ``description`` is the first violated constraint; ``path`` locates the
    offending value inside the record.
    """

    def __init__(self, stream: str, description: str, path: Optional[List[Any]] = None):
        self.stream = stream
        self.description = description
        self.path = list(path or [])
        location = "/".join(str(p) for p in self.path)
        suffix = f" at path: {location}" if location else ""
        super().__init__(f"The value was invalid for the JSON schema of stream {stream}. {description}{suffix}")


class WriterError(SingerError):
    """Base class for message writer ownership and state errors."""

    pass


class WriterOwnershipError(WriterError):
    def __init__(self, owners: int):
        self.owners = owners
        super().__init__(
            f"Writer has {owners} live handles, cannot reclaim the inner sink until all clones are released"
        )


class WriterPoisonedError(WriterError):
    def __init__(self):
        super().__init__("Writer lock was poisoned by a failure during a previous write")


class WriterClosedError(WriterError):
    def __init__(self):
        super().__init__("Writer handle has already been released")
