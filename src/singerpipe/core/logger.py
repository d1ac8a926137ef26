import logging
import sys
import contextvars
from typing import Optional

# Context variable to carry the current run id across the call chain
_RUN_ID: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")


class _RunIdFilter(logging.Filter):
    """Logging filter that injects the run_id from contextvars into the record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.run_id = _RUN_ID.get()
        return True


def _build_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | run=%(run_id)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def configure_root_logger(level: str = "INFO") -> None:
    """
    Configure root logger and singerpipe-specific logger.

    Logs go to stderr: stdout is reserved for the Singer message stream, so a
    log line there would corrupt the framing seen by a downstream target.

    Args:
        level: Log level for singerpipe logs (DEBUG, INFO, WARNING, ERROR).
               Other libraries stay at WARNING.

    Safe to call multiple times; it will not duplicate handlers (idempotent).
    """
    root = logging.getLogger()
    singer_logger = logging.getLogger("singerpipe")

    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and any(isinstance(f, _RunIdFilter) for f in h.filters):
            # Already configured; just update singerpipe logger level
            singer_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_build_formatter())
    handler.addFilter(_RunIdFilter())
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    singer_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str = "singerpipe") -> logging.Logger:
    """
    Get a module-specific logger.

    Names outside the ``singerpipe`` namespace (e.g. class names used by the
    tap/target base classes) are nested under it so that level configuration
    applies to them as well.
    """
    if name != "singerpipe" and not name.startswith("singerpipe."):
        name = f"singerpipe.{name}"
    return logging.getLogger(name)


def push_run_id(run_id: Optional[str]) -> Optional[contextvars.Token]:
    """Set the current run id in context and return a token for later reset."""
    if not run_id:
        return None
    return _RUN_ID.set(run_id)


def reset_run_id(token: Optional[contextvars.Token]) -> None:
    """Reset the run id context using the provided token (if any)."""
    if token is None:
        return
    _RUN_ID.reset(token)
