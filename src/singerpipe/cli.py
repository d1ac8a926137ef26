"""
Command-line interface and entry points for singerpipe.

All diagnostics go to stderr; stdout carries only protocol output (a catalog,
a message stream, or a JSON summary) so it can be piped into other tools.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from singerpipe.bootstrap import load_plugins
from singerpipe.core.exceptions import SingerError, TapCommandError
from singerpipe.core.logger import configure_root_logger, get_logger
from singerpipe.models.messages import RecordMessage, StateMessage
from singerpipe.models.pipeline_config import PipelineConfig
from singerpipe.models.tap_context import TapContext
from singerpipe.pipeline import SingerPipeline
from singerpipe.tap.base import Tap
from singerpipe.tap.external import ExternalTap
from singerpipe.tap.registry import TapRegistry
from singerpipe.tap.writer import MessageWriter
from singerpipe.target.base import Target
from singerpipe.target.validation import SchemaContext

logger = get_logger(__name__)


class StatsTarget(Target):
    """Target that only counts validated records per stream and keeps the last state."""

    def __init__(self):
        super().__init__()
        self.records_by_stream: Dict[str, int] = {}
        self.last_state: Optional[Any] = None

    def process_record(self, record: RecordMessage) -> None:
        self.records_by_stream[record.stream] = self.records_by_stream.get(record.stream, 0) + 1

    def process_state(self, state: StateMessage) -> None:
        self.last_state = state.value


def resolve_tap(name: str) -> Tap:
    """Return a registered in-process tap by name, or an ``ExternalTap`` for the program."""
    tap_class = TapRegistry.try_get(name)
    if tap_class is not None:
        return tap_class()
    return ExternalTap(name)


def load_pipeline_config(config_path: str) -> PipelineConfig:
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_file, "r") as f:
        if config_file.suffix == ".json":
            config = json.load(f)
        elif config_file.suffix in (".yaml", ".yml"):
            try:
                import yaml
            except ImportError:
                raise ImportError(
                    "PyYAML required for YAML configs. "
                    "Install with: pip install singerpipe[yaml]"
                )
            config = yaml.safe_load(f)
        else:
            raise ValueError(
                f"Unsupported config format: {config_file.suffix}. "
                "Use .json or .yaml"
            )
    logger.info(f"Loaded config from {config_path}")
    return PipelineConfig.model_validate(config)


def run(
    config_path: Optional[str] = None,
    config_dict: Optional[Dict[str, Any]] = None,
    *,
    run_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run an external tap through the validating pipeline.

    Args:
        config_path: Path to JSON/YAML pipeline configuration file
        config_dict: Direct configuration dictionary

    Returns:
        Execution summary with status, run_id and message counts
    """
    if config_dict is not None:
        cfg = PipelineConfig.model_validate(config_dict)
    elif config_path:
        cfg = load_pipeline_config(config_path)
    else:
        raise ValueError("Either config_path or config_dict must be provided")

    configure_root_logger(cfg.log_level)
    target = StatsTarget()
    pipeline = SingerPipeline(pipeline_name=cfg.pipeline_name, run_id=run_id)
    result = pipeline.run(ExternalTap(cfg.tap.executable), target, tap_context=cfg.tap.to_context())

    summary = result.as_dict()
    summary["records_by_stream"] = dict(target.records_by_stream)
    summary["last_state"] = target.last_state
    return summary


def validate_stream(path: str) -> Dict[str, Any]:
    """Validate a message stream file (``-`` for stdin) and return its counts."""
    target = StatsTarget()
    context = SchemaContext()
    if path == "-":
        stats = target.process_reader(context, sys.stdin.buffer)
    else:
        with open(path, "rb") as f:
            stats = target.process_reader(context, f)
    summary: Dict[str, Any] = {"status": "valid", **stats.as_dict()}
    summary["streams"] = context.streams
    summary["records_by_stream"] = dict(target.records_by_stream)
    return summary


def _context_from_args(args: argparse.Namespace) -> TapContext:
    return TapContext.from_paths(
        {option: getattr(args, option, None) for option in ("config", "catalog", "state", "properties")}
    )


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")
    sys.stdout.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="singerpipe",
        description="Run Singer taps and validate Singer message streams",
    )
    parser.add_argument(
        "--plugin",
        action="append",
        default=[],
        help="Module to import so its @register_tap taps become available (repeatable)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    discover_parser = subparsers.add_parser("discover", help="Run a tap in discovery mode")
    discover_parser.add_argument("tap", help="Registered tap name or tap executable")
    discover_parser.add_argument("--config", required=True, help="Path to the tap config file")

    sync_parser = subparsers.add_parser("sync", help="Run a tap in sync mode, streaming messages to stdout")
    sync_parser.add_argument("tap", help="Registered tap name or tap executable")
    sync_parser.add_argument("--config", required=True, help="Path to the tap config file")
    sync_parser.add_argument("--catalog", help="Path to the catalog file")
    sync_parser.add_argument("--state", help="Path to the state file")
    sync_parser.add_argument("--properties", help="Path to the legacy properties file")

    validate_parser = subparsers.add_parser("validate", help="Validate a Singer message stream")
    validate_parser.add_argument("file", nargs="?", default="-", help="Message stream file ('-' for stdin)")

    run_parser = subparsers.add_parser("run", help="Run a tap from a pipeline config through validation")
    run_parser.add_argument("config", help="Path to pipeline configuration file (JSON or YAML)")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_root_logger("DEBUG" if args.verbose else "INFO")
    load_plugins(args.plugin)

    try:
        if args.command == "discover":
            catalog = resolve_tap(args.tap).discover(_context_from_args(args))
            sys.stdout.write(catalog.to_json(indent=2) + "\n")
            sys.stdout.flush()
        elif args.command == "sync":
            writer = MessageWriter.to_stdout()
            resolve_tap(args.tap).sync(_context_from_args(args), writer)
            writer.flush()
        elif args.command == "validate":
            _emit_json(validate_stream(args.file))
        elif args.command == "run":
            _emit_json(run(config_path=args.config))
        else:
            parser.print_help()
        return 0
    except TapCommandError as e:
        logger.error(f"Tap failed (exit code {e.exit_code}): {e.detail}")
        return 1
    except SingerError as e:
        processed = f" after {e.messages_processed} messages" if e.messages_processed is not None else ""
        logger.error(f"{args.command} failed{processed}: {e}")
        return 1
    except (OSError, ValueError, ImportError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


def cli(argv: Optional[List[str]] = None) -> None:
    """
    Console entry point.

    Usage:
        singerpipe discover tap-github --config config.json
        singerpipe sync tap-github --config config.json --catalog catalog.json
        singerpipe validate messages.jsonl
        singerpipe run pipeline.json
    """
    sys.exit(main(argv))


if __name__ == "__main__":
    cli()
