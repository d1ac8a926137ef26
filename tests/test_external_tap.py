import json
import os
import stat
import sys
import textwrap

import pytest

from singerpipe.core.exceptions import (
    DeserializationError,
    OptionNotSetError,
    TapCommandError,
    TapExecError,
)
from singerpipe.models.messages import StateMessage
from singerpipe.models.tap_context import TapContext
from singerpipe.tap.external import TAP_NO_STDERR_MESSAGE, ExternalTap
from singerpipe.tap.writer import MessageWriter
from singerpipe.target.processor import iter_messages

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses shebang scripts")


@pytest.fixture
def make_tap(tmp_path):
    def _make(name: str, body: str) -> str:
        path = tmp_path / name
        path.write_text(f"#!{sys.executable}\nimport sys, json, os\n" + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
        return str(path)

    return _make


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{}")
    return str(path)


def test_discover_parses_catalog(make_tap, config_path):
    tap = make_tap(
        "tap-ok",
        """
        assert sys.argv[1:] == ["--config", sys.argv[2], "--discover"], sys.argv
        print(json.dumps({"streams": [{"stream": "users", "tap_stream_id": "users", "schema": {"type": "object"}}]}))
        """,
    )

    catalog = ExternalTap(tap).discover(TapContext(config=config_path))

    assert [s.tap_stream_id for s in catalog.streams] == ["users"]


def test_discover_failure_carries_exit_code_and_stderr_json(make_tap, config_path):
    tap = make_tap(
        "tap-bad",
        """
        sys.stderr.write(json.dumps({"error": "bad config", "code": 17}))
        sys.exit(2)
        """,
    )

    with pytest.raises(TapCommandError) as exc:
        ExternalTap(tap).discover(TapContext(config=config_path))

    assert exc.value.exit_code == 2
    assert json.loads(exc.value.detail) == {"error": "bad config", "code": 17}


def test_discover_failure_with_non_json_stderr_is_deserialization_error(make_tap, config_path):
    tap = make_tap("tap-noisy", 'sys.stderr.write("Traceback: boom\\n")\nsys.exit(1)\n')

    with pytest.raises(DeserializationError):
        ExternalTap(tap).discover(TapContext(config=config_path))


def test_discover_with_invalid_catalog_is_deserialization_error(make_tap, config_path):
    tap = make_tap("tap-junk", 'print("not a catalog")\n')

    with pytest.raises(DeserializationError):
        ExternalTap(tap).discover(TapContext(config=config_path))


def test_discover_requires_config(make_tap):
    tap = make_tap("tap-unused", "pass\n")

    with pytest.raises(OptionNotSetError):
        ExternalTap(tap).discover(TapContext())


def test_sync_copies_stdout_and_passes_only_set_options(make_tap, config_path, tmp_path):
    tap = make_tap(
        "tap-sync",
        """
        print(json.dumps({"type": "STATE", "value": {"argv": sys.argv[1:]}}))
        print(json.dumps({"type": "STATE", "value": {"done": True}}))
        """,
    )
    state_path = str(tmp_path / "state.json")
    writer = MessageWriter.to_buffer()

    copied = ExternalTap(tap).sync(TapContext(config=config_path, state=state_path), writer)

    data = writer.getvalue()
    assert copied == len(data)
    messages = [m for _, m in iter_messages(data.splitlines())]
    assert messages[0] == StateMessage(value={"argv": ["--config", config_path, "--state", state_path]})
    assert messages[1].value == {"done": True}


def test_sync_failure_reports_last_stderr_line(make_tap, config_path):
    tap = make_tap(
        "tap-auth",
        """
        print(json.dumps({"type": "STATE", "value": 1}))
        sys.stderr.write("connecting...\\n")
        sys.stderr.write("auth failed\\n\\n")
        sys.exit(1)
        """,
    )
    writer = MessageWriter.to_buffer()

    with pytest.raises(TapCommandError) as exc:
        ExternalTap(tap).sync(TapContext(config=config_path), writer)

    assert exc.value.exit_code == 1
    assert exc.value.detail == "auth failed"
    # whatever was copied before the failure stays in the writer
    assert writer.getvalue() == b'{"type": "STATE", "value": 1}\n'


def test_sync_failure_without_stderr_uses_fallback(make_tap, config_path):
    tap = make_tap("tap-silent", "sys.exit(3)\n")

    with pytest.raises(TapCommandError) as exc:
        ExternalTap(tap).sync(TapContext(config=config_path), MessageWriter.to_buffer())

    assert exc.value.exit_code == 3
    assert exc.value.detail == TAP_NO_STDERR_MESSAGE


def test_sync_killed_by_signal_has_no_exit_code(make_tap, config_path):
    tap = make_tap("tap-killed", "import signal\nos.kill(os.getpid(), signal.SIGKILL)\n")

    with pytest.raises(TapCommandError) as exc:
        ExternalTap(tap).sync(TapContext(config=config_path), MessageWriter.to_buffer())

    assert exc.value.exit_code is None
    assert exc.value.signal == 9


def test_sync_handles_large_stderr_without_deadlock(make_tap, config_path):
    tap = make_tap(
        "tap-chatty",
        """
        for i in range(20000):
            sys.stderr.write("warning %d: something verbose happened\\n" % i)
        print(json.dumps({"type": "STATE", "value": "ok"}))
        """,
    )
    writer = MessageWriter.to_buffer()

    ExternalTap(tap).sync(TapContext(config=config_path), writer)

    assert writer.getvalue() == b'{"type": "STATE", "value": "ok"}\n'


def test_missing_executable_is_exec_error_not_command_error(tmp_path, config_path):
    missing = str(tmp_path / "does-not-exist")

    with pytest.raises(TapExecError) as exc:
        ExternalTap(missing).sync(TapContext(config=config_path), MessageWriter.to_buffer())

    assert not isinstance(exc.value, TapCommandError)
    assert isinstance(exc.value.cause, FileNotFoundError)


def test_non_executable_file_is_exec_error(tmp_path, config_path):
    path = tmp_path / "tap-plain"
    path.write_text("#!/bin/sh\nexit 0\n")
    os.chmod(path, 0o644)

    with pytest.raises(TapExecError):
        ExternalTap(str(path)).discover(TapContext(config=config_path))
