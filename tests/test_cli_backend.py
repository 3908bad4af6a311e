from __future__ import annotations

import os
import shlex
import sys
import time
from pathlib import Path

import allure
import pytest

from ralph_loop.loop.backend import AgentRunRequest, CliAgentBackend, TeeWriter
from ralph_loop.loop.backend.cli_backend import (
    TIMEOUT_EXIT_CODE,
    BackendRunError,
    OutputBuffer,
    _build_run_args,
)

pytestmark = [
    allure.epic("Ralph Loop"),
    allure.feature("Agent Invocation"),
]

_CONTEXT = (Path("tasks/f 1/prd.json"), Path("tasks/f 1/progress.txt"), Path("prompt.md"))


def _script(tmp_path: Path, body: str) -> str:
    script = tmp_path / "agent.py"
    script.write_text(body.strip() + "\n", "utf-8")
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"


def _request(tmp_path: Path, command_template: str, **overrides) -> AgentRunRequest:
    values = {
        "ledger_path": tmp_path / "prd.json",
        "progress_path": tmp_path / "progress.txt",
        "prompt_path": tmp_path / "prompt.md",
        "command_template": command_template,
        "model": "test-model",
    }
    values.update(overrides)
    return AgentRunRequest(**values)


def test_build_run_args_passes_context_as_single_argument() -> None:
    run_args, command_head = _build_run_args(
        command_template="copilot --model {model} -p {context} --allow-all",
        model="claude-opus-4.5",
        context_paths=_CONTEXT,
        os_name="posix",
    )

    assert command_head == "copilot"
    assert run_args == [
        "copilot",
        "--model",
        "claude-opus-4.5",
        "-p",
        "tasks/f 1/prd.json tasks/f 1/progress.txt prompt.md",
        "--allow-all",
    ]


def test_build_run_args_individual_placeholders() -> None:
    run_args, _ = _build_run_args(
        command_template="agent {ledger} {progress} {prompt}",
        model="m",
        context_paths=_CONTEXT,
        os_name="posix",
    )
    assert run_args == ["agent", "tasks/f 1/prd.json", "tasks/f 1/progress.txt", "prompt.md"]


def test_build_run_args_windows_quotes_values() -> None:
    run_args, command_head = _build_run_args(
        command_template="copilot -p {context} --allow-all",
        model="m",
        context_paths=_CONTEXT,
        os_name="nt",
    )
    assert isinstance(run_args, str)
    assert command_head == "copilot"
    assert '-p "tasks/f 1/prd.json tasks/f 1/progress.txt prompt.md"' in run_args


@pytest.mark.parametrize(
    ("template", "message"),
    [
        ("   ", "empty"),
        ("agent {unknown}", "Unsupported command template placeholder"),
        ("agent {model.x}", "Unsupported command template placeholder"),
        ("agent }", "Invalid command template"),
        ("agent \"{context}", "Invalid command template"),
    ],
)
def test_build_run_args_rejects_bad_templates(template: str, message: str) -> None:
    with pytest.raises(BackendRunError, match=message):
        _build_run_args(command_template=template, model="m", context_paths=_CONTEXT)


def test_tee_writer_forwards_to_every_sink_in_order() -> None:
    first: list[str] = []
    second: list[str] = []
    writer = TeeWriter([first.append, second.append])

    writer.write("a\n")
    writer.write("b\n")

    assert first == second == ["a\n", "b\n"]


def test_output_buffer_keeps_newest_characters_when_bounded() -> None:
    buffer = OutputBuffer(max_chars=5)
    buffer.write("abc")
    buffer.write("defg")

    assert buffer.getvalue() == "cdefg"
    assert buffer.truncated


def test_output_buffer_unbounded_by_default() -> None:
    buffer = OutputBuffer()
    buffer.write("x" * 10_000)
    assert len(buffer.getvalue()) == 10_000
    assert not buffer.truncated


def test_run_streams_output_live_and_returns_full_text(tmp_path: Path) -> None:
    command = _script(
        tmp_path,
        """
import sys
print("first", flush=True)
print("oops", file=sys.stderr, flush=True)
print("<promise>COMPLETE</promise>", flush=True)
""",
    )
    forwarded: list[str] = []

    result = CliAgentBackend().run(_request(tmp_path, command), on_output=forwarded.append)

    assert result.exit_code == 0
    assert result.error is None
    assert result.output == "first\noops\n<promise>COMPLETE</promise>\n"
    assert "".join(forwarded) == result.output


def test_run_receives_context_paths(tmp_path: Path) -> None:
    command = _script(
        tmp_path,
        """
import sys
print("|".join(sys.argv[1:]))
""",
    )
    result = CliAgentBackend().run(_request(tmp_path, command + " {ledger} {progress} {prompt}"))

    assert result.output.strip() == "|".join(
        [
            str(tmp_path / "prd.json"),
            str(tmp_path / "progress.txt"),
            str(tmp_path / "prompt.md"),
        ],
    )


def test_run_reports_non_zero_exit_without_raising(tmp_path: Path) -> None:
    command = _script(
        tmp_path,
        """
import sys
print("partial work")
sys.exit(3)
""",
    )
    result = CliAgentBackend().run(_request(tmp_path, command))

    assert result.exit_code == 3
    assert result.error == "Agent exited with code 3"
    assert result.output == "partial work\n"


def test_run_reports_missing_executable_without_raising(tmp_path: Path) -> None:
    result = CliAgentBackend().run(
        _request(tmp_path, "definitely-not-an-agent-binary-xyz -p {context}"),
    )

    assert result.exit_code is None
    assert result.error == "Agent command not found: definitely-not-an-agent-binary-xyz"
    assert result.output == ""


@pytest.mark.parametrize(
    ("template", "message"),
    [
        ("agent {nope}", "Unsupported command template placeholder"),
        ("agent {model.x}", "Unsupported command template placeholder"),
        ("agent }", "Invalid command template"),
        ("agent \"{context}", "Invalid command template"),
    ],
)
def test_run_reports_bad_template_without_raising(
    tmp_path: Path,
    template: str,
    message: str,
) -> None:
    result = CliAgentBackend().run(_request(tmp_path, template))
    assert result.exit_code is None
    assert result.output == ""
    assert result.error is not None
    assert message in result.error


def test_run_terminates_on_timeout(tmp_path: Path) -> None:
    command = _script(
        tmp_path,
        """
import time
print("started", flush=True)
time.sleep(30)
""",
    )
    result = CliAgentBackend().run(_request(tmp_path, command, timeout_seconds=1))

    assert result.timed_out
    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert result.error == "Agent timed out after 1s"
    assert result.output == "started\n"


def test_run_bounded_capture_still_forwards_everything(tmp_path: Path) -> None:
    command = _script(
        tmp_path,
        """
for index in range(50):
    print(f"line {index}")
print("<promise>COMPLETE</promise>")
""",
    )
    forwarded: list[str] = []

    result = CliAgentBackend().run(
        _request(tmp_path, command, max_output_chars=40),
        on_output=forwarded.append,
    )

    assert result.truncated
    assert len(result.output) == 40
    assert result.output.endswith("<promise>COMPLETE</promise>\n")
    assert len(forwarded) == 51


def _sleeping_agent(tmp_path: Path) -> tuple[str, Path]:
    pid_file = tmp_path / "agent.pid"
    command = _script(
        tmp_path,
        f"""
import os
import time
from pathlib import Path
Path({str(pid_file)!r}).write_text(str(os.getpid()))
print("working", flush=True)
time.sleep(30)
""",
    )
    return command, pid_file


def _assert_process_gone(pid_file: Path) -> None:
    pid = int(pid_file.read_text())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


@pytest.mark.parametrize("interruption", [KeyboardInterrupt, BrokenPipeError])
def test_run_terminates_agent_when_streaming_is_interrupted(
    tmp_path: Path,
    interruption: type[BaseException],
) -> None:
    command, pid_file = _sleeping_agent(tmp_path)

    def _interrupting_sink(_chunk: str) -> None:
        raise interruption

    started = time.monotonic()
    with pytest.raises(interruption):
        CliAgentBackend().run(_request(tmp_path, command), on_output=_interrupting_sink)

    assert time.monotonic() - started < 20
    _assert_process_gone(pid_file)
