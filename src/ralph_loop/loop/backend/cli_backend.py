"""Subprocess-based backend runner for CLI agents."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
from collections import deque
from collections.abc import Iterable
from pathlib import Path

from ralph_loop.loop.backend.base import AgentRunRequest, AgentRunResult, OutputSink

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
_SUPPORTED_PLACEHOLDERS = ("context", "ledger", "progress", "prompt", "model")


class BackendRunError(RuntimeError):
    """Agent command could not be built or launched."""


class OutputBuffer:
    """Accumulates streamed output, optionally keeping only the newest characters."""

    def __init__(self, max_chars: int | None = None) -> None:
        self.max_chars = max_chars
        self._chunks: deque[str] = deque()
        self._size = 0
        self.truncated = False

    def write(self, chunk: str) -> None:
        self._chunks.append(chunk)
        self._size += len(chunk)
        if self.max_chars is None:
            return
        while self._size > self.max_chars and self._chunks:
            overflow = self._size - self.max_chars
            head = self._chunks[0]
            if len(head) <= overflow:
                self._chunks.popleft()
                self._size -= len(head)
            else:
                self._chunks[0] = head[overflow:]
                self._size -= overflow
            self.truncated = True

    def getvalue(self) -> str:
        return "".join(self._chunks)


class TeeWriter:
    """Duplicate every chunk to all attached sinks, in order."""

    def __init__(self, sinks: Iterable[OutputSink]) -> None:
        self.sinks = list(sinks)

    def write(self, chunk: str) -> None:
        for sink in self.sinks:
            sink(chunk)


class CliAgentBackend:
    """Run the configured agent command once, merging stderr into stdout."""

    def run(self, request: AgentRunRequest, on_output: OutputSink | None = None) -> AgentRunResult:
        buffer = OutputBuffer(max_chars=request.max_output_chars)
        sinks: list[OutputSink] = [buffer.write]
        if on_output is not None:
            sinks.append(on_output)
        writer = TeeWriter(sinks)

        try:
            run_args, command_head = _build_run_args(
                command_template=request.command_template,
                model=request.model,
                context_paths=request.context_paths,
            )
        except BackendRunError as error:
            return AgentRunResult(output="", exit_code=None, error=str(error))

        logger.info("Launching agent: %s", command_head)
        try:
            process = _launch(run_args)
        except FileNotFoundError:
            message = f"Agent command not found: {command_head}"
            logger.warning(message)
            return AgentRunResult(output=buffer.getvalue(), exit_code=None, error=message)
        except OSError as error:
            message = f"Agent command failed to start: {error}"
            logger.warning(message)
            return AgentRunResult(output=buffer.getvalue(), exit_code=None, error=message)

        exit_code, timed_out = _stream_output(
            process=process,
            timeout_seconds=request.timeout_seconds,
            writer=writer,
        )

        error_message: str | None = None
        if timed_out:
            error_message = f"Agent timed out after {request.timeout_seconds}s"
        elif exit_code != 0:
            error_message = f"Agent exited with code {exit_code}"
        if error_message is not None:
            logger.warning(error_message)

        return AgentRunResult(
            output=buffer.getvalue(),
            exit_code=exit_code,
            error=error_message,
            timed_out=timed_out,
            truncated=buffer.truncated,
        )


def _build_run_args(
    *,
    command_template: str,
    model: str,
    context_paths: tuple[Path, Path, Path],
    os_name: str | None = None,
) -> tuple[str | list[str], str]:
    stripped = command_template.strip()
    if not stripped:
        raise BackendRunError("Agent command template is empty.")

    ledger_path, progress_path, prompt_path = context_paths
    values = {
        "context": " ".join(str(path) for path in context_paths),
        "ledger": str(ledger_path),
        "progress": str(progress_path),
        "prompt": str(prompt_path),
        "model": model,
    }

    current_os_name = os_name or os.name
    quote = _quote_windows if current_os_name == "nt" else shlex.quote
    try:
        rendered = stripped.format(**{key: quote(value) for key, value in values.items()})
    except (KeyError, IndexError, AttributeError) as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}. "
            f"Supported: {', '.join('{' + name + '}' for name in _SUPPORTED_PLACEHOLDERS)}",
        ) from error
    except ValueError as error:
        raise BackendRunError(f"Invalid command template: {error}") from error

    if current_os_name == "nt":
        rendered = rendered.strip()
        if not rendered:
            raise BackendRunError("Agent command template rendered empty command.")
        return rendered, rendered.split(maxsplit=1)[0]

    try:
        argv = shlex.split(rendered)
    except ValueError as error:
        raise BackendRunError(f"Invalid command template: {error}") from error
    if not argv:
        raise BackendRunError("Agent command template rendered empty command.")
    return argv, argv[0]


def _quote_windows(value: str) -> str:
    return subprocess.list2cmdline([value])


def _launch(run_args: str | list[str]) -> subprocess.Popen[str]:
    return subprocess.Popen(  # noqa: S603
        run_args,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
        text=True,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
    )


def _stream_output(
    *,
    process: subprocess.Popen[str],
    timeout_seconds: int | None,
    writer: TeeWriter,
) -> tuple[int, bool]:
    timed_out = threading.Event()
    timer: threading.Timer | None = None
    if timeout_seconds is not None:
        timer = threading.Timer(timeout_seconds, _expire, args=(process, timed_out))
        timer.daemon = True
        timer.start()

    assert process.stdout is not None
    try:
        for line in process.stdout:
            writer.write(line)
        returncode = process.wait()
    except BaseException:
        _terminate_process(process)
        raise
    finally:
        if timer is not None:
            timer.cancel()
        process.stdout.close()

    if timed_out.is_set():
        return TIMEOUT_EXIT_CODE, True
    return returncode, False


def _expire(process: subprocess.Popen[str], timed_out: threading.Event) -> None:
    if process.poll() is not None:
        return
    timed_out.set()
    _terminate_process(process)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
