"""Backend interface for one agent invocation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

OutputSink = Callable[[str], None]


@dataclass(slots=True)
class AgentRunRequest:
    """Inputs required to execute one agent invocation."""

    ledger_path: Path
    progress_path: Path
    prompt_path: Path
    command_template: str
    model: str
    timeout_seconds: int | None = None
    max_output_chars: int | None = None

    @property
    def context_paths(self) -> tuple[Path, Path, Path]:
        return (self.ledger_path, self.progress_path, self.prompt_path)


@dataclass(slots=True)
class AgentRunResult:
    """Execution outcome from backend runner.

    ``error`` is set whenever the invocation did not finish cleanly (launch
    failure, bad template, non-zero exit or timeout). It is informational:
    the loop keeps going and only looks at ``output``.
    """

    output: str
    exit_code: int | None
    error: str | None = None
    timed_out: bool = False
    truncated: bool = False


class AgentBackend(Protocol):
    """Protocol implemented by backend runners."""

    def run(self, request: AgentRunRequest, on_output: OutputSink | None = None) -> AgentRunResult:
        """Run one agent invocation, forwarding output chunks to ``on_output`` as they arrive."""
