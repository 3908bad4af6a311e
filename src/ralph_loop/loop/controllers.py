"""Controllers for loop CLI commands."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path

from ralph_loop.config import Settings
from ralph_loop.loop import display
from ralph_loop.loop.backend import AgentBackend, AgentRunRequest, CliAgentBackend, OutputSink
from ralph_loop.loop.detector import CompletionDetector
from ralph_loop.loop.ledger import LedgerError, WorkLedger
from ralph_loop.loop.models import EXIT_NOT_COMPLETED, LoopResult
from ralph_loop.loop.runner import IterationLoop
from ralph_loop.loop.workspace import FeatureNotFoundError, RalphWorkspace

RUN_USAGE = "Usage: ralph-loop run <feature> [--max-iterations <max-iterations>]"


@dataclass(slots=True)
class LoopRunCommand:
    """CLI input for one loop run."""

    ralph_dir: Path | None
    feature: str | None
    max_iterations: int | None = None
    delay_seconds: float | None = None
    agent_command: str | None = None
    model: str | None = None
    sentinel: str | None = None
    timeout_seconds: int | None = None
    max_output_chars: int | None = None


@dataclass(slots=True)
class LoopStatusCommand:
    """CLI input for ledger status."""

    ralph_dir: Path | None
    feature: str


@dataclass(slots=True)
class LoopRunReport:
    """What the CLI prints and how it exits after a run request."""

    exit_code: int
    error_lines: list[str] = field(default_factory=list)
    result: LoopResult | None = None


@dataclass(slots=True)
class LoopStatusResult:
    """Status report to render in CLI."""

    lines: list[str]
    success: bool


class LoopCliController:
    """Coordinates workspace lookup, settings and the iteration loop for CLI commands."""

    def __init__(self, backend_factory: Callable[[], AgentBackend] = CliAgentBackend) -> None:
        self.backend_factory = backend_factory

    def list_features(self, ralph_dir: Path | None) -> list[str]:
        workspace = RalphWorkspace(Settings.from_env(ralph_dir=ralph_dir).layout.ralph_dir)
        return _feature_listing(workspace, empty_message="No features found. Create one first!")

    def status(self, command: LoopStatusCommand) -> LoopStatusResult:
        settings = Settings.from_env(ralph_dir=command.ralph_dir)
        workspace = RalphWorkspace(settings.layout.ralph_dir)
        try:
            paths = workspace.resolve(command.feature)
        except FeatureNotFoundError as error:
            return LoopStatusResult(
                lines=[display.setup_error_line(str(error)), "", *_feature_listing(workspace)],
                success=False,
            )

        ledger = WorkLedger(paths.ledger_path, groups=settings.layout.ledger_groups)
        try:
            document = ledger.load()
        except LedgerError as error:
            return LoopStatusResult(lines=[display.setup_error_line(str(error))], success=False)
        return LoopStatusResult(
            lines=display.status_lines(feature=command.feature, document=document),
            success=True,
        )

    def run(
        self,
        command: LoopRunCommand,
        *,
        emit: Callable[[str], None],
        on_output: OutputSink | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> LoopRunReport:
        settings = _apply_overrides(Settings.from_env(ralph_dir=command.ralph_dir), command)
        settings.validate()
        workspace = RalphWorkspace(settings.layout.ralph_dir)

        if not command.feature:
            return LoopRunReport(
                exit_code=EXIT_NOT_COMPLETED,
                error_lines=[
                    display.setup_error_line("Feature folder required"),
                    RUN_USAGE,
                    "",
                    *_feature_listing(
                        workspace,
                        empty_message="No features found. Create one first!",
                    ),
                ],
            )
        try:
            paths = workspace.resolve(command.feature)
        except FeatureNotFoundError as error:
            return LoopRunReport(
                exit_code=EXIT_NOT_COMPLETED,
                error_lines=[
                    display.setup_error_line(str(error)),
                    "",
                    *_feature_listing(workspace),
                ],
            )

        loop = IterationLoop(
            feature=paths.feature,
            ledger=WorkLedger(paths.ledger_path, groups=settings.layout.ledger_groups),
            backend=self.backend_factory(),
            request=AgentRunRequest(
                ledger_path=paths.ledger_path,
                progress_path=paths.progress_path,
                prompt_path=paths.prompt_path,
                command_template=settings.agent.command_template,
                model=settings.agent.model,
                timeout_seconds=settings.agent.timeout_seconds,
                max_output_chars=settings.agent.max_output_chars,
            ),
            detector=CompletionDetector(settings.loop.sentinel),
            max_iterations=settings.loop.max_iterations,
            delay_seconds=settings.loop.delay_seconds,
            emit=emit,
            on_output=on_output,
            sleep=sleep or time.sleep,
        )
        result = loop.run()
        return LoopRunReport(exit_code=result.exit_code, result=result)


def _apply_overrides(settings: Settings, command: LoopRunCommand) -> Settings:
    loop = settings.loop
    if command.max_iterations is not None:
        loop = replace(loop, max_iterations=command.max_iterations)
    if command.delay_seconds is not None:
        loop = replace(loop, delay_seconds=command.delay_seconds)
    if command.sentinel is not None:
        loop = replace(loop, sentinel=command.sentinel)

    agent = settings.agent
    if command.agent_command is not None:
        agent = replace(agent, command_template=command.agent_command)
    if command.model is not None:
        agent = replace(agent, model=command.model)
    if command.timeout_seconds is not None:
        agent = replace(agent, timeout_seconds=command.timeout_seconds)
    if command.max_output_chars is not None:
        agent = replace(agent, max_output_chars=command.max_output_chars)

    return replace(settings, loop=loop, agent=agent)


def _feature_listing(
    workspace: RalphWorkspace,
    *,
    empty_message: str = "No features found",
) -> list[str]:
    features = workspace.list_features()
    if not features:
        return ["Available features:", f"  {empty_message}"]
    return ["Available features:", *(f"  {name}" for name in features)]
