"""CLI entrypoint for ralph-loop."""

from pathlib import Path

import rich_click as click

from ralph_loop import __version__
from ralph_loop.loop.controllers import LoopCliController, LoopRunCommand, LoopStatusCommand
from ralph_loop.loop.models import EXIT_INTERRUPTED

click.rich_click.USE_MARKDOWN = True
LOOP_CONTROLLER = LoopCliController()

_RALPH_DIR_OPTION = click.option(
    "--ralph-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Ralph workspace directory. Defaults to RALPH_LOOP_DIR or .copilot/ralph.",
)


@click.group()
@click.version_option(version=__version__, prog_name="ralph-loop")
def ralph_loop() -> None:
    """Autonomous coding-agent loop driven by a PRD ledger."""


@ralph_loop.command("run")
@_RALPH_DIR_OPTION
@click.argument("feature", required=False)
@click.option(
    "-n",
    "--max-iterations",
    type=click.IntRange(min=1),
    default=None,
    help="Iteration budget for this run. Defaults to RALPH_LOOP_MAX_ITERATIONS or 10.",
)
@click.option(
    "--delay-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Pause between iterations without a completion signal.",
)
@click.option(
    "--agent-command",
    default=None,
    help=(
        "Agent command template. Supports {context}, {ledger}, {progress}, {prompt} "
        "and {model}. If omitted, RALPH_LOOP_AGENT_COMMAND is used."
    ),
)
@click.option("--model", default=None, help="Model id substituted into {model}.")
@click.option(
    "--sentinel",
    default=None,
    help="Exact completion marker the agent prints when every item passes.",
)
@click.option(
    "--timeout-seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Per-invocation timeout. No timeout unless set.",
)
@click.option(
    "--max-output-chars",
    type=click.IntRange(min=1),
    default=None,
    help="Keep only the newest N characters of each invocation's output. Unbounded unless set.",
)
@click.pass_context
def run(  # noqa: PLR0913
    ctx: click.Context,
    ralph_dir: Path | None,
    feature: str | None,
    max_iterations: int | None,
    delay_seconds: float | None,
    agent_command: str | None,
    model: str | None,
    sentinel: str | None,
    timeout_seconds: int | None,
    max_output_chars: int | None,
) -> None:
    """Run the agent on FEATURE until it reports completion or the budget is spent.

    Exit code 0 means every item is done; 1 means not done yet (rerun to
    continue) or the ledger is missing/broken.
    """

    try:
        report = LOOP_CONTROLLER.run(
            LoopRunCommand(
                ralph_dir=ralph_dir,
                feature=feature,
                max_iterations=max_iterations,
                delay_seconds=delay_seconds,
                agent_command=agent_command,
                model=model,
                sentinel=sentinel,
                timeout_seconds=timeout_seconds,
                max_output_chars=max_output_chars,
            ),
            emit=click.echo,
            on_output=_forward_output,
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    except KeyboardInterrupt:
        click.echo("\nInterrupted.", err=True)
        ctx.exit(EXIT_INTERRUPTED)

    _emit_lines(report.error_lines, err=True)
    ctx.exit(report.exit_code)


@ralph_loop.command("features")
@_RALPH_DIR_OPTION
def features(ralph_dir: Path | None) -> None:
    """List feature folders available to run."""

    _emit_lines(LOOP_CONTROLLER.list_features(ralph_dir))


@ralph_loop.command("status")
@_RALPH_DIR_OPTION
@click.argument("feature")
def status(ralph_dir: Path | None, feature: str) -> None:
    """Show ledger counts and pending items for FEATURE without running the agent."""

    result = LOOP_CONTROLLER.status(LoopStatusCommand(ralph_dir=ralph_dir, feature=feature))
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Ledger status unavailable.")


def _forward_output(chunk: str) -> None:
    click.echo(chunk, nl=False)


def _emit_lines(lines: list[str], *, err: bool = False) -> None:
    for line in lines:
        click.echo(line, err=err)


if __name__ == "__main__":  # pragma: no cover
    ralph_loop()
