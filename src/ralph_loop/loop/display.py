"""Pure formatting of loop banners and status lines."""

from __future__ import annotations

import click

from ralph_loop.loop.ledger import LedgerDocument, LedgerSummary
from ralph_loop.loop.models import IterationState

RULE = "=" * 60


def style_lines(lines: list[str], fg: str) -> list[str]:
    return [click.style(line, fg=fg) for line in lines]


def start_banner(
    *,
    feature: str,
    summary: LedgerSummary,
    max_iterations: int,
    branch_name: str | None = None,
) -> list[str]:
    lines = [
        RULE,
        "RALPH STARTING".center(60).rstrip(),
        RULE,
        f"Feature: {feature}",
    ]
    if branch_name:
        lines.append(f"Branch: {branch_name}")
    lines.extend(
        [
            f"Issues: {summary.completed} / {summary.total} completed",
            f"Max iterations: {max_iterations}",
            RULE,
        ],
    )
    return lines


def iteration_banner(state: IterationState) -> list[str]:
    return [
        "",
        RULE,
        (
            f"Iteration {state.iteration} / {state.max_iterations} | "
            f"Completed: {state.completed} / {state.total} | "
            f"Remaining: {state.remaining}"
        ),
        RULE,
        "",
    ]


def invocation_error_line(iteration: int, error: str) -> str:
    return f"Agent invocation error (iteration {iteration}): {error} - continuing."


def completed_banner(*, total: int, iterations: int) -> list[str]:
    noun = "iteration" if iterations == 1 else "iterations"
    return [
        "",
        RULE,
        "RALPH COMPLETE".center(60).rstrip(),
        RULE,
        f"All {total} issues completed in {iterations} {noun}!",
        RULE,
    ]


def exhausted_banner(max_iterations: int) -> list[str]:
    return [
        "",
        RULE,
        "MAX ITERATIONS".center(60).rstrip(),
        RULE,
        f"Reached {max_iterations} iterations. Run again to continue.",
        RULE,
    ]


def setup_error_line(message: str) -> str:
    return f"Error: {message}"


def status_lines(*, feature: str, document: LedgerDocument) -> list[str]:
    """Ledger overview used by the status command."""

    summary = document.summary()
    lines = [f"Feature: {feature}"]
    if document.branch_name:
        lines.append(f"Branch: {document.branch_name}")
    lines.append(
        f"Issues: {summary.completed} / {summary.total} completed, {summary.remaining} remaining",
    )
    pending = document.pending()
    if not pending:
        lines.append("No pending items.")
        return lines
    lines.append("Pending:")
    for item in pending:
        title = f" {item.title}" if item.title else ""
        lines.append(f"  [{item.category}] {item.item_id}:{title}")
    return lines
