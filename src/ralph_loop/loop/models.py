"""Domain models for the iteration loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ralph_loop.loop.ledger import LedgerSummary

EXIT_COMPLETED = 0
EXIT_NOT_COMPLETED = 1
EXIT_INTERRUPTED = 130


class LoopOutcome(str, Enum):
    """Terminal states of one loop run."""

    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    FATAL_SETUP_ERROR = "fatal_setup_error"


@dataclass(slots=True, frozen=True)
class IterationState:
    """Snapshot shown at the start of each iteration."""

    iteration: int
    max_iterations: int
    total: int
    completed: int

    @property
    def remaining(self) -> int:
        return self.total - self.completed


@dataclass(slots=True)
class LoopResult:
    """Outcome of a loop run with the numbers needed for the final report."""

    outcome: LoopOutcome
    iterations: int
    summary: LedgerSummary | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.outcome is LoopOutcome.COMPLETED:
            return EXIT_COMPLETED
        return EXIT_NOT_COMPLETED
