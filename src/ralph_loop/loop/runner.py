"""Iteration loop: ledger read -> agent invocation -> completion check."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ralph_loop.loop import display
from ralph_loop.loop.backend.base import AgentBackend, AgentRunRequest, OutputSink
from ralph_loop.loop.detector import CompletionDetector
from ralph_loop.loop.ledger import LedgerError, LedgerSummary, WorkLedger
from ralph_loop.loop.models import IterationState, LoopOutcome, LoopResult

logger = logging.getLogger(__name__)


class IterationLoop:
    """Run the agent until it emits the sentinel or the iteration budget is spent.

    Iterations are strictly sequential: the next one starts only after the
    previous agent process has exited and its output was fully read. Agent
    failures never stop the loop; ledger failures do.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        feature: str,
        ledger: WorkLedger,
        backend: AgentBackend,
        request: AgentRunRequest,
        detector: CompletionDetector,
        max_iterations: int = 10,
        delay_seconds: float = 2.0,
        emit: Callable[[str], None] | None = None,
        on_output: OutputSink | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_iterations <= 0:
            raise ValueError("max_iterations must be > 0")
        self.feature = feature
        self.ledger = ledger
        self.backend = backend
        self.request = request
        self.detector = detector
        self.max_iterations = max_iterations
        self.delay_seconds = delay_seconds
        self._emit = emit or (lambda _line: None)
        self._on_output = on_output
        self._sleep = sleep

    def run(self) -> LoopResult:
        try:
            document = self.ledger.load()
        except LedgerError as error:
            return self._fatal(error, iterations=0, summary=None)

        summary = document.summary()
        self._emit_all(
            display.style_lines(
                display.start_banner(
                    feature=self.feature,
                    summary=summary,
                    max_iterations=self.max_iterations,
                    branch_name=document.branch_name,
                ),
                "cyan",
            ),
        )

        for iteration in range(1, self.max_iterations + 1):
            try:
                summary = self.ledger.summarize()
            except LedgerError as error:
                return self._fatal(error, iterations=iteration - 1, summary=summary)

            state = IterationState(
                iteration=iteration,
                max_iterations=self.max_iterations,
                total=summary.total,
                completed=summary.completed,
            )
            logger.info(
                "Iteration %d/%d: completed=%d total=%d",
                iteration,
                self.max_iterations,
                summary.completed,
                summary.total,
            )
            self._emit_all(display.style_lines(display.iteration_banner(state), "yellow"))

            result = self.backend.run(self.request, on_output=self._on_output)
            if result.error is not None:
                self._emit(
                    display.style_lines(
                        [display.invocation_error_line(iteration, result.error)],
                        "red",
                    )[0],
                )

            if self.detector.check(result.output):
                logger.info("Completion sentinel found at iteration %d", iteration)
                self._emit_all(
                    display.style_lines(
                        display.completed_banner(total=summary.total, iterations=iteration),
                        "green",
                    ),
                )
                return LoopResult(
                    outcome=LoopOutcome.COMPLETED,
                    iterations=iteration,
                    summary=summary,
                )

            if iteration < self.max_iterations:
                self._sleep(self.delay_seconds)

        logger.info("Iteration budget of %d spent without completion", self.max_iterations)
        self._emit_all(
            display.style_lines(display.exhausted_banner(self.max_iterations), "yellow"),
        )
        return LoopResult(
            outcome=LoopOutcome.EXHAUSTED,
            iterations=self.max_iterations,
            summary=summary,
        )

    def _fatal(
        self,
        error: LedgerError,
        *,
        iterations: int,
        summary: LedgerSummary | None,
    ) -> LoopResult:
        logger.error("Ledger unusable: %s", error)
        self._emit(display.style_lines([display.setup_error_line(str(error))], "red")[0])
        return LoopResult(
            outcome=LoopOutcome.FATAL_SETUP_ERROR,
            iterations=iterations,
            summary=summary,
            error=str(error),
        )

    def _emit_all(self, lines: list[str]) -> None:
        for line in lines:
            self._emit(line)
