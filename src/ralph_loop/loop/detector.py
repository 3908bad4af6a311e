"""Completion signal detection in captured agent output."""

from __future__ import annotations

from ralph_loop.config import DEFAULT_SENTINEL


class CompletionDetector:
    """Exact, case-sensitive sentinel search over the whole captured output.

    The sentinel is the only way a run is declared complete: ledger counts
    reaching zero remaining are never treated as completion on their own.
    """

    def __init__(self, sentinel: str = DEFAULT_SENTINEL) -> None:
        if not sentinel:
            raise ValueError("Completion sentinel must be a non-empty string.")
        self.sentinel = sentinel

    def check(self, output: str) -> bool:
        return self.sentinel in output
