"""Read-only access to the PRD ledger document (prd.json)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ralph_loop.config import DEFAULT_LEDGER_GROUPS


class LedgerError(RuntimeError):
    """Ledger cannot be used to drive the loop."""

    def __init__(self, message: str, *, path: Path) -> None:
        super().__init__(message)
        self.path = path


class LedgerMissingError(LedgerError):
    """Ledger document does not exist at the expected location."""


class LedgerMalformedError(LedgerError):
    """Ledger document exists but is not a usable JSON object."""


@dataclass(slots=True)
class WorkItem:
    """One user story, bug or task from the ledger."""

    item_id: str
    title: str
    passes: bool
    category: str
    priority: int | None = None


@dataclass(slots=True, frozen=True)
class LedgerSummary:
    """Counts recomputed from one fresh read of the ledger."""

    total: int
    completed: int

    @property
    def remaining(self) -> int:
        return self.total - self.completed


@dataclass(slots=True)
class LedgerDocument:
    """Parsed ledger content."""

    branch_name: str | None
    items: list[WorkItem] = field(default_factory=list)

    def summary(self) -> LedgerSummary:
        completed = sum(1 for item in self.items if item.passes)
        return LedgerSummary(total=len(self.items), completed=completed)

    def pending(self) -> list[WorkItem]:
        """Return items not yet passing, lowest priority number first."""

        pending = [item for item in self.items if not item.passes]
        return sorted(
            pending,
            key=lambda item: (item.priority is None, item.priority or 0),
        )


class WorkLedger:
    """Re-reads the ledger on every call; the agent mutates it between iterations."""

    def __init__(self, path: Path, groups: tuple[str, ...] = DEFAULT_LEDGER_GROUPS) -> None:
        self.path = path
        self.groups = groups

    def summarize(self) -> LedgerSummary:
        return self.load().summary()

    def load(self) -> LedgerDocument:
        payload = _read_payload(self.path)
        items: list[WorkItem] = []
        for group in self.groups:
            items.extend(_parse_group(payload, group, path=self.path))

        branch_name = payload.get("branchName")
        return LedgerDocument(
            branch_name=branch_name if isinstance(branch_name, str) and branch_name else None,
            items=items,
        )


def _read_payload(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text("utf-8")
    except FileNotFoundError as error:
        raise LedgerMissingError(f"prd.json not found: {path}", path=path) from error
    except IsADirectoryError as error:
        raise LedgerMalformedError(f"Ledger path is a directory: {path}", path=path) from error
    except UnicodeDecodeError as error:
        raise LedgerMalformedError(
            f"Ledger is not valid UTF-8: {path} ({error.reason})",
            path=path,
        ) from error
    except OSError as error:
        raise LedgerError(f"Ledger cannot be read: {path} ({error})", path=path) from error

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise LedgerMalformedError(
            f"Ledger is not valid JSON: {path} ({error.msg} at line {error.lineno})",
            path=path,
        ) from error
    if not isinstance(payload, dict):
        raise LedgerMalformedError(f"Expected JSON object in {path}", path=path)
    return payload


def _parse_group(payload: dict[str, Any], group: str, *, path: Path) -> list[WorkItem]:
    entries = payload.get(group)
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise LedgerMalformedError(f"Ledger group {group!r} must be a list in {path}", path=path)

    items: list[WorkItem] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            items.append(
                WorkItem(item_id=f"{group}[{index}]", title="", passes=False, category=group),
            )
            continue
        priority = entry.get("priority")
        items.append(
            WorkItem(
                item_id=str(entry.get("id", f"{group}[{index}]")),
                title=str(entry.get("title", "")),
                # Only a literal JSON true counts as done.
                passes=entry.get("passes") is True,
                category=group,
                priority=priority
                if isinstance(priority, int) and not isinstance(priority, bool)
                else None,
            ),
        )
    return items
