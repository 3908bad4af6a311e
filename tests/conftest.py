"""Shared test fixtures."""

from __future__ import annotations

import json
import shlex
import sys
from pathlib import Path
from typing import Any

import pytest

ECHO_AGENT_COMMAND_TEMPLATE = (
    f"{shlex.quote(sys.executable)} -m ralph_loop.loop.backend.echo_agent {{ledger}} {{progress}}"
)

_LOOP_ENV_VARS = (
    "RALPH_LOOP_DIR",
    "RALPH_LOOP_MAX_ITERATIONS",
    "RALPH_LOOP_DELAY_SECONDS",
    "RALPH_LOOP_AGENT_COMMAND",
    "RALPH_LOOP_MODEL",
    "RALPH_LOOP_SENTINEL",
    "RALPH_LOOP_TIMEOUT_SECONDS",
    "RALPH_LOOP_MAX_OUTPUT_CHARS",
    "RALPH_LOOP_LEDGER_GROUPS",
)


@pytest.fixture(autouse=True)
def _clean_loop_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _LOOP_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_ledger(path: Path, payload: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), "utf-8")
    return path


def make_items(prefix: str, count: int, *, passed: int = 0) -> list[dict[str, Any]]:
    return [
        {"id": f"{prefix}-{index:03d}", "title": f"{prefix} {index}", "passes": index <= passed}
        for index in range(1, count + 1)
    ]


@pytest.fixture()
def ralph_dir(tmp_path: Path) -> Path:
    """Workspace shaped like the setup step output, with one feature."""

    root = tmp_path / ".copilot" / "ralph"
    feature_dir = root / "tasks" / "01-feature"
    feature_dir.mkdir(parents=True)
    (root / "prompt.md").write_text("# Ralph Agent Instructions\n", "utf-8")
    (feature_dir / "progress.txt").write_text("# Ralph Progress Log\n", "utf-8")
    write_ledger(
        feature_dir / "prd.json",
        {
            "branchName": "feat/01-feature",
            "userStories": make_items("US", 2),
            "bugs": make_items("BUG", 1),
            "tasks": [],
        },
    )
    return root
