"""Path layout of a ralph workspace created by the setup step."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

LEDGER_FILENAME = "prd.json"
PROGRESS_FILENAME = "progress.txt"
PROMPT_FILENAME = "prompt.md"
TASKS_DIRNAME = "tasks"


class FeatureNotFoundError(LookupError):
    """Requested feature folder does not exist under ``tasks/``."""

    def __init__(self, feature_dir: Path) -> None:
        super().__init__(f"Feature folder not found: {feature_dir}")
        self.feature_dir = feature_dir


@dataclass(slots=True, frozen=True)
class FeaturePaths:
    """Files passed to the agent for one feature."""

    feature: str
    feature_dir: Path
    ledger_path: Path
    progress_path: Path
    prompt_path: Path


@dataclass(slots=True)
class RalphWorkspace:
    """Resolves feature folders under ``<ralph_dir>/tasks``."""

    ralph_dir: Path

    @property
    def tasks_dir(self) -> Path:
        return self.ralph_dir / TASKS_DIRNAME

    def list_features(self) -> list[str]:
        if not self.tasks_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.tasks_dir.iterdir() if entry.is_dir())

    def resolve(self, feature: str) -> FeaturePaths:
        feature_dir = self.tasks_dir / feature
        if not feature_dir.is_dir():
            raise FeatureNotFoundError(feature_dir)
        return FeaturePaths(
            feature=feature,
            feature_dir=feature_dir,
            ledger_path=feature_dir / LEDGER_FILENAME,
            progress_path=feature_dir / PROGRESS_FILENAME,
            prompt_path=self.ralph_dir / PROMPT_FILENAME,
        )
