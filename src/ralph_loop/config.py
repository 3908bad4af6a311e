"""Runtime configuration for the iteration loop and agent backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_AGENT_COMMAND = "copilot --model {model} -p {context} --allow-all"
DEFAULT_MODEL = "claude-opus-4.5"
DEFAULT_SENTINEL = "<promise>COMPLETE</promise>"
DEFAULT_LEDGER_GROUPS = ("userStories", "bugs", "tasks")


@dataclass(slots=True)
class LoopSettings:
    """Iteration budget and pacing."""

    max_iterations: int = 10
    delay_seconds: float = 2.0
    sentinel: str = DEFAULT_SENTINEL


@dataclass(slots=True)
class AgentSettings:
    """External agent invocation settings."""

    command_template: str = DEFAULT_AGENT_COMMAND
    model: str = DEFAULT_MODEL
    timeout_seconds: int | None = None
    max_output_chars: int | None = None


@dataclass(slots=True)
class LayoutSettings:
    """On-disk layout produced by the setup step."""

    ralph_dir: Path = Path(".copilot/ralph")
    ledger_groups: tuple[str, ...] = DEFAULT_LEDGER_GROUPS


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    loop: LoopSettings = field(default_factory=LoopSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)
    layout: LayoutSettings = field(default_factory=LayoutSettings)

    @classmethod
    def from_env(cls, ralph_dir: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for a local Copilot CLI run."""

        return cls(
            loop=LoopSettings(
                max_iterations=int(os.getenv("RALPH_LOOP_MAX_ITERATIONS", "10")),
                delay_seconds=float(os.getenv("RALPH_LOOP_DELAY_SECONDS", "2.0")),
                sentinel=os.getenv("RALPH_LOOP_SENTINEL", DEFAULT_SENTINEL),
            ),
            agent=AgentSettings(
                command_template=os.getenv("RALPH_LOOP_AGENT_COMMAND", DEFAULT_AGENT_COMMAND),
                model=os.getenv("RALPH_LOOP_MODEL", DEFAULT_MODEL),
                timeout_seconds=_env_optional_int("RALPH_LOOP_TIMEOUT_SECONDS"),
                max_output_chars=_env_optional_int("RALPH_LOOP_MAX_OUTPUT_CHARS"),
            ),
            layout=LayoutSettings(
                ralph_dir=ralph_dir or Path(os.getenv("RALPH_LOOP_DIR", ".copilot/ralph")),
                ledger_groups=_collect_ledger_groups(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any setting is out of range."""

        if self.loop.max_iterations <= 0:
            raise ValueError("RALPH_LOOP_MAX_ITERATIONS must be > 0.")
        if self.loop.delay_seconds < 0:
            raise ValueError("RALPH_LOOP_DELAY_SECONDS must be >= 0.")
        if not self.loop.sentinel:
            raise ValueError("RALPH_LOOP_SENTINEL must be a non-empty string.")
        if not self.agent.command_template.strip():
            raise ValueError("RALPH_LOOP_AGENT_COMMAND must be a non-empty command template.")
        if self.agent.timeout_seconds is not None and self.agent.timeout_seconds <= 0:
            raise ValueError("RALPH_LOOP_TIMEOUT_SECONDS must be > 0.")
        if self.agent.max_output_chars is not None and self.agent.max_output_chars <= 0:
            raise ValueError("RALPH_LOOP_MAX_OUTPUT_CHARS must be > 0.")
        if not self.layout.ledger_groups:
            raise ValueError("RALPH_LOOP_LEDGER_GROUPS must name at least one group.")


def _collect_ledger_groups() -> tuple[str, ...]:
    raw = os.getenv("RALPH_LOOP_LEDGER_GROUPS", "").strip()
    if not raw:
        return DEFAULT_LEDGER_GROUPS

    groups: list[str] = []
    seen: set[str] = set()
    for part in raw.split(","):
        name = part.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        groups.append(name)
    return tuple(groups)


def _env_optional_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error
