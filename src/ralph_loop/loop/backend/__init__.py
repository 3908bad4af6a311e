"""Agent backend implementations."""

from ralph_loop.loop.backend.base import AgentBackend, AgentRunRequest, AgentRunResult, OutputSink
from ralph_loop.loop.backend.cli_backend import BackendRunError, CliAgentBackend, TeeWriter

__all__ = [
    "AgentBackend",
    "AgentRunRequest",
    "AgentRunResult",
    "BackendRunError",
    "CliAgentBackend",
    "OutputSink",
    "TeeWriter",
]
