"""Exception taxonomy for the turn engine.

Each failure is isolated at the smallest unit that can fail without
corrupting sibling state: one tool call, one summarization, one agent.
"""

from __future__ import annotations

from typing import Any


class SpawnkitError(Exception):
    """Base class for all engine errors."""


class ValidationError(SpawnkitError):
    """Malformed orchestration or tool request, rejected before any mutation."""

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(message)
        self.details = details


class NotFoundError(SpawnkitError):
    """Unknown agent id."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class UpstreamError(SpawnkitError):
    """Generation backend HTTP or transport failure. Retryable."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidToolCall(SpawnkitError):
    """Unknown or disabled tool id, or missing required parameters."""

    def __init__(self, tool_id: str, reason: str) -> None:
        super().__init__(reason)
        self.tool_id = tool_id


class ToolExecutionError(SpawnkitError):
    """A tool's storage write failed."""


class SummarizationFailure(SpawnkitError):
    """Sleep-mode history summarization failed or produced nothing."""
