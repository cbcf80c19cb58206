"""Engine module — scheduling, prompting, generation and turn execution.

Public API: Orchestrator, TurnPipeline, ToolExecutor, GenerationClient,
RetryPolicy + the pure parser and scheduler functions.
"""

from spawnkit.engine.generation import GenerationClient
from spawnkit.engine.orchestrator import AgentResult, BatchResult, Orchestrator
from spawnkit.engine.parser import ToolCall, extract_turn_prompt, parse_tool_calls
from spawnkit.engine.pipeline import TurnPipeline
from spawnkit.engine.retry import RetryPolicy
from spawnkit.engine.scheduler import local_date, mode_for, should_run_sleep
from spawnkit.engine.tools import ToolExecutor, ToolRegistry, default_registry

__all__ = [
    "Orchestrator",
    "AgentResult",
    "BatchResult",
    "TurnPipeline",
    "ToolExecutor",
    "ToolRegistry",
    "default_registry",
    "GenerationClient",
    "RetryPolicy",
    # Pure functions
    "ToolCall",
    "parse_tool_calls",
    "extract_turn_prompt",
    "mode_for",
    "local_date",
    "should_run_sleep",
]
