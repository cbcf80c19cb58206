"""Memory module — agent record, memory layers and their lifecycle.

Public API: AgentRepository, SleepCompactor + schema types from schemas.py.
"""

from spawnkit.memory.compactor import CompactionResult, SleepCompactor
from spawnkit.memory.repository import AgentRepository, agent_key, memory_prefix
from spawnkit.memory.schemas import (
    AgentRecord,
    MemoryLayer,
    Mode,
    PermanentMemoryEntry,
    SystemNote,
    ThoughtEntry,
    TurnHistoryEntry,
    TurnOutcome,
    TurnRole,
)

__all__ = [
    "AgentRepository",
    "SleepCompactor",
    "CompactionResult",
    "agent_key",
    "memory_prefix",
    # Type aliases
    "MemoryLayer",
    "Mode",
    "TurnRole",
    # Records
    "AgentRecord",
    "PermanentMemoryEntry",
    "SystemNote",
    "ThoughtEntry",
    "TurnHistoryEntry",
    "TurnOutcome",
]
