"""Pydantic models for the agent record and its memory layers.

The agent is a single JSON document in the store. These models validate it
at the store boundary, normalizing the legacy shapes older records carry
(plain-string memory entries, tool objects, parts-style history).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

Mode = Literal["awake", "sleep"]
MemoryLayer = Literal["pmem", "note", "thgt"]
TurnRole = Literal["user", "model"]

# Legacy string notes have no expiry; they are treated as expiring within a day
LEGACY_NOTE_LIFETIME = timedelta(hours=24)


def _new_id() -> str:
    return uuid4().hex


def _now() -> datetime:
    return datetime.now(UTC)


# --- Memory layer entries ---


class PermanentMemoryEntry(BaseModel):
    """PMEM: never expires."""

    id: str = Field(default_factory=_new_id)
    content: str
    created_at: datetime = Field(default_factory=_now)


class SystemNote(BaseModel):
    """NOTE: expires at ``expires_at`` and is purged during sleep."""

    id: str = Field(default_factory=_new_id)
    content: str
    created_at: datetime = Field(default_factory=_now)
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class ThoughtEntry(BaseModel):
    """THGT: lives until the next sleep cycle."""

    id: str = Field(default_factory=_new_id)
    content: str
    created_at: datetime = Field(default_factory=_now)


class TurnHistoryEntry(BaseModel):
    role: TurnRole
    content: str
    timestamp: datetime | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, v: Any) -> Any:
        return "model" if v == "assistant" else v


# --- Agent record ---


class AgentRecord(BaseModel):
    """Whole-document agent state stored under ``agent:{agentId}``."""

    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(alias="agentId")
    name: str = ""
    description: str = ""

    current_mode: Mode = Field("awake", alias="currentMode")
    previous_mode: Mode | None = Field(None, alias="previousMode")
    last_activity: datetime | None = Field(None, alias="lastActivity")
    last_slept: str | None = Field(None, alias="lastSlept")
    last_turn_triggered: datetime | None = Field(None, alias="lastTurnTriggered")
    turns_count: int = Field(0, alias="turnsCount")

    system_permanent_memory: list[PermanentMemoryEntry] = Field(default_factory=list)
    system_notes: list[SystemNote] = Field(default_factory=list)
    system_thoughts: list[ThoughtEntry] = Field(default_factory=list)
    system_tools: list[str] = Field(default_factory=list)

    turn_history: list[TurnHistoryEntry] = Field(default_factory=list)
    turn_prompt: str = ""
    turn_prompt_enhancement: str | None = None
    tool_call_results: list[str] = Field(default_factory=list)
    previous_day_summary: str | None = None

    @field_validator("system_permanent_memory", "system_thoughts", mode="before")
    @classmethod
    def _wrap_plain_strings(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"content": item} if isinstance(item, str) else item for item in v]
        return v

    @field_validator("system_notes", mode="before")
    @classmethod
    def _wrap_legacy_notes(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        now = _now()
        notes = []
        for item in v:
            if isinstance(item, str):
                item = {"content": item, "expires_at": now + LEGACY_NOTE_LIFETIME}
            notes.append(item)
        return notes

    @field_validator("system_tools", mode="before")
    @classmethod
    def _tool_ids(cls, v: Any) -> Any:
        if isinstance(v, list):
            ids = [item.get("id") if isinstance(item, dict) else item for item in v]
            return [i for i in ids if i is not None]
        return v

    @field_validator("turn_history", mode="before")
    @classmethod
    def _flatten_parts(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        entries = []
        for item in v:
            if isinstance(item, dict) and "content" not in item and "parts" in item:
                text = " ".join(p.get("text", "") for p in item.get("parts") or [])
                item = {"role": item.get("role"), "content": text}
            entries.append(item)
        return entries

    def to_document(self) -> dict[str, Any]:
        """Serialize for the store using the wire (alias) keys."""
        return self.model_dump(mode="json", by_alias=True)

    @property
    def enabled_tools(self) -> frozenset[str]:
        return frozenset(self.system_tools)


class TurnOutcome(BaseModel):
    """What one pipeline invocation did to an agent."""

    agent_id: str
    mode: Mode
    content: str = ""
    tool_results: list[str] = Field(default_factory=list)
    dropped_calls: list[str] = Field(default_factory=list)
    next_turn_prompt: str | None = None
    notes_purged: int = 0
    thoughts_cleared: int = 0
    history_compacted: bool = False
