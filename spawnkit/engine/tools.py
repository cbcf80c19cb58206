"""Tool registry and executor for the four built-in memory tools.

Provides:
- ToolRegistry: registers tool specs, renders descriptions, checks required params
- ToolExecutor: validates a parsed call and applies it to the agent record
  - generate_system_note: NOTE with an expiry of 1-14 days (default 7)
  - generate_system_thought: THGT entry, cleared at the next sleep
  - generate_turn_prompt_enhancement: overwrites the next-turn guidance
  - generate_day_summary_from_conversation: overwrites the previous-day summary

Every execution appends a rendered line to the agent's tool_call_results.
A failed record write is logged and recorded as a failure line, never
raised. Mirror write failures are only logged.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from spawnkit.config import Settings
from spawnkit.engine.parser import ToolCall
from spawnkit.errors import InvalidToolCall, ToolExecutionError
from spawnkit.memory.repository import AgentRepository
from spawnkit.memory.schemas import AgentRecord, SystemNote, ThoughtEntry
from spawnkit.storage.store import Clock, utcnow

logger = logging.getLogger(__name__)

NOTE_TOOL = "generate_system_note"
THOUGHT_TOOL = "generate_system_thought"
ENHANCEMENT_TOOL = "generate_turn_prompt_enhancement"
DAY_SUMMARY_TOOL = "generate_day_summary_from_conversation"


@dataclass(frozen=True)
class ToolSpec:
    tool_id: str
    description: str
    required: tuple[str, ...] = ("message",)
    optional: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# ToolRegistry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """Known tools keyed by id, in registration order."""

    def __init__(self) -> None:
        self._specs: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        self._specs[spec.tool_id] = spec

    def get(self, tool_id: str) -> ToolSpec | None:
        return self._specs.get(tool_id)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._specs

    @property
    def tool_ids(self) -> list[str]:
        return list(self._specs)

    def available_tools(self, enabled: frozenset[str] | set[str]) -> list[ToolSpec]:
        """Specs for the tools an agent has enabled, in registration order."""
        return [spec for tool_id, spec in self._specs.items() if tool_id in enabled]

    def missing_params(self, call: ToolCall) -> list[str]:
        spec = self._specs.get(call.tool_id)
        if spec is None:
            return []
        return [name for name in spec.required if not call.params.get(name, "").strip()]


def default_registry() -> ToolRegistry:
    """Registry holding the four built-in memory tools."""
    registry = ToolRegistry()
    registry.register(
        ToolSpec(
            tool_id=NOTE_TOOL,
            description=(
                "Creates a note that persists in your system memory for the given "
                "number of days (1-14, default 7) and then expires. Use it for "
                "information that should survive several turns.\n"
                "XML USAGE:\n"
                "<sktool><generate_system_note><message>Your note</message>"
                "<expirationDays>7</expirationDays></generate_system_note></sktool>"
            ),
            optional=("expirationDays",),
        )
    )
    registry.register(
        ToolSpec(
            tool_id=THOUGHT_TOOL,
            description=(
                "Records a thought that persists until your next sleep cycle.\n"
                "XML USAGE:\n"
                "<sktool><generate_system_thought><message>Your thought</message>"
                "</generate_system_thought></sktool>"
            ),
        )
    )
    registry.register(
        ToolSpec(
            tool_id=ENHANCEMENT_TOOL,
            description=(
                "Sets guidance for your next awake turn: intentions, priorities "
                "or goals.\n"
                "XML USAGE:\n"
                "<sktool><generate_turn_prompt_enhancement><message>Your guidance"
                "</message></generate_turn_prompt_enhancement></sktool>"
            ),
        )
    )
    registry.register(
        ToolSpec(
            tool_id=DAY_SUMMARY_TOOL,
            description=(
                "Stores a summary of the day's activities and learnings, shown "
                "to you as the previous day summary.\n"
                "XML USAGE:\n"
                "<sktool><generate_day_summary_from_conversation><message>Summary"
                "</message></generate_day_summary_from_conversation></sktool>"
            ),
        )
    )
    return registry


def render_result_line(call: ToolCall, result: str, at: datetime) -> str:
    """Format one tool_call_results entry: 'toolId(k: v, ...) → result [ts]'."""
    params = ", ".join(f"{k}: {v}" for k, v in call.params.items())
    return f"{call.tool_id}({params}) → {result} [{at.isoformat()}]"


# ---------------------------------------------------------------------------
# ToolExecutor
# ---------------------------------------------------------------------------


@dataclass
class _Mirror:
    layer: str
    entry_id: str
    value: dict[str, Any]
    ttl_seconds: int


Handler = Callable[[AgentRecord, ToolCall, datetime], Awaitable[tuple[str, _Mirror | None]]]


class ToolExecutor:
    """Applies validated tool calls to agent records.

    Each execute() is its own get/put cycle on the agent document.
    """

    def __init__(
        self,
        repository: AgentRepository,
        settings: Settings,
        registry: ToolRegistry | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.repository = repository
        self.settings = settings
        self.registry = registry or default_registry()
        self._clock = clock or utcnow
        self._handlers: dict[str, Handler] = {
            NOTE_TOOL: self._note,
            THOUGHT_TOOL: self._thought,
            ENHANCEMENT_TOOL: self._enhancement,
            DAY_SUMMARY_TOOL: self._day_summary,
        }

    def validate(self, call: ToolCall, agent: AgentRecord) -> None:
        """Raise InvalidToolCall unless ``call`` is executable for ``agent``."""
        if call.tool_id not in self.registry or call.tool_id not in self._handlers:
            raise InvalidToolCall(call.tool_id, f"Unknown tool: {call.tool_id}")
        if call.tool_id not in agent.enabled_tools:
            raise InvalidToolCall(
                call.tool_id, f"Tool {call.tool_id} is not enabled for agent {agent.agent_id}"
            )
        missing = self.registry.missing_params(call)
        if missing:
            raise InvalidToolCall(
                call.tool_id, f"Missing required parameter(s): {', '.join(missing)}"
            )

    async def execute(self, call: ToolCall, agent_id: str, now: datetime | None = None) -> str:
        """Execute one call and return the rendered result line.

        ``now`` is the turn time; it defaults to the executor clock.
        Raises NotFoundError for an unknown agent and InvalidToolCall for a
        call that fails validation. A failed record write is returned as an
        error line instead of raised. The layer mirror is written after the
        record and a failure there is only logged.
        """
        agent = await self.repository.require(agent_id)
        self.validate(call, agent)
        now = now or self._clock()

        try:
            result, mirror = await self._handlers[call.tool_id](agent, call, now)
            line = render_result_line(call, result, now)
            agent.tool_call_results.append(line)
            agent.last_activity = now
            await self.repository.save(agent)
        except Exception as e:
            error = ToolExecutionError(f"{call.tool_id} failed: {e}")
            logger.exception("Tool execution failed for agent %s: %s", agent_id, call.tool_id)
            line = render_result_line(call, f"Error: {error}", now)
            await self._record_failure(agent_id, line)
            return line

        if mirror is not None:
            await self._write_mirror(agent_id, mirror)

        logger.info("Agent %s executed %s", agent_id, call.tool_id)
        return line

    async def _write_mirror(self, agent_id: str, mirror: _Mirror) -> None:
        try:
            await self.repository.put_layer_entry(
                agent_id, mirror.layer, mirror.entry_id, mirror.value, mirror.ttl_seconds
            )
        except Exception:
            logger.warning(
                "Could not write %s mirror %s for agent %s",
                mirror.layer,
                mirror.entry_id,
                agent_id,
                exc_info=True,
            )

    async def _record_failure(self, agent_id: str, line: str) -> None:
        try:
            agent = await self.repository.require(agent_id)
            agent.tool_call_results.append(line)
            await self.repository.save(agent)
        except Exception:
            logger.warning("Could not record tool failure for agent %s", agent_id, exc_info=True)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _expiration_days(self, raw: str | None) -> int:
        s = self.settings
        try:
            days = int(float(raw)) if raw not in (None, "") else s.note_default_days
        except (TypeError, ValueError, OverflowError):
            days = s.note_default_days
        return max(s.note_min_days, min(s.note_max_days, days))

    async def _note(
        self, agent: AgentRecord, call: ToolCall, now: datetime
    ) -> tuple[str, _Mirror | None]:
        days = self._expiration_days(call.params.get("expirationDays"))
        message = call.params["message"]
        note = SystemNote(content=message, created_at=now, expires_at=now + timedelta(days=days))
        agent.system_notes.append(note)
        ttl = int((note.expires_at - now).total_seconds())
        mirror = _Mirror("note", note.id, note.model_dump(mode="json"), ttl)
        return f'Note created: "{message}" (expires in {days} days)', mirror

    async def _thought(
        self, agent: AgentRecord, call: ToolCall, now: datetime
    ) -> tuple[str, _Mirror | None]:
        message = call.params["message"]
        thought = ThoughtEntry(content=message, created_at=now)
        agent.system_thoughts.append(thought)
        mirror = _Mirror(
            "thgt", thought.id, thought.model_dump(mode="json"), self.settings.thought_ttl_seconds
        )
        return f'Thought recorded: "{message}"', mirror

    async def _enhancement(
        self, agent: AgentRecord, call: ToolCall, now: datetime
    ) -> tuple[str, _Mirror | None]:
        message = call.params["message"]
        agent.turn_prompt_enhancement = message
        return f'Turn prompt enhancement set: "{message}"', None

    async def _day_summary(
        self, agent: AgentRecord, call: ToolCall, now: datetime
    ) -> tuple[str, _Mirror | None]:
        message = call.params["message"]
        agent.previous_day_summary = message
        return f'Day summary created: "{message}"', None
