"""Sleep compactor — memory maintenance run once per sleep cycle.

Phases:
1. Purge — drop NOTE entries whose expires_at has passed (and their mirrors)
2. Clear — drop every THGT entry (and the whole thgt mirror namespace)
3. Summarize — when history exceeds the retention window, replace it with a
   synthetic summary exchange followed by the most recent entries

Phases 1-2 are storage-only. Phase 3 makes one generation call and is
fail-soft: a failed or empty summary leaves history untouched.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from spawnkit.config import Settings
from spawnkit.errors import SummarizationFailure
from spawnkit.memory.repository import AgentRepository
from spawnkit.memory.schemas import AgentRecord, TurnHistoryEntry

if TYPE_CHECKING:
    from spawnkit.engine.generation import GenerationClient

logger = logging.getLogger(__name__)

SUMMARY_USER_PROMPT = "summarize"

SUMMARY_SYSTEM_PROMPT = """You are an autonomous agent consolidating your memory at the end of the day.
Summarize the conversation below. Keep:
- Goals and progress made toward them
- Decisions taken and why
- Open questions and the next planned steps

Write plain prose, no preamble. The summary replaces the older turns."""

_SUMMARY_TAG_RE = re.compile(r"<summary>(.*?)</summary>", re.IGNORECASE | re.DOTALL)


@dataclass
class CompactionResult:
    notes_purged: int = 0
    thoughts_cleared: int = 0
    history_compacted: bool = False


class SleepCompactor:
    """Applies the sleep-cycle memory lifecycle to an agent record in place.

    The caller persists the agent afterwards; mirror keys are deleted here.
    """

    def __init__(
        self,
        repository: AgentRepository,
        generation: GenerationClient,
        settings: Settings,
    ) -> None:
        self.repository = repository
        self.generation = generation
        self.settings = settings

    async def compact(self, agent: AgentRecord, now: datetime) -> CompactionResult:
        result = CompactionResult()
        result.notes_purged = await self.purge_expired_notes(agent, now)
        result.thoughts_cleared = await self.clear_thoughts(agent)
        result.history_compacted = await self.summarize_history(agent, now)
        logger.info(
            "Sleep compaction for agent %s: %d notes purged, %d thoughts cleared, history %s",
            agent.agent_id,
            result.notes_purged,
            result.thoughts_cleared,
            "compacted" if result.history_compacted else "kept",
        )
        return result

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def purge_expired_notes(self, agent: AgentRecord, now: datetime) -> int:
        expired = [n for n in agent.system_notes if n.is_expired(now)]
        if not expired:
            return 0
        agent.system_notes = [n for n in agent.system_notes if not n.is_expired(now)]
        await self.repository.drop_layer_entries(
            agent.agent_id, "note", [n.id for n in expired]
        )
        return len(expired)

    async def clear_thoughts(self, agent: AgentRecord) -> int:
        cleared = len(agent.system_thoughts)
        agent.system_thoughts = []
        await self.repository.drop_layer_entries(agent.agent_id, "thgt")
        return cleared

    async def summarize_history(self, agent: AgentRecord, now: datetime) -> bool:
        retention = self.settings.history_retention
        if len(agent.turn_history) <= retention:
            return False

        start = time.monotonic()
        try:
            summary = await self._summarize(agent.turn_history)
        except Exception as e:
            # Fail-soft: history is left exactly as it was
            logger.warning(
                "History summarization failed for agent %s, keeping %d entries: %s",
                agent.agent_id,
                len(agent.turn_history),
                e,
            )
            return False

        before = len(agent.turn_history)
        agent.turn_history = [
            TurnHistoryEntry(role="user", content=SUMMARY_USER_PROMPT, timestamp=now),
            TurnHistoryEntry(role="model", content=summary, timestamp=now),
            *agent.turn_history[-retention:],
        ]
        logger.info(
            "Compacted history for agent %s: %d -> %d entries (%d chars, %d ms)",
            agent.agent_id,
            before,
            len(agent.turn_history),
            len(summary),
            int((time.monotonic() - start) * 1000),
        )
        return True

    async def _summarize(self, history: list[TurnHistoryEntry]) -> str:
        text = await self.generation.complete(
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            history=[],
            turn_prompt=self._serialize_for_summary(history),
            max_tokens=self.settings.summary_max_tokens,
        )
        match = _SUMMARY_TAG_RE.search(text)
        summary = (match.group(1) if match else text).strip()
        if not summary:
            raise SummarizationFailure("Generation returned an empty summary")
        return summary

    @staticmethod
    def _serialize_for_summary(history: list[TurnHistoryEntry]) -> str:
        lines = []
        for entry in history:
            speaker = "Instruction" if entry.role == "user" else "Agent"
            lines.append(f"{speaker}: {entry.content}")
        return "\n\n".join(lines)
