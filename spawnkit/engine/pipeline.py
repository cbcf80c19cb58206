"""Turn pipeline — one awake or sleep turn for one agent.

Awake:
1. Build system prompt + history + triggering instruction
2. Generate
3. Parse tool calls, drop invalid ones with a warning
4. Execute valid calls (each its own read/write of the agent record)
5. Re-read the record and merge tool-introduced fields
6. Extract the next-turn marker, append the exchange to history, save

Sleep: run the compactor, save.

UpstreamError from generation propagates so the orchestrator can retry.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime

from spawnkit.config import Settings
from spawnkit.engine.generation import GenerationClient
from spawnkit.engine.parser import extract_turn_prompt, parse_tool_calls
from spawnkit.engine.prompts import build_system_prompt, build_turn_prompt
from spawnkit.engine.tools import ToolExecutor
from spawnkit.errors import InvalidToolCall, SpawnkitError
from spawnkit.memory.compactor import SleepCompactor
from spawnkit.memory.repository import AgentRepository
from spawnkit.memory.schemas import AgentRecord, Mode, TurnHistoryEntry, TurnOutcome

logger = logging.getLogger(__name__)


class TurnPipeline:
    def __init__(
        self,
        repository: AgentRepository,
        generation: GenerationClient,
        executor: ToolExecutor,
        compactor: SleepCompactor,
        settings: Settings,
        rng: random.Random | None = None,
    ) -> None:
        self.repository = repository
        self.generation = generation
        self.executor = executor
        self.compactor = compactor
        self.settings = settings
        self._rng = rng

    async def run_turn(self, agent_id: str, mode: Mode, now: datetime) -> TurnOutcome:
        agent = await self.repository.require(agent_id)
        if mode == "sleep":
            return await self._sleep_turn(agent, now)
        return await self._awake_turn(agent, now)

    # ------------------------------------------------------------------
    # Awake
    # ------------------------------------------------------------------

    async def _awake_turn(self, agent: AgentRecord, now: datetime) -> TurnOutcome:
        agent_id = agent.agent_id
        system_prompt = build_system_prompt(agent, now, self.executor.registry, self.settings)
        instruction = build_turn_prompt(agent, self._rng)

        raw = await self.generation.complete(system_prompt, agent.turn_history, instruction)

        tool_results: list[str] = []
        dropped: list[str] = []
        for call in parse_tool_calls(raw):
            try:
                self.executor.validate(call, agent)
            except InvalidToolCall as e:
                logger.warning("Dropping tool call for agent %s: %s", agent_id, e)
                dropped.append(call.tool_id)
                continue
            try:
                tool_results.append(await self.executor.execute(call, agent_id, now=now))
            except SpawnkitError as e:
                logger.warning("Tool call %s for agent %s failed: %s", call.tool_id, agent_id, e)
                dropped.append(call.tool_id)

        # Tool writes went straight to the store; take their fields from there
        if tool_results:
            self._merge_tool_fields(agent, await self.repository.require(agent_id))

        next_prompt, cleaned = extract_turn_prompt(raw)
        agent.turn_prompt = next_prompt or ""
        agent.turn_history.extend(
            [
                TurnHistoryEntry(role="user", content=instruction, timestamp=now),
                TurnHistoryEntry(role="model", content=cleaned, timestamp=now),
            ]
        )
        agent.last_activity = now
        await self.repository.save(agent)

        logger.info(
            "Awake turn for agent %s: %d tools executed, %d dropped, next prompt %s",
            agent_id,
            len(tool_results),
            len(dropped),
            "set" if next_prompt else "cleared",
        )
        return TurnOutcome(
            agent_id=agent_id,
            mode="awake",
            content=cleaned,
            tool_results=tool_results,
            dropped_calls=dropped,
            next_turn_prompt=next_prompt,
        )

    @staticmethod
    def _merge_tool_fields(agent: AgentRecord, fresh: AgentRecord) -> None:
        agent.system_notes = fresh.system_notes
        agent.system_thoughts = fresh.system_thoughts
        agent.turn_prompt_enhancement = fresh.turn_prompt_enhancement
        agent.tool_call_results = fresh.tool_call_results
        agent.previous_day_summary = fresh.previous_day_summary
        agent.last_activity = fresh.last_activity

    # ------------------------------------------------------------------
    # Sleep
    # ------------------------------------------------------------------

    async def _sleep_turn(self, agent: AgentRecord, now: datetime) -> TurnOutcome:
        result = await self.compactor.compact(agent, now)
        agent.last_activity = now
        await self.repository.save(agent)
        return TurnOutcome(
            agent_id=agent.agent_id,
            mode="sleep",
            notes_purged=result.notes_purged,
            thoughts_cleared=result.thoughts_cleared,
            history_compacted=result.history_compacted,
        )
