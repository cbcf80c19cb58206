"""Orchestrator — runs one batch of agent turns.

Agents are processed sequentially. Each agent's turn is isolated: a failure
is recorded in its result and the batch continues. Sleep turns run at most
once per scheduler-local day.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from spawnkit.config import Settings
from spawnkit.engine.pipeline import TurnPipeline
from spawnkit.engine.retry import RetryPolicy
from spawnkit.engine.scheduler import local_date, mode_for, should_run_sleep
from spawnkit.errors import NotFoundError
from spawnkit.memory.repository import AgentRepository
from spawnkit.memory.schemas import Mode
from spawnkit.storage.store import Clock, utcnow

logger = logging.getLogger(__name__)

ResultStatus = Literal["success", "failed", "skipped"]


class AgentResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(alias="agentId")
    status: ResultStatus
    mode: Mode
    ms: int = 0
    reason: str | None = None


class BatchResult(BaseModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[AgentResult] = Field(default_factory=list)

    def add(self, result: AgentResult) -> None:
        self.results.append(result)
        self.processed += 1
        if result.status == "success":
            self.successful += 1
        elif result.status == "failed":
            self.failed += 1
        else:
            self.skipped += 1


class Orchestrator:
    def __init__(
        self,
        repository: AgentRepository,
        pipeline: TurnPipeline,
        settings: Settings,
        retry_policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.repository = repository
        self.pipeline = pipeline
        self.settings = settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self._clock = clock or utcnow
        self._sleep = sleep

    def mode_for(self, now: datetime) -> Mode:
        return mode_for(now, self.settings.sleep_start_hour, self.settings.sleep_end_hour)

    async def run(
        self,
        agent_id: str | None = None,
        mode: Mode | None = None,
        now: datetime | None = None,
    ) -> BatchResult:
        """Process one agent, or every stored agent when ``agent_id`` is None.

        Raises NotFoundError only for an explicit unknown ``agent_id``.
        """
        now = now or self._clock()
        if agent_id is not None:
            if not await self.repository.exists(agent_id):
                raise NotFoundError(agent_id)
            agent_ids = [agent_id]
        else:
            agent_ids = await self.repository.list_ids()

        batch = BatchResult()
        for i, current in enumerate(agent_ids):
            batch.add(await self._process(current, mode, now))
            if agent_id is None and i < len(agent_ids) - 1:
                await self._sleep(self.settings.inter_agent_delay)

        logger.info(
            "Orchestration finished: %d processed, %d successful, %d failed, %d skipped",
            batch.processed,
            batch.successful,
            batch.failed,
            batch.skipped,
        )
        return batch

    async def _process(self, agent_id: str, requested: Mode | None, now: datetime) -> AgentResult:
        start = time.monotonic()
        mode = requested or self.mode_for(now)
        today = local_date(now)

        def elapsed() -> int:
            return int((time.monotonic() - start) * 1000)

        try:
            agent = await self.repository.get(agent_id)
        except Exception as e:
            logger.exception("Could not load agent %s", agent_id)
            return AgentResult(agent_id=agent_id, status="failed", mode=mode, ms=elapsed(), reason=str(e))
        if agent is None:
            return AgentResult(
                agent_id=agent_id, status="failed", mode=mode, ms=elapsed(), reason="Not found"
            )

        if mode == "sleep" and not should_run_sleep(agent, today):
            logger.debug("Agent %s already slept on %s", agent_id, today)
            return AgentResult(
                agent_id=agent_id,
                status="skipped",
                mode=mode,
                ms=elapsed(),
                reason=f"Already slept on {today}",
            )

        try:
            await self.retry_policy.run(
                lambda: self.pipeline.run_turn(agent_id, mode, now),
                label=f"{mode} turn for agent {agent_id}",
            )
            await self._record_success(agent_id, mode, now, today)
        except Exception as e:
            logger.warning("Turn failed for agent %s: %s", agent_id, e)
            return AgentResult(
                agent_id=agent_id,
                status="failed",
                mode=mode,
                ms=elapsed(),
                reason=str(e) or type(e).__name__,
            )

        return AgentResult(agent_id=agent_id, status="success", mode=mode, ms=elapsed())

    async def _record_success(self, agent_id: str, mode: Mode, now: datetime, today: str) -> None:
        agent = await self.repository.require(agent_id)
        agent.turns_count += 1
        agent.last_activity = now
        agent.last_turn_triggered = now
        agent.previous_mode = agent.current_mode
        agent.current_mode = mode
        if mode == "sleep":
            agent.last_slept = today
        await self.repository.save(agent)
