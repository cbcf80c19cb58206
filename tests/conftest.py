"""Test fixtures over the in-memory store with a controllable clock.

Postgres-backed store tests live in test_store.py and only run when
SPAWNKIT_TEST_DB=1.
"""

import random
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from spawnkit.config import Settings
from spawnkit.engine.orchestrator import Orchestrator
from spawnkit.engine.pipeline import TurnPipeline
from spawnkit.engine.retry import RetryPolicy
from spawnkit.engine.tools import ToolExecutor
from spawnkit.memory.compactor import SleepCompactor
from spawnkit.memory.repository import AgentRepository
from spawnkit.memory.schemas import AgentRecord
from spawnkit.storage.store import InMemoryStore

ALL_TOOLS = [
    "generate_system_note",
    "generate_system_thought",
    "generate_turn_prompt_enhancement",
    "generate_day_summary_from_conversation",
]

# 12:00 EDT, awake
AWAKE_NOW = datetime(2026, 6, 15, 16, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Clock and generation doubles
# ---------------------------------------------------------------------------


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class MockGeneration:
    """Returns scripted responses from complete(), tracks call history.

    Entries in ``responses`` are consumed in order; an Exception entry is
    raised instead of returned. Once empty, ``preset_response`` is used.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.responses: list = []
        self.preset_response = "Working on it. <turn_prompt>Keep going</turn_prompt>"

    async def complete(self, system_prompt, history, turn_prompt, max_tokens=None):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "history": list(history),
                "turn_prompt": turn_prompt,
                "max_tokens": max_tokens,
            }
        )
        response = self.responses.pop(0) if self.responses else self.preset_response
        if isinstance(response, Exception):
            raise response
        return response

    async def start(self):
        pass

    async def close(self):
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(AWAKE_NOW)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, store_backend="memory")


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def repository(store) -> AgentRepository:
    return AgentRepository(store)


@pytest.fixture
def generation() -> MockGeneration:
    return MockGeneration()


@pytest.fixture
def executor(repository, settings, clock) -> ToolExecutor:
    return ToolExecutor(repository, settings, clock=clock)


@pytest.fixture
def compactor(repository, generation, settings) -> SleepCompactor:
    return SleepCompactor(repository, generation, settings)


@pytest.fixture
def pipeline(repository, generation, executor, compactor, settings) -> TurnPipeline:
    return TurnPipeline(
        repository, generation, executor, compactor, settings, rng=random.Random(0)
    )


@pytest.fixture
def backoff_sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def agent_delay() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def orchestrator(repository, pipeline, settings, clock, backoff_sleep, agent_delay) -> Orchestrator:
    policy = RetryPolicy.from_settings(settings, sleep=backoff_sleep)
    return Orchestrator(
        repository, pipeline, settings, retry_policy=policy, clock=clock, sleep=agent_delay
    )


@pytest_asyncio.fixture
async def make_agent(repository):
    """Factory that stores an agent with all four tools enabled."""

    async def _make(agent_id: str = "agent-1", **fields) -> AgentRecord:
        fields.setdefault("description", "Research the AI tooling market")
        fields.setdefault("system_tools", list(ALL_TOOLS))
        agent = AgentRecord(agent_id=agent_id, **fields)
        await repository.save(agent)
        return agent

    return _make
