"""Tests for the Orchestrator: agent resolution, sleep gating, retries and
per-agent failure isolation."""

from datetime import UTC, datetime, timedelta

import pytest

from spawnkit.errors import NotFoundError, UpstreamError

# 03:30 EDT on 2026-06-15
SLEEP_NOW = datetime(2026, 6, 15, 7, 30, tzinfo=UTC)


class TestSingleAgent:
    async def test_awake_success_updates_bookkeeping(self, orchestrator, repository, make_agent, clock):
        await make_agent()

        batch = await orchestrator.run(agent_id="agent-1")

        assert (batch.processed, batch.successful, batch.failed, batch.skipped) == (1, 1, 0, 0)
        result = batch.results[0]
        assert result.agent_id == "agent-1"
        assert result.status == "success"
        assert result.mode == "awake"
        assert result.reason is None

        agent = await repository.get("agent-1")
        assert agent.turns_count == 1
        assert agent.last_activity == clock()
        assert agent.last_turn_triggered == clock()
        assert agent.current_mode == "awake"
        assert agent.last_slept is None
        assert len(agent.turn_history) == 2

    async def test_unknown_agent_raises(self, orchestrator, generation, repository):
        with pytest.raises(NotFoundError):
            await orchestrator.run(agent_id="ghost")
        assert generation.calls == []
        assert await repository.list_ids() == []

    async def test_mode_override(self, orchestrator, repository, make_agent):
        await make_agent()
        batch = await orchestrator.run(agent_id="agent-1", mode="sleep")
        assert batch.results[0].mode == "sleep"
        agent = await repository.get("agent-1")
        assert agent.current_mode == "sleep"
        assert agent.previous_mode == "awake"
        assert agent.last_slept == "2026-06-15"

    async def test_explicit_now_drives_tool_timestamps(self, orchestrator, generation, repository, make_agent, clock):
        """Tool effects are stamped with the run time, not the wall clock."""
        await make_agent()
        now = datetime(2026, 1, 10, 17, 0, tzinfo=UTC)  # 12:00 EST
        generation.responses = [
            "<sktool><generate_system_note><message>X</message></generate_system_note></sktool>"
        ]

        batch = await orchestrator.run(agent_id="agent-1", now=now)

        assert batch.results[0].status == "success"
        agent = await repository.get("agent-1")
        note = agent.system_notes[0]
        assert now != clock()
        assert note.created_at == now
        assert note.expires_at == now + timedelta(days=7)
        assert agent.tool_call_results[0].endswith(f"[{now.isoformat()}]")
        assert agent.last_activity == now

    async def test_no_inter_agent_delay_for_explicit_id(self, orchestrator, make_agent, agent_delay):
        await make_agent()
        await orchestrator.run(agent_id="agent-1")
        agent_delay.assert_not_awaited()


class TestSleepGating:
    async def test_second_sleep_same_day_skipped(self, orchestrator, repository, make_agent):
        await make_agent()

        first = await orchestrator.run(agent_id="agent-1", now=SLEEP_NOW)
        second = await orchestrator.run(agent_id="agent-1", now=SLEEP_NOW)

        assert first.results[0].status == "success"
        assert first.results[0].mode == "sleep"
        assert second.results[0].status == "skipped"
        assert (second.processed, second.skipped) == (1, 1)

        agent = await repository.get("agent-1")
        assert agent.last_slept == "2026-06-15"
        assert agent.turns_count == 1

    async def test_sleep_runs_again_next_day(self, orchestrator, make_agent):
        await make_agent(last_slept="2026-06-14")
        batch = await orchestrator.run(agent_id="agent-1", now=SLEEP_NOW)
        assert batch.results[0].status == "success"


class TestRetries:
    async def test_three_upstream_failures_mark_failed(self, orchestrator, generation, repository, make_agent, backoff_sleep):
        await make_agent()
        generation.responses = [UpstreamError(f"HTTP 503 #{i}", status_code=503) for i in range(3)]

        batch = await orchestrator.run(agent_id="agent-1")

        result = batch.results[0]
        assert result.status == "failed"
        assert "HTTP 503 #2" in result.reason
        assert batch.failed == 1
        assert len(generation.calls) == 3
        assert backoff_sleep.await_count == 2

        agent = await repository.get("agent-1")
        assert agent.turns_count == 0
        assert agent.turn_history == []

    async def test_recovers_on_third_attempt(self, orchestrator, generation, repository, make_agent, backoff_sleep):
        await make_agent()
        generation.responses = [UpstreamError("a"), UpstreamError("b"), "fine <turn_prompt>n</turn_prompt>"]

        batch = await orchestrator.run(agent_id="agent-1")

        assert batch.results[0].status == "success"
        assert backoff_sleep.await_count == 2
        agent = await repository.get("agent-1")
        assert agent.turns_count == 1
        assert agent.turn_prompt == "n"

    async def test_non_retryable_error_fails_fast(self, orchestrator, generation, make_agent, backoff_sleep):
        await make_agent()
        generation.responses = [ValueError("bad payload")]

        batch = await orchestrator.run(agent_id="agent-1")

        assert batch.results[0].status == "failed"
        assert batch.results[0].reason == "bad payload"
        assert len(generation.calls) == 1
        backoff_sleep.assert_not_awaited()


class TestFullSet:
    async def test_failure_isolated_between_agents(self, orchestrator, generation, repository, make_agent, agent_delay):
        for agent_id in ("a", "b", "c"):
            await make_agent(agent_id)
        # Agents run in key order: a, b, c
        generation.responses = ["ok a", ValueError("b broke"), "ok c"]

        batch = await orchestrator.run()

        assert [r.agent_id for r in batch.results] == ["a", "b", "c"]
        assert [r.status for r in batch.results] == ["success", "failed", "success"]
        assert (batch.processed, batch.successful, batch.failed, batch.skipped) == (3, 2, 1, 0)
        assert (await repository.get("a")).turns_count == 1
        assert (await repository.get("b")).turns_count == 0
        assert (await repository.get("c")).turns_count == 1

        assert agent_delay.await_count == 2
        agent_delay.assert_awaited_with(0.1)

    async def test_malformed_record_is_failed_not_fatal(self, orchestrator, store, make_agent):
        await make_agent("good")
        await store.put("agent:bad", {"agentId": "bad", "turnsCount": "lots"})

        batch = await orchestrator.run()

        by_id = {r.agent_id: r for r in batch.results}
        assert by_id["bad"].status == "failed"
        assert by_id["good"].status == "success"

    async def test_empty_store(self, orchestrator, agent_delay):
        batch = await orchestrator.run()
        assert batch.processed == 0
        assert batch.results == []
        agent_delay.assert_not_awaited()

    async def test_mixed_sleep_gating(self, orchestrator, make_agent):
        await make_agent("rested", last_slept="2026-06-15")
        await make_agent("tired")

        batch = await orchestrator.run(now=SLEEP_NOW)

        statuses = {r.agent_id: r.status for r in batch.results}
        assert statuses == {"rested": "skipped", "tired": "success"}
        assert batch.processed == 2
