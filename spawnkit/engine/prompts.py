"""System and turn prompt assembly.

Sections, in order (empty sections are omitted):
  AGENT GOAL, PERMANENT MEMORY, NOTES (urgent first), DAILY THOUGHTS,
  AVAILABLE TOOLS, TOOL CALL RESULTS, NEXT TURN GUIDANCE,
  PREVIOUS DAY SUMMARY, CURRENT TIME, instructions.

Only awake turns talk to the model; sleep turns are pure compaction.
"""

from __future__ import annotations

import math
import random
import re
from datetime import datetime, timedelta

from spawnkit.config import Settings
from spawnkit.engine.scheduler import format_local_time, parse_timestamp
from spawnkit.engine.tools import ToolRegistry
from spawnkit.memory.schemas import AgentRecord, SystemNote

URGENT_WINDOW = timedelta(hours=24)

TURN_PROMPTS = [
    "Work toward your goal using the tools you have. End your response with your next step in <turn_prompt> tags.",
    "Make meaningful progress on your objectives. Record anything worth keeping as a note or thought, then give your next planned action in <turn_prompt> tags.",
    "Assess where you stand and take the most useful next step. Close with your next priority in <turn_prompt> tags.",
    "Review your notes and thoughts, then act on the most important open item. Finish with <turn_prompt> tags describing what comes next.",
    "Pick one concrete task that advances your goal and do it. Capture key learnings with your tools and end with <turn_prompt> guidance.",
    "Reflect on your recent turns and decide what to do differently. Act on it, then state your next move in <turn_prompt> tags.",
]

INSTRUCTIONS = """INSTRUCTIONS:
- You are an autonomous agent working toward the goal above
- Each response should show progress toward the goal
- Use the available tools when appropriate, in the exact XML format shown
- Always end your response with <turn_prompt>the next concrete step</turn_prompt>
- If the goal is achieved, say so"""

_TRAILING_TS_RE = re.compile(r"\[([^\]]+)\]\s*$")


# ---------------------------------------------------------------------------
# Section renderers
# ---------------------------------------------------------------------------


def _notes_section(notes: list[SystemNote], now: datetime) -> str | None:
    live = sorted((n for n in notes if not n.is_expired(now)), key=lambda n: n.expires_at)
    if not live:
        return None

    urgent = [n for n in live if n.expires_at - now <= URGENT_WINDOW]
    regular = [n for n in live if n.expires_at - now > URGENT_WINDOW]

    lines = ["NOTES:"]
    if urgent:
        lines.append("URGENT - EXPIRING SOON:")
        for note in urgent:
            hours = round((note.expires_at - now).total_seconds() / 3600)
            lines.append(f"- {note.content} (expires in {hours}h)")
    if regular:
        lines.append("REGULAR NOTES:")
        for note in regular:
            days = math.ceil((note.expires_at - now).total_seconds() / 86400)
            lines.append(f"- {note.content} (expires in {days}d)")
    return "\n".join(lines)


def recent_tool_results(
    results: list[str], now: datetime, max_age: timedelta, limit: int
) -> list[str]:
    """Result lines stamped within ``max_age`` of ``now``, newest ``limit`` kept."""
    cutoff = now - max_age
    recent = []
    for line in results:
        m = _TRAILING_TS_RE.search(line)
        if not m:
            continue
        try:
            stamped = parse_timestamp(m.group(1))
        except ValueError:
            continue
        if stamped > cutoff:
            recent.append(line)
    return recent[-limit:] if limit > 0 else []


def build_system_prompt(
    agent: AgentRecord,
    now: datetime,
    registry: ToolRegistry,
    settings: Settings,
) -> str:
    sections: list[str] = []

    if agent.description.strip():
        sections.append(f"AGENT GOAL: {agent.description.strip()}")

    if agent.system_permanent_memory:
        body = "\n".join(f"- {e.content}" for e in agent.system_permanent_memory)
        sections.append(f"PERMANENT MEMORY:\n{body}")

    notes = _notes_section(agent.system_notes, now)
    if notes:
        sections.append(notes)

    if agent.system_thoughts:
        body = "\n".join(f"- {t.content}" for t in agent.system_thoughts)
        sections.append(f"DAILY THOUGHTS:\n{body}")

    tools = registry.available_tools(agent.enabled_tools)
    if tools:
        body = "\n\n".join(f"{spec.tool_id}: {spec.description}" for spec in tools)
        sections.append(f"AVAILABLE TOOLS:\n{body}")

    recent = recent_tool_results(
        agent.tool_call_results,
        now,
        timedelta(hours=settings.tool_results_max_age_hours),
        settings.tool_results_window,
    )
    if recent:
        sections.append("TOOL CALL RESULTS:\n" + "\n".join(recent))

    if agent.turn_prompt_enhancement and agent.turn_prompt_enhancement.strip():
        sections.append(f"NEXT TURN GUIDANCE:\n{agent.turn_prompt_enhancement.strip()}")

    if agent.previous_day_summary and agent.previous_day_summary.strip():
        sections.append(f"PREVIOUS DAY SUMMARY:\n{agent.previous_day_summary.strip()}")

    sections.append(f"CURRENT TIME: {format_local_time(now)}")
    sections.append(INSTRUCTIONS)
    return "\n\n".join(sections)


def random_turn_prompt(rng: random.Random | None = None) -> str:
    return (rng or random).choice(TURN_PROMPTS)


def build_turn_prompt(agent: AgentRecord, rng: random.Random | None = None) -> str:
    """The triggering instruction: turn_prompt, else enhancement, else rotation."""
    if agent.turn_prompt.strip():
        return agent.turn_prompt.strip()
    if agent.turn_prompt_enhancement and agent.turn_prompt_enhancement.strip():
        return agent.turn_prompt_enhancement.strip()
    return random_turn_prompt(rng)
