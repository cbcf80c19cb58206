"""Tool-call parser — extracts <sktool> invocations from generated text.

Grammar:
    call  := "<sktool>" "<" ident ">" param* ["</" ident ">"] "</sktool>"
    param := "<" name ">" text "</" name ">"

Example:
    <sktool><generate_system_note><message>Check pricing</message>
    <expirationDays>3</expirationDays></generate_system_note></sktool>

Parsing is pure and tolerant: an opener with no closer before the next
opener is skipped, blocks without a tool identifier are skipped, and
unterminated parameter tags are ignored. Nothing here raises.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

OPEN_TAG = "<sktool>"
CLOSE_TAG = "</sktool>"

_IDENT_RE = re.compile(r"\s*<([A-Za-z_][A-Za-z0-9_]*)>")
_PARAM_RE = re.compile(r"<([A-Za-z_][A-Za-z0-9_]*)>(.*?)</\1>", re.DOTALL)
_TURN_PROMPT_RE = re.compile(
    r"<turn[_-]prompt>(.*?)</turn[_-]prompt>", re.IGNORECASE | re.DOTALL
)


@dataclass(frozen=True)
class ToolCall:
    """One parsed tool invocation."""

    tool_id: str
    params: dict[str, str] = field(default_factory=dict)
    raw: str = ""


def parse_tool_calls(text: str) -> list[ToolCall]:
    """Return tool calls in the order they appear in ``text``."""
    calls: list[ToolCall] = []
    pos = 0
    while True:
        start = text.find(OPEN_TAG, pos)
        if start == -1:
            break
        body_start = start + len(OPEN_TAG)
        end = text.find(CLOSE_TAG, body_start)
        if end == -1:
            logger.debug("Unterminated %s at offset %d, ignoring tail", OPEN_TAG, start)
            break
        nested = text.find(OPEN_TAG, body_start, end)
        if nested != -1:
            # This opener never closed; resume from the later one
            logger.debug("Dangling %s at offset %d skipped", OPEN_TAG, start)
            pos = nested
            continue

        raw = text[start:end + len(CLOSE_TAG)]
        call = _parse_block(text[body_start:end], raw)
        if call is not None:
            calls.append(call)
        pos = end + len(CLOSE_TAG)

    logger.debug("Parsed %d tool calls", len(calls))
    return calls


def _parse_block(body: str, raw: str) -> ToolCall | None:
    match = _IDENT_RE.match(body)
    if not match:
        logger.debug("Tool block without identifier skipped: %.80s", raw)
        return None

    tool_id = match.group(1)
    inner = body[match.end():]
    closing = inner.rfind(f"</{tool_id}>")
    if closing != -1:
        inner = inner[:closing]

    params: dict[str, str] = {}
    for param in _PARAM_RE.finditer(inner):
        # First occurrence of a repeated parameter wins
        params.setdefault(param.group(1), param.group(2).strip())
    return ToolCall(tool_id=tool_id, params=params, raw=raw)


def extract_turn_prompt(text: str) -> tuple[str | None, str]:
    """Split off the next-turn instruction.

    Returns (prompt, cleaned_text). The last complete marker wins; every
    complete marker is stripped from the cleaned text.
    """
    matches = list(_TURN_PROMPT_RE.finditer(text))
    if not matches:
        return None, text.strip()
    prompt = matches[-1].group(1).strip() or None
    cleaned = _TURN_PROMPT_RE.sub("", text).strip()
    return prompt, cleaned
