"""Agent repository — typed access to agent documents and layer mirrors.

Key layout:
  agent:{agentId}                         whole agent record
  memory:{agentId}:{layer}:{entryId}      NOTE/THGT mirror with storage TTL

The agent record is the source of truth for memory layers. Mirrors carry a
storage TTL derived from the entry's logical expiry and are removed by the
sleep compactor together with the entries they shadow.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from spawnkit.errors import NotFoundError, ValidationError
from spawnkit.memory.schemas import AgentRecord, MemoryLayer
from spawnkit.storage.store import MemoryStore

logger = logging.getLogger(__name__)

AGENT_PREFIX = "agent:"
MEMORY_PREFIX = "memory:"


def agent_key(agent_id: str) -> str:
    return f"{AGENT_PREFIX}{agent_id}"


def memory_prefix(agent_id: str, layer: MemoryLayer | None = None) -> str:
    if layer is None:
        return f"{MEMORY_PREFIX}{agent_id}:"
    return f"{MEMORY_PREFIX}{agent_id}:{layer}:"


class AgentRepository:
    """Loads, validates and persists agent records over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Agent documents
    # ------------------------------------------------------------------

    async def get(self, agent_id: str) -> AgentRecord | None:
        raw = await self.store.get(agent_key(agent_id))
        if raw is None:
            return None
        raw.setdefault("agentId", agent_id)
        try:
            return AgentRecord.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Stored record for agent {agent_id} is malformed",
                details=e.errors(include_url=False, include_context=False),
            ) from e

    async def require(self, agent_id: str) -> AgentRecord:
        agent = await self.get(agent_id)
        if agent is None:
            raise NotFoundError(agent_id)
        return agent

    async def save(self, agent: AgentRecord) -> None:
        await self.store.put(agent_key(agent.agent_id), agent.to_document())

    async def exists(self, agent_id: str) -> bool:
        return await self.store.get(agent_key(agent_id)) is not None

    async def list_ids(self) -> list[str]:
        keys = await self.store.list_by_prefix(AGENT_PREFIX)
        return [k[len(AGENT_PREFIX):] for k in keys]

    async def delete(self, agent_id: str) -> int:
        """Delete an agent and every key under its memory namespace."""
        keys = await self.store.list_by_prefix(memory_prefix(agent_id))
        for key in keys:
            await self.store.delete(key)
        await self.store.delete(agent_key(agent_id))
        logger.info("Deleted agent %s (%d memory keys)", agent_id, len(keys))
        return len(keys)

    # ------------------------------------------------------------------
    # Layer mirrors
    # ------------------------------------------------------------------

    async def put_layer_entry(
        self,
        agent_id: str,
        layer: MemoryLayer,
        entry_id: str,
        value: dict[str, Any],
        ttl_seconds: int | None,
    ) -> None:
        await self.store.put(f"{memory_prefix(agent_id, layer)}{entry_id}", value, ttl_seconds)

    async def list_layer_entries(self, agent_id: str, layer: MemoryLayer) -> list[dict[str, Any]]:
        entries = []
        for key in await self.store.list_by_prefix(memory_prefix(agent_id, layer)):
            value = await self.store.get(key)
            if value is not None:
                entries.append(value)
        return entries

    async def drop_layer_entries(
        self,
        agent_id: str,
        layer: MemoryLayer,
        entry_ids: list[str] | None = None,
    ) -> int:
        """Delete mirrors for the given ids, or the whole layer when ids is None."""
        prefix = memory_prefix(agent_id, layer)
        if entry_ids is None:
            keys = await self.store.list_by_prefix(prefix)
        else:
            keys = [f"{prefix}{entry_id}" for entry_id in entry_ids]
        for key in keys:
            await self.store.delete(key)
        return len(keys)
