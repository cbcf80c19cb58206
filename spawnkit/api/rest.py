"""REST API for the spawnkit turn engine.

Endpoints:
  POST /orchestrate                - Run one batch of agent turns
  POST /agents/{id}/generate       - Raw generation call for an agent
  POST /agents/{id}/initialize     - Reset an agent's operational state
  POST /process-tool               - Execute one tool call against an agent
  GET  /status                     - Scheduler clock: local time, mode, today
  GET  /health                     - Health check (store connectivity)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from spawnkit.config import Settings
from spawnkit.engine.generation import GenerationClient
from spawnkit.engine.orchestrator import Orchestrator
from spawnkit.engine.parser import ToolCall
from spawnkit.engine.scheduler import format_local_time, local_date, local_time, parse_timestamp
from spawnkit.engine.tools import ToolExecutor
from spawnkit.errors import (
    InvalidToolCall,
    NotFoundError,
    SpawnkitError,
    UpstreamError,
    ValidationError,
)
from spawnkit.memory.repository import AgentRepository
from spawnkit.memory.schemas import Mode, TurnHistoryEntry
from spawnkit.storage.database import Database
from spawnkit.storage.store import Clock, utcnow

logger = logging.getLogger(__name__)

AGENT_ID_PATTERN = r"^[a-zA-Z0-9_-]+$"


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class OrchestrateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agent_id: str | None = Field(
        None, alias="agentId", min_length=1, max_length=100, pattern=AGENT_ID_PATTERN
    )
    mode: Mode | None = None
    time: str | None = Field(None, validation_alias=AliasChoices("time", "estTime"))


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    system_prompt: str = Field(alias="systemPrompt", min_length=1)
    turn_history: list[TurnHistoryEntry] = Field(default_factory=list, alias="turnHistory")
    turn_prompt: str = Field(alias="turnPrompt", min_length=1)
    mode: Mode = "awake"


class ProcessToolRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_id: str = Field(alias="toolId", min_length=1, max_length=100)
    params: dict[str, Any] = Field(default_factory=dict)
    agent_id: str = Field(alias="agentId", min_length=1, max_length=100, pattern=AGENT_ID_PATTERN)


def _error(exc: Exception) -> JSONResponse:
    """Map engine errors to JSON error responses."""
    if isinstance(exc, ValidationError):
        body: dict[str, Any] = {"error": str(exc)}
        if exc.details is not None:
            body["details"] = exc.details
        return JSONResponse(body, status_code=400)
    if isinstance(exc, InvalidToolCall):
        return JSONResponse({"error": str(exc), "toolId": exc.tool_id}, status_code=400)
    if isinstance(exc, NotFoundError):
        return JSONResponse({"error": str(exc)}, status_code=404)
    if isinstance(exc, UpstreamError):
        return JSONResponse({"error": str(exc)}, status_code=502)
    return JSONResponse({"error": str(exc)}, status_code=500)


async def _parse_body(request: Request, model: type[BaseModel]) -> BaseModel:
    try:
        body = await request.json()
    except Exception as e:
        raise ValidationError("Invalid JSON body") from e
    if body is None:
        body = {}
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid request format", details=e.errors(include_url=False, include_context=False)
        ) from e


def create_app(
    orchestrator: Orchestrator,
    executor: ToolExecutor,
    repository: AgentRepository,
    generation: GenerationClient,
    settings: Settings,
    database: Database | None = None,
    lifespan: Any | None = None,
    clock: Clock | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""
    clock = clock or utcnow

    async def orchestrate(request: Request) -> JSONResponse:
        """POST /orchestrate - Run turns for one agent or all agents."""
        try:
            req = await _parse_body(request, OrchestrateRequest)
            if req.time:
                try:
                    now = parse_timestamp(req.time)
                except ValueError as e:
                    raise ValidationError(str(e)) from e
            else:
                now = clock()

            batch = await orchestrator.run(agent_id=req.agent_id, mode=req.mode, now=now)
            body = batch.model_dump(mode="json", by_alias=True, exclude_none=True)
            body["localTime"] = local_time(now).isoformat()
            body["today"] = local_date(now)
            return JSONResponse(body)
        except SpawnkitError as e:
            return _error(e)
        except Exception as e:
            logger.exception("Orchestration error")
            return _error(e)

    async def generate(request: Request) -> JSONResponse:
        """POST /agents/{id}/generate - Raw generation for an existing agent."""
        agent_id = request.path_params["id"]
        try:
            req = await _parse_body(request, GenerateRequest)
            if not await repository.exists(agent_id):
                raise NotFoundError(agent_id)
            content = await generation.complete(req.system_prompt, req.turn_history, req.turn_prompt)
            return JSONResponse({"content": content})
        except SpawnkitError as e:
            if isinstance(e, UpstreamError):
                logger.warning("Generation failed for agent %s: %s", agent_id, e)
            return _error(e)
        except Exception as e:
            logger.exception("Generate error for agent %s", agent_id)
            return _error(e)

    async def initialize(request: Request) -> JSONResponse:
        """POST /agents/{id}/initialize - Clear history, turn prompt and counters."""
        agent_id = request.path_params["id"]
        try:
            agent = await repository.require(agent_id)
            agent.turn_history = []
            agent.turn_prompt = ""
            agent.turns_count = 0
            agent.last_turn_triggered = None
            agent.last_activity = clock()
            await repository.save(agent)
            logger.info("Initialized agent %s", agent_id)
            return JSONResponse(
                {
                    "agentId": agent_id,
                    "status": "initialized",
                    "preserved": {
                        "system_permanent_memory_count": len(agent.system_permanent_memory),
                        "system_notes_count": len(agent.system_notes),
                        "system_thoughts_count": len(agent.system_thoughts),
                        "system_tools_count": len(agent.system_tools),
                    },
                }
            )
        except SpawnkitError as e:
            return _error(e)
        except Exception as e:
            logger.exception("Initialize error for agent %s", agent_id)
            return _error(e)

    async def process_tool(request: Request) -> JSONResponse:
        """POST /process-tool - Execute a single tool call."""
        try:
            req = await _parse_body(request, ProcessToolRequest)
            params = {k: str(v).strip() for k, v in req.params.items() if v is not None}
            call = ToolCall(tool_id=req.tool_id, params=params)
            result = await executor.execute(call, req.agent_id)
            return JSONResponse({"result": result})
        except SpawnkitError as e:
            return _error(e)
        except Exception as e:
            logger.exception("Process tool error")
            return _error(e)

    async def status(request: Request) -> JSONResponse:
        """GET /status - Scheduler view of the current time."""
        now = clock()
        return JSONResponse(
            {
                "now": now.isoformat(),
                "localTime": local_time(now).isoformat(),
                "display": format_local_time(now),
                "mode": orchestrator.mode_for(now),
                "today": local_date(now),
                "model": settings.model,
            }
        )

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        if database is None:
            return JSONResponse({"status": "healthy", "store": settings.store_backend})
        try:
            from sqlalchemy import text

            async with database.session() as session:
                await session.execute(text("SELECT 1"))
            return JSONResponse({"status": "healthy", "store": settings.store_backend})
        except Exception as e:
            return JSONResponse({"status": "unhealthy", "error": str(e)}, status_code=503)

    routes = [
        Route("/orchestrate", orchestrate, methods=["POST"]),
        Route("/agents/{id}/generate", generate, methods=["POST"]),
        Route("/agents/{id}/initialize", initialize, methods=["POST"]),
        Route("/process-tool", process_tool, methods=["POST"]),
        Route("/status", status),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
