"""spawnkit entry point.

Builds all components and starts the server:
  Settings -> Store -> Repository -> Generation -> Tools -> Compactor
  -> Pipeline -> Orchestrator -> App -> Uvicorn

Components are constructed up front; I/O resources (database pool, httpx
client) are opened and closed in the Starlette lifespan on uvicorn's loop.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from starlette.applications import Starlette

from spawnkit.api.rest import create_app
from spawnkit.config import Settings
from spawnkit.engine import (
    GenerationClient,
    Orchestrator,
    RetryPolicy,
    ToolExecutor,
    TurnPipeline,
)
from spawnkit.memory import AgentRepository, SleepCompactor
from spawnkit.storage.database import Database
from spawnkit.storage.store import InMemoryStore, MemoryStore, PostgresStore

logger = logging.getLogger(__name__)


def create_components(settings: Settings) -> dict[str, Any]:
    """Construct every component in dependency order. No I/O happens here."""
    database: Database | None = None
    store: MemoryStore
    if settings.store_backend == "postgres":
        database = Database(settings)
        store = PostgresStore(database)
    else:
        store = InMemoryStore()

    repository = AgentRepository(store)
    generation = GenerationClient(settings)
    executor = ToolExecutor(repository, settings)
    compactor = SleepCompactor(repository, generation, settings)
    pipeline = TurnPipeline(repository, generation, executor, compactor, settings)
    orchestrator = Orchestrator(
        repository, pipeline, settings, retry_policy=RetryPolicy.from_settings(settings)
    )
    return {
        "database": database,
        "store": store,
        "repository": repository,
        "generation": generation,
        "executor": executor,
        "compactor": compactor,
        "pipeline": pipeline,
        "orchestrator": orchestrator,
    }


async def start_components(components: dict[str, Any]) -> None:
    database = components.get("database")
    if database:
        await database.connect()
    await components["generation"].start()


async def shutdown_components(components: dict[str, Any]) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down spawnkit...")
    generation = components.get("generation")
    if generation:
        await generation.close()
    database = components.get("database")
    if database:
        await database.disconnect()
    logger.info("spawnkit shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    components = create_components(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await start_components(components)
        app.state.components = components
        logger.info(
            "spawnkit started (store: %s, sleep window %02d:00-%02d:00 local)",
            settings.store_backend,
            settings.sleep_start_hour,
            settings.sleep_end_hour,
        )
        yield
        await shutdown_components(components)

    return create_app(
        orchestrator=components["orchestrator"],
        executor=components["executor"],
        repository=components["repository"],
        generation=components["generation"],
        settings=settings,
        database=components["database"],
        lifespan=lifespan,
    )


def main() -> None:
    """Entry point — parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Model: %s", settings.model)
    if settings.store_backend == "postgres":
        logger.info("Database: %s:%s/%s", settings.db_host, settings.db_port, settings.db_name)
    else:
        logger.warning("Using in-memory store -- agent state is lost on restart")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
