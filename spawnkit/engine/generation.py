"""Generation backend client — OpenAI-compatible chat completions over httpx.

Retries are not done here; the orchestrator's RetryPolicy owns them.
Every transport or HTTP failure surfaces as UpstreamError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from spawnkit.config import Settings
from spawnkit.errors import UpstreamError
from spawnkit.memory.schemas import TurnHistoryEntry

logger = logging.getLogger(__name__)

# Stored history uses user/model; the chat API wants user/assistant
_ROLE_MAP = {"user": "user", "model": "assistant"}


class GenerationClient:
    """Thin async client for POST {base}/chat/completions."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings
        headers = {"content-type": "application/json"}
        if settings.groq_api_key:
            headers["authorization"] = f"Bearer {settings.groq_api_key}"
        else:
            logger.warning("GROQ_API_KEY is not set -- generation calls will fail")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)

        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=self._transport,
        )
        logger.info("Generation client initialized (model: %s)", settings.model)

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    def build_messages(
        self,
        system_prompt: str,
        history: list[TurnHistoryEntry],
        turn_prompt: str,
    ) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        for entry in history:
            messages.append({"role": _ROLE_MAP[entry.role], "content": entry.content})
        messages.append({"role": "user", "content": turn_prompt})
        return messages

    async def complete(
        self,
        system_prompt: str,
        history: list[TurnHistoryEntry],
        turn_prompt: str,
        max_tokens: int | None = None,
    ) -> str:
        """Return the first choice's text for one generation call."""
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        payload: dict[str, Any] = {
            "model": self._settings.model,
            "messages": self.build_messages(system_prompt, history, turn_prompt),
            "max_tokens": max_tokens or self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }

        try:
            response = await self._http.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Generation request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"HTTP error: {e}") from e

        if response.status_code != 200:
            try:
                error = response.json().get("error") or {}
                error_msg = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            except (ValueError, AttributeError):
                error_msg = response.text[:500]
            raise UpstreamError(
                f"Generation API error ({response.status_code}): {error_msg}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError(f"Malformed generation response: {e}") from e

        usage = data.get("usage") or {}
        logger.debug(
            "Generation complete: %d chars, tokens in=%s out=%s",
            len(content),
            usage.get("prompt_tokens"),
            usage.get("completion_tokens"),
        )
        return content
