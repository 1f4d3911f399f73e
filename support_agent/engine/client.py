"""HTTP client for the agent server.

Thin typed facade over the server's REST + server-sent-events API.
Every call is a fallible remote call: transport failures, error
statuses and responses missing their expected payload all raise
AgentClientError instead of returning an empty value.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator
from typing import Any

import aiohttp

from .errors import AgentClientError
from .events import AgentEvent, parse_event
from .models import ModelSelector

logger = logging.getLogger(__name__)

# Event payloads can carry whole file contents from tool calls.
_READ_BUFSIZE = 2 ** 20


async def iter_sse_data(lines: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield the ``data`` field of each server-sent event.

    Multi-line data fields are joined with newlines. Comment lines and
    the ``event``/``id``/``retry`` fields are ignored; a trailing event
    without its terminating blank line is discarded.
    """
    data_lines: list[str] = []
    async for raw in lines:
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)


class EventStream:
    """An open subscription to the server's global event feed.

    The HTTP response is already established when this object exists,
    so events emitted after construction are not missed. Iterate once;
    the feed never ends on its own, so end of stream is an error.
    """

    def __init__(self, response: aiohttp.ClientResponse) -> None:
        self._response = response
        self._iterator: AsyncGenerator[AgentEvent, None] | None = None

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        if self._iterator is None:
            self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncGenerator[AgentEvent, None]:
        try:
            async for data in iter_sse_data(self._response.content):
                try:
                    payload = json.loads(data)
                except json.JSONDecodeError as exc:
                    raise AgentClientError(
                        "event stream", f"undecodable event: {data[:200]!r}",
                    ) from exc
                if isinstance(payload, dict):
                    yield parse_event(payload)
        except aiohttp.ClientError as exc:
            raise AgentClientError("event stream", str(exc)) from exc
        except ValueError as exc:
            # StreamReader refuses lines beyond its high-water mark.
            raise AgentClientError("event stream", f"event too large: {exc}") from exc
        finally:
            self.close()
        raise AgentClientError("event stream", "connection closed by server")

    def close(self) -> None:
        self._response.close()

    async def __aenter__(self) -> EventStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._iterator is not None:
            await self._iterator.aclose()
        self.close()


class AgentClient:
    """Client bound to one agent server address.

    ``directory`` scopes every request to a repository on disk; the
    server resolves its read/glob tools relative to it.
    """

    def __init__(
        self,
        base_url: str,
        *,
        directory: str | None = None,
        request_timeout: float = 30.0,
        http: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.directory = directory
        self._request_timeout = request_timeout
        self._http = http
        self._owns_http = http is None

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(read_bufsize=_READ_BUFSIZE)
            self._owns_http = True
        return self._http

    def _params(self) -> dict[str, str]:
        if self.directory:
            return {"directory": self.directory}
        return {}

    async def _request_json(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with self._session().request(
                method,
                url,
                params=self._params(),
                json=body,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise AgentClientError(
                        operation, text[:500] or str(resp.reason), status=resp.status,
                    )
        except aiohttp.ClientError as exc:
            raise AgentClientError(operation, str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise AgentClientError(operation, f"no response within {timeout}s") from exc

        if not text.strip():
            raise AgentClientError(operation, "empty response")
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise AgentClientError(operation, "response is not JSON") from exc

    async def list_providers(self) -> list[dict[str, Any]]:
        """Return the server's full provider list (the ``all`` field)."""
        data = await self._request_json(
            "list providers", "GET", "/provider", timeout=self._request_timeout,
        )
        if not isinstance(data, dict) or not isinstance(data.get("all"), list):
            raise AgentClientError("list providers", "response has no 'all' list")
        return data["all"]

    async def create_session(self) -> str:
        data = await self._request_json(
            "create session", "POST", "/session", body={}, timeout=self._request_timeout,
        )
        session_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(session_id, str) or not session_id:
            raise AgentClientError("create session", "response has no session id")
        logger.info("Created session %s", session_id)
        return session_id

    async def prompt_session(
        self,
        session_id: str,
        selector: ModelSelector,
        text: str,
    ) -> dict[str, Any]:
        """Submit a prompt. Resolves only once the server finished answering."""
        body = {
            "model": selector.to_payload(),
            "parts": [{"type": "text", "text": text}],
        }
        data = await self._request_json(
            "prompt", "POST", f"/session/{session_id}/message", body=body,
        )
        if not isinstance(data, dict):
            raise AgentClientError("prompt", "response is not an object")
        return data

    async def subscribe_events(self) -> EventStream:
        """Open the global event feed and return it once connected."""
        try:
            resp = await self._session().get(
                f"{self.base_url}/event",
                params=self._params(),
                headers={"Accept": "text/event-stream"},
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=self._request_timeout),
            )
        except aiohttp.ClientError as exc:
            raise AgentClientError("subscribe events", str(exc)) from exc
        if resp.status >= 400:
            detail = await resp.text()
            resp.close()
            raise AgentClientError("subscribe events", detail[:500], status=resp.status)
        return EventStream(resp)

    async def close(self) -> None:
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None

    async def __aenter__(self) -> AgentClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
