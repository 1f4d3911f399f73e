"""SupportAgent — drives one question end-to-end against the agent server.

Owns the model, thinking mode and session id for a single running
server. A query ensures a session exists, opens the filtered event
subscription, fires the prompt in the background and pumps events
until the session goes idle or reports an error.

State machine::

    STOPPED -> STARTING -> READY <-> QUERYING
                             |
                             v
                          STOPPED
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from .client import AgentClient, EventStream
from .config import AgentConfig
from .errors import (
    AgentClientError,
    AgentNotStartedError,
    QueryInProgressError,
    QueryTimeoutError,
    SessionCreationError,
    SessionError,
)
from .events import AgentEvent, MessageUpdated, SessionErrorEvent
from .models import (
    THINKING_CONFIGS,
    AgentState,
    ModelSelector,
    ProviderInfo,
    QueryResult,
    ThinkingConfig,
    ThinkingMode,
    TokenUsage,
)
from .providers import ProviderCatalog
from .server import ServerHandle, spawn_server, stop_server
from .stream import assemble_answer, extract_token_usage, session_events

logger = logging.getLogger(__name__)

NO_RESPONSE_PLACEHOLDER = "(No response received)"

ClientFactory = Callable[[str, "str | None"], AgentClient]
SpawnServer = Callable[[AgentConfig, str], Awaitable[ServerHandle]]
StopServer = Callable[["ServerHandle | None", float], Awaitable[None]]


def build_source_prompt(text: str, source: str | None = None) -> str:
    """Point the agent at an explicit source when the user named one."""
    if source:
        return f"Using the source '{source}', please answer: {text}"
    return text


def _default_client_factory(url: str, directory: str | None) -> AgentClient:
    return AgentClient(url, directory=directory)


@dataclass
class _QueryCollector:
    """Everything gathered from one query's event stream."""
    events: list[AgentEvent] = field(default_factory=list)
    token_usage: TokenUsage | None = None
    error: str | None = None

    def add(self, event: AgentEvent) -> None:
        self.events.append(event)
        if isinstance(event, MessageUpdated):
            usage = extract_token_usage(event)
            if usage is not None:
                self.token_usage = usage
        elif isinstance(event, SessionErrorEvent):
            self.error = event.error_message


class SupportAgent:
    """Manages the agent server and answers questions through it."""

    def __init__(
        self,
        config: AgentConfig | None = None,
        *,
        catalog: ProviderCatalog | None = None,
        client_factory: ClientFactory | None = None,
        spawn: SpawnServer | None = None,
        stop: StopServer | None = None,
    ) -> None:
        self.config = config or AgentConfig()
        self.catalog = catalog or ProviderCatalog(api_key_envs=self.config.api_key_envs)
        self._client_factory = client_factory or _default_client_factory
        self._spawn = spawn or spawn_server
        self._stop = stop or stop_server

        self._state = AgentState.STOPPED
        self._server: ServerHandle | None = None
        self._client: AgentClient | None = None
        self._session_id: str | None = None
        self._repository_path: str | None = None

        ModelSelector.parse(self.config.model)
        self._model = self.config.model
        self._mode = self.config.thinking_mode

    # ── Accessors ────────────────────────────────────────────────

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def current_model(self) -> str:
        return self._model

    @property
    def current_mode(self) -> ThinkingMode:
        return self._mode

    @property
    def thinking_config(self) -> ThinkingConfig:
        return THINKING_CONFIGS[self._mode]

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def repository_path(self) -> str | None:
        return self._repository_path

    @property
    def server_url(self) -> str | None:
        return self._server.url if self._server is not None else None

    # ── Configuration ───────────────────────────────────────────

    def set_model(self, model: str) -> None:
        """Switch models for the next query. Raises InvalidModelError."""
        ModelSelector.parse(model)
        self._model = model
        logger.info("Model set to: %s", model)

    def set_thinking_mode(self, mode: ThinkingMode | str) -> None:
        if not isinstance(mode, ThinkingMode):
            mode = ThinkingMode.parse(mode)
        self._mode = mode
        logger.info(
            "Switched to %s thinking mode (reasoning: %s)",
            mode.value, self.thinking_config.reasoning_effort,
        )

    def set_session_id(self, session_id: str | None) -> None:
        """Resume a saved session, or pass None to start a fresh one."""
        self._session_id = session_id

    def reset_session(self) -> None:
        self._session_id = None

    def set_repository_path(self, path: str | None) -> None:
        """Scope subsequent server calls to the repository at *path*."""
        self._repository_path = path
        if self._client is not None:
            self._client.directory = path

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> str:
        """Start the agent server (or reuse the live one); return its URL."""
        if self._server is not None and self._server.is_running and self._client is not None:
            logger.info("Agent server already running at %s; reusing", self._server.url)
            return self._server.url or ""
        if self._server is not None:
            # Died underneath us; reap it before spawning a replacement.
            await self._stop(self._server, 0.0)
            self._server = None
        stale, self._client = self._client, None
        if stale is not None:
            try:
                await stale.close()
            except Exception:
                logger.debug("Error closing stale agent client", exc_info=True)

        self._state = AgentState.STARTING
        try:
            handle = await self._spawn(self.config, self._model)
        except BaseException:
            self._state = AgentState.STOPPED
            raise
        self._server = handle
        self._client = self._client_factory(handle.url or "", self._repository_path)
        self._state = AgentState.READY
        return handle.url or ""

    async def stop(self) -> None:
        """Stop the server and forget the session. Safe to call twice."""
        client, self._client = self._client, None
        if client is not None:
            try:
                await client.close()
            except Exception:
                logger.debug("Error closing agent client", exc_info=True)
        server, self._server = self._server, None
        await self._stop(server, self.config.stop_grace_seconds)
        self._session_id = None
        self._state = AgentState.STOPPED

    async def restart(self) -> str:
        """Stop and start again so the server re-reads its environment."""
        logger.info("Restarting agent server to apply new configuration")
        await self.stop()
        url = await self.start()
        logger.info("Agent server restarted at %s", url)
        return url

    # ── Providers ───────────────────────────────────────────────

    async def list_providers(self) -> list[ProviderInfo]:
        """Allow-listed providers with usable models, in display order."""
        client = self._require_client()
        raw = await client.list_providers()
        return self.catalog.filter_providers(raw)

    # ── Queries ─────────────────────────────────────────────────

    def _require_client(self) -> AgentClient:
        if self._client is None:
            raise AgentNotStartedError()
        return self._client

    async def query(self, text: str, source: str | None = None) -> QueryResult:
        """Ask one question and wait for the assembled answer.

        Raises AgentNotStartedError, SessionCreationError, SessionError,
        QueryTimeoutError or InvalidModelError. Only one query may run
        at a time; a second concurrent call raises QueryInProgressError.
        """
        client = self._require_client()
        if self._state is AgentState.QUERYING:
            raise QueryInProgressError()

        self._state = AgentState.QUERYING
        try:
            return await self._run_query(client, build_source_prompt(text, source))
        finally:
            if self._state is AgentState.QUERYING:
                self._state = AgentState.READY

    async def _ensure_session(self, client: AgentClient) -> str:
        if self._session_id is None:
            try:
                self._session_id = await client.create_session()
            except AgentClientError as exc:
                raise SessionCreationError(str(exc)) from exc
        return self._session_id

    async def _run_query(self, client: AgentClient, full_query: str) -> QueryResult:
        session_id = await self._ensure_session(client)
        selector = ModelSelector.parse(self._model)

        # Subscribe before prompting so no early event is missed.
        try:
            stream = await client.subscribe_events()
        except AgentClientError as exc:
            raise SessionError(str(exc)) from exc

        logger.info(
            "Query session=%s model=%s mode=%s chars=%d",
            session_id, selector, self._mode.value, len(full_query),
        )
        prompt_task = asyncio.create_task(
            self._submit_prompt(client, session_id, selector, full_query)
        )
        collector = _QueryCollector()
        try:
            async with stream:
                await self._pump_with_deadline(session_id, stream, collector)
        finally:
            if not prompt_task.done():
                prompt_task.cancel()
            await asyncio.gather(prompt_task, return_exceptions=True)

        if collector.error is not None:
            logger.warning("Query failed session=%s: %s", session_id, collector.error)
            raise SessionError(collector.error)

        response = assemble_answer(collector.events)
        if collector.token_usage is not None:
            logger.info(
                "Query done session=%s tokens in=%d out=%d",
                session_id,
                collector.token_usage.input_tokens,
                collector.token_usage.output_tokens,
            )
        return QueryResult(
            response=response or NO_RESPONSE_PLACEHOLDER,
            token_usage=collector.token_usage,
        )

    async def _submit_prompt(
        self,
        client: AgentClient,
        session_id: str,
        selector: ModelSelector,
        text: str,
    ) -> None:
        # Failures surface as session.error on the event stream.
        try:
            await client.prompt_session(session_id, selector, text)
        except AgentClientError as exc:
            logger.warning("Prompt submission failed session=%s: %s", session_id, exc)

    async def _pump_with_deadline(
        self,
        session_id: str,
        stream: EventStream,
        collector: _QueryCollector,
    ) -> None:
        timeout = self.config.query_timeout_seconds
        try:
            if timeout > 0:
                await asyncio.wait_for(self._pump(session_id, stream, collector), timeout)
            else:
                await self._pump(session_id, stream, collector)
        except asyncio.TimeoutError as exc:
            if collector.error is not None:
                # The server already reported why; it just never went idle.
                logger.warning(
                    "No idle after session error session=%s within %ss", session_id, timeout,
                )
                return
            raise QueryTimeoutError(timeout) from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # A broken stream counts as a session error.
            logger.warning("Event stream failed session=%s: %s", session_id, exc)
            collector.error = str(exc) or type(exc).__name__

    async def _pump(
        self,
        session_id: str,
        stream: EventStream,
        collector: _QueryCollector,
    ) -> None:
        async for event in session_events(session_id, stream):
            collector.add(event)
