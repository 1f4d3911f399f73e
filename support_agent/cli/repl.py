"""Interactive prompt loop.

Reads ``[source] query`` lines and slash commands, forwards questions
to the SupportAgent and renders answers. One question runs at a time:
the loop awaits each answer before reading the next line.
"""
from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable

from rich.console import Console

from support_agent.engine.agent import SupportAgent
from support_agent.engine.errors import SupportAgentError
from support_agent.engine.models import ModelSelector, ThinkingMode
from support_agent.shared.input_parsing import parse_input
from support_agent.shared.services.context_builder import QueryContext
from support_agent.shared.services.repository import LoadedRepository, load_repository
from support_agent.shared.services.session_store import SessionStore

from . import render

logger = logging.getLogger(__name__)

PROMPT = "support-agent> "

ReadLine = Callable[[str], Awaitable[str]]


async def read_stdin_line(prompt: str) -> str:
    """input() on a worker thread; EOFError propagates on Ctrl-D."""
    return await asyncio.to_thread(input, prompt)


class Repl:
    """Slash-command dispatcher around one SupportAgent."""

    def __init__(
        self,
        agent: SupportAgent,
        store: SessionStore,
        *,
        console: Console | None = None,
        read_line: ReadLine | None = None,
    ) -> None:
        self.agent = agent
        self.store = store
        self.console = console or Console()
        self._read_line = read_line or read_stdin_line
        self.context = QueryContext()
        self.repository: LoadedRepository | None = None
        self._commands: dict[str, Callable[[str], Awaitable[bool]]] = {
            "/exit": self._cmd_exit,
            "/quit": self._cmd_exit,
            "/help": self._cmd_help,
            "/model": self._cmd_model,
            "/models": self._cmd_model,
            "/mode": self._cmd_mode,
            "/repo": self._cmd_repo,
            "/key": self._cmd_key,
            "/new": self._cmd_new,
            "/save": self._cmd_save,
            "/sessions": self._cmd_sessions,
            "/load": self._cmd_load,
            "/status": self._cmd_status,
        }

    async def run(self) -> None:
        self.console.print(render.BANNER)
        while True:
            try:
                line = await self._read_line(PROMPT)
            except (EOFError, KeyboardInterrupt):
                break
            if not await self.handle_line(line):
                break
        self.console.print("Goodbye!")

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the loop should end."""
        text = line.strip()
        if not text:
            return True
        if text.startswith("/"):
            name, _, arg = text.partition(" ")
            handler = self._commands.get(name.lower())
            if handler is None:
                self.console.print(f"Unknown command: {name}. Type /help for commands.")
                return True
            return await handler(arg.strip())
        await self.ask(text)
        return True

    async def ask(self, text: str) -> None:
        parsed = parse_input(text)
        if not parsed.query:
            self.console.print("Please enter a question.")
            return
        query = self.context.apply(parsed.query)
        try:
            with self.console.status("Thinking..."):
                result = await self.agent.query(query, parsed.source)
        except SupportAgentError as exc:
            self.console.print(f"[red]Error:[/red] {exc}")
            return
        self.context.mark_sent()
        render.render_answer(self.console, result)

    # ── Commands ─────────────────────────────────────────────────

    async def _cmd_exit(self, _arg: str) -> bool:
        return False

    async def _cmd_help(self, _arg: str) -> bool:
        self.console.print(render.BANNER)
        return True

    async def _select(self, prompt: str, count: int) -> int | None:
        """Read a 1-based menu choice; None for anything invalid."""
        try:
            raw = await self._read_line(prompt)
        except (EOFError, KeyboardInterrupt):
            return None
        try:
            index = int(raw.strip()) - 1
        except ValueError:
            return None
        if index < 0 or index >= count:
            return None
        return index

    async def _cmd_model(self, _arg: str) -> bool:
        self.console.print("Fetching available providers...")
        try:
            providers = await self.agent.list_providers()
        except SupportAgentError as exc:
            self.console.print(f"[red]Failed to list models:[/red] {exc}")
            return True
        if not providers:
            self.console.print("No providers found.")
            return True

        catalog = self.agent.catalog
        render.render_providers(self.console, providers, catalog)
        index = await self._select("Select a provider: ", len(providers))
        if index is None:
            self.console.print("Invalid selection.")
            return True
        provider = providers[index]
        if not provider.models:
            self.console.print("No models found for this provider.")
            return True

        render.render_models(self.console, provider, catalog)
        index = await self._select("Select a model number: ", len(provider.models))
        if index is None:
            self.console.print("Invalid selection.")
            return True
        model = f"{provider.id}/{provider.model_ids[index]}"
        try:
            catalog.ensure_api_key(ModelSelector.parse(model))
        except SupportAgentError as exc:
            self.console.print(f"[yellow]{exc}[/yellow]. Use /key {provider.id} <api-key> first.")
            return True
        self.agent.set_model(model)
        self.console.print(f"Model set to: {model}")
        return True

    async def _cmd_mode(self, arg: str) -> bool:
        try:
            mode = ThinkingMode.parse(arg)
        except ValueError:
            self.console.print("Invalid mode. Use low, medium, or high.")
            return True
        self.agent.set_thinking_mode(mode)
        cfg = self.agent.thinking_config
        self.console.print(
            f"Switched to {mode.value} thinking mode "
            f"(reasoning: {cfg.reasoning_effort}, budget: {cfg.budget_tokens} tokens)"
        )
        return True

    async def _cmd_repo(self, arg: str) -> bool:
        if not arg:
            self.console.print("Usage: /repo <path|git-url>")
            return True
        try:
            with self.console.status(f"Loading {arg}..."):
                repo = await asyncio.to_thread(
                    load_repository, arg, self.agent.config.repo_cache_dir,
                )
        except SupportAgentError as exc:
            self.console.print(f"[red]Error:[/red] {exc}")
            return True
        self.use_repository(repo)
        self.console.print(f"Loaded repository [bold]{repo.name}[/bold] ({repo.path})")
        return True

    def use_repository(self, repo: LoadedRepository, *, fresh_session: bool = True) -> None:
        """Point the agent at *repo*, by default in a fresh session."""
        self.repository = repo
        self.agent.set_repository_path(str(repo.path))
        if fresh_session:
            self.agent.reset_session()
            self.context.load(repo.name, repo.repo_map)

    def _reload_context(self) -> None:
        if self.repository is not None:
            self.context.load(self.repository.name, self.repository.repo_map)
        else:
            self.context.clear()

    async def _cmd_key(self, arg: str) -> bool:
        provider_id, _, value = arg.partition(" ")
        value = value.strip()
        env_var = self.agent.catalog.get_api_key_env_var(provider_id)
        if not provider_id or not value:
            self.console.print("Usage: /key <provider> <api-key>")
            return True
        if env_var is None:
            self.console.print(f"Provider '{provider_id}' does not take an API key.")
            return True
        os.environ[env_var] = value
        self.console.print(f"{env_var} set. Restarting server to apply it...")
        try:
            await self.agent.restart()
        except SupportAgentError as exc:
            self.console.print(f"[red]Restart failed:[/red] {exc}")
            return True
        # The restart dropped the session; the next question opens a new one.
        self._reload_context()
        self.console.print("Server restarted successfully.")
        return True

    async def _cmd_new(self, _arg: str) -> bool:
        self.agent.reset_session()
        self._reload_context()
        self.console.print("Started a new session.")
        return True

    async def _cmd_save(self, arg: str) -> bool:
        session_id = self.agent.session_id
        if not arg:
            self.console.print("Usage: /save <name>")
            return True
        if session_id is None:
            self.console.print("Nothing to save yet: ask a question first.")
            return True
        self.store.save(
            arg,
            session_id,
            model=self.agent.current_model,
            repository=self.agent.repository_path,
        )
        self.console.print(f"Saved session '{arg}'.")
        return True

    async def _cmd_sessions(self, _arg: str) -> bool:
        render.render_sessions(self.console, self.store.list_sessions())
        return True

    async def _cmd_load(self, arg: str) -> bool:
        saved = self.store.load(arg) if arg else None
        if saved is None:
            self.console.print(f"No saved session named '{arg}'.")
            return True
        if saved.model:
            try:
                self.agent.set_model(saved.model)
            except SupportAgentError as exc:
                logger.warning("Saved session %s has unusable model: %s", arg, exc)
        if saved.repository and saved.repository != self.agent.repository_path:
            self.agent.set_repository_path(saved.repository)
            self.repository = None
        self.agent.set_session_id(saved.session_id)
        # The resumed conversation already carries its repository context.
        self.context.clear()
        self.console.print(f"Resumed session '{saved.name}' ({saved.session_id}).")
        return True

    async def _cmd_status(self, _arg: str) -> bool:
        agent = self.agent
        self.console.print(f"Model:      {agent.current_model}")
        self.console.print(
            f"Mode:       {agent.current_mode.value} "
            f"(reasoning: {agent.thinking_config.reasoning_effort})"
        )
        self.console.print(f"Session:    {agent.session_id or '(none yet)'}")
        self.console.print(f"Repository: {agent.repository_path or '(none)'}")
        self.console.print(f"Server:     {agent.server_url or '(stopped)'}")
        return True
