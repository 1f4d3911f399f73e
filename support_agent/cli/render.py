"""Terminal rendering of answers, menus and status with rich."""
from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from support_agent.engine.models import ProviderInfo, QueryResult
from support_agent.engine.providers import ProviderCatalog
from support_agent.shared.services.context_builder import format_token_usage
from support_agent.shared.services.session_store import SavedSession

BANNER = """Welcome to Support Agent!
-----------------------------------
Available Commands:
  /model or /models         - List and select available AI models
  /mode [low|medium|high]   - Set thinking mode (complexity)
  /repo <path|git-url>      - Load a repository to ask questions about
  /key <provider> <api-key> - Set a provider API key (restarts the server)
  /new                      - Start a fresh session
  /save <name>              - Save the current session
  /sessions                 - List saved sessions
  /load <name>              - Resume a saved session
  /status                   - Show model, mode, session and repository
  /help                     - Show this help
  /exit                     - Exit the application
-----------------------------------
Usage: [source] query
Example: [https://github.com/example/repo] How do I install this?"""


def render_answer(console: Console, result: QueryResult) -> None:
    console.print()
    console.print(Markdown(result.response))
    if result.token_usage is not None:
        console.print(Text(format_token_usage(result.token_usage), style="dim"))
    console.print()


def result_to_json(result: QueryResult, *, model: str, session_id: str | None) -> str:
    payload: dict[str, Any] = {
        "response": result.response,
        "tokenUsage": result.token_usage.to_dict() if result.token_usage else None,
        "model": model,
        "sessionId": session_id,
    }
    return json.dumps(payload, indent=2)


def render_providers(console: Console, providers: list[ProviderInfo], catalog: ProviderCatalog) -> None:
    table = Table(title="Providers", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Provider")
    table.add_column("Models", justify="right")
    table.add_column("Key")
    for idx, provider in enumerate(providers, start=1):
        if not catalog.requires_api_key(provider.id):
            key = "[green]free[/green]"
        elif catalog.has_api_key(provider.id):
            key = "[green]set[/green]"
        else:
            key = f"[yellow]needs {catalog.get_api_key_env_var(provider.id)}[/yellow]"
        table.add_row(str(idx), provider.id, str(len(provider.models)), key)
    console.print(table)


def render_models(console: Console, provider: ProviderInfo, catalog: ProviderCatalog) -> None:
    recommended = set(catalog.recommended_models(provider.id))
    console.print(f"Available models for [bold]{provider.id}[/bold]:")
    for idx, model_id in enumerate(provider.model_ids, start=1):
        tags = []
        if model_id in recommended:
            tags.append("recommended")
        if catalog.is_model_free(provider.id, model_id):
            tags.append("free")
        suffix = f" [dim]({', '.join(tags)})[/dim]" if tags else ""
        console.print(f"  {idx}. {model_id}{suffix}")


def render_sessions(console: Console, sessions: list[SavedSession]) -> None:
    if not sessions:
        console.print("No saved sessions.")
        return
    table = Table(title="Saved sessions")
    table.add_column("Name")
    table.add_column("Session")
    table.add_column("Model")
    table.add_column("Repository")
    table.add_column("Saved")
    for s in sessions:
        table.add_row(s.name, s.session_id, s.model or "", s.repository or "", s.saved_at[:19])
    console.print(table)
