"""Support Agent CLI — main application entry point.

Usage:
    support-agent                                   # interactive
    support-agent "How is auth implemented?" --repo ./app
    support-agent --repo https://github.com/org/repo.git --json "What does it do?"
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import yaml
from dotenv import load_dotenv
from rich.console import Console

from support_agent.engine.agent import SupportAgent
from support_agent.engine.config import AgentConfig
from support_agent.engine.errors import SupportAgentError
from support_agent.engine.models import ModelSelector, ThinkingMode
from support_agent.engine.yaml_config import load_config
from support_agent.shared.input_parsing import parse_input
from support_agent.shared.services.context_builder import QueryContext
from support_agent.shared.services.repository import LoadedRepository, load_repository
from support_agent.shared.services.session_store import SessionStore

from .cli import render
from .cli.repl import Repl

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_QUERY_FAILED = 1
EXIT_STARTUP_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="support-agent",
        description="Ask natural-language questions about a codebase",
    )
    parser.add_argument(
        "question", nargs="*",
        help="Question to answer once and exit (omit for interactive mode)",
    )
    parser.add_argument(
        "--repo", metavar="PATH_OR_URL",
        help="Repository to analyse: a local directory or a git URL",
    )
    parser.add_argument(
        "--model", metavar="PROVIDER/MODEL",
        help="Model to use (default: from config)",
    )
    parser.add_argument(
        "--mode", choices=[m.value for m in ThinkingMode],
        help="Thinking mode (default: from config)",
    )
    parser.add_argument(
        "--session", metavar="NAME",
        help="Resume a saved session by name",
    )
    parser.add_argument(
        "--list-sessions", action="store_true",
        help="List saved sessions and exit",
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Print the one-shot result as JSON",
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true",
        help="Print only the answer",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging on stderr",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file (default: ./.support-agent.yaml or ~/.support-agent/config.yaml)",
    )
    return parser


def configure_logging(config: AgentConfig, verbose: bool = False) -> Path:
    """Log to a rotating file; mirror to stderr only with --verbose."""
    config.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = config.log_dir / "support-agent.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    if verbose:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
    return log_file


def _apply_cli_overrides(config: AgentConfig, args: argparse.Namespace) -> None:
    if args.model:
        config.model = args.model
    if args.mode:
        config.thinking_mode = ThinkingMode.parse(args.mode)


async def run(args: argparse.Namespace, config: AgentConfig) -> int:
    status = Console(stderr=True, quiet=args.quiet or args.json)
    store = SessionStore(config.sessions_file)
    agent = SupportAgent(config)

    repo: LoadedRepository | None = None
    if args.repo:
        try:
            with status.status(f"Loading {args.repo}..."):
                repo = await asyncio.to_thread(load_repository, args.repo, config.repo_cache_dir)
        except SupportAgentError as exc:
            Console(stderr=True).print(f"[red]Error:[/red] {exc}")
            return EXIT_QUERY_FAILED
        agent.set_repository_path(str(repo.path))

    if args.session:
        saved = store.load(args.session)
        if saved is None:
            Console(stderr=True).print(f"[red]Error:[/red] no saved session named '{args.session}'")
            return EXIT_QUERY_FAILED
        agent.set_session_id(saved.session_id)
        if saved.model and not args.model:
            try:
                agent.set_model(saved.model)
            except SupportAgentError as exc:
                Console(stderr=True).print(f"[red]Error:[/red] saved session '{args.session}': {exc}")
                return EXIT_QUERY_FAILED
        if saved.repository and repo is None:
            agent.set_repository_path(saved.repository)

    try:
        with status.status("Starting agent server..."):
            await agent.start()
    except SupportAgentError as exc:
        Console(stderr=True).print(f"[red]Error:[/red] {exc}")
        await agent.stop()
        return EXIT_STARTUP_FAILED

    try:
        if args.question:
            return await _one_shot(agent, " ".join(args.question), repo, args, status)
        repl = Repl(agent, store)
        if repo is not None:
            # Resumed conversations already carry the file tree.
            repl.use_repository(repo, fresh_session=not args.session)
        await repl.run()
        return EXIT_OK
    finally:
        await agent.stop()


async def _one_shot(
    agent: SupportAgent,
    question: str,
    repo: LoadedRepository | None,
    args: argparse.Namespace,
    status: Console,
) -> int:
    parsed = parse_input(question)
    context = QueryContext()
    if repo is not None and not args.session:
        context.load(repo.name, repo.repo_map)
    try:
        with status.status("Thinking..."):
            result = await agent.query(context.apply(parsed.query), parsed.source)
    except SupportAgentError as exc:
        if args.json:
            print(json.dumps({"error": str(exc)}))
        else:
            Console(stderr=True).print(f"[red]Error:[/red] {exc}")
        return EXIT_QUERY_FAILED

    if args.json:
        print(render.result_to_json(result, model=agent.current_model, session_id=agent.session_id))
    elif args.quiet:
        print(result.response)
    else:
        render.render_answer(Console(), result)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv(override=False)
    try:
        config = load_config(args.config)
        _apply_cli_overrides(config, args)
        ModelSelector.parse(config.model)
    except (SupportAgentError, ValueError, OSError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_STARTUP_FAILED

    log_file = configure_logging(config, verbose=args.verbose)
    logger.info(
        "Starting support-agent model=%s mode=%s log=%s",
        config.model, config.thinking_mode.value, log_file,
    )

    if args.list_sessions:
        render.render_sessions(Console(), SessionStore(config.sessions_file).list_sessions())
        return EXIT_OK

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
