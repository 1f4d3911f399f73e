"""Context prompts built from a loaded repository."""
from __future__ import annotations

from support_agent.engine.models import TokenUsage


def build_repo_context(repo_name: str, repo_map: str) -> str:
    """Initial system context for a loaded repository."""
    return f"""# Repository Analysis: {repo_name}

You are analyzing the repository "{repo_name}". Use your available tools to explore and understand the codebase.

## File Structure
```
{repo_map}
```

## Your Role
- You are a READ-ONLY code analysis assistant.
- Use the **read** tool to examine specific files when you need to see their contents.
- Use the **glob** tool to find files matching patterns or to explore the project structure.
- You do NOT have the ability to write, modify, or delete any files.
- If asked to make changes, explain what changes would be needed but clarify you cannot execute them.
- Answer questions about the codebase structure, dependencies, and functionality.
- When referencing files, use their relative paths from the repository root.
"""


def build_query_context(query: str, repo_context: str | None = None) -> str:
    if not repo_context:
        return query
    return f"{repo_context}\n\n## User Question\n{query}"


class QueryContext:
    """Prefixes the repository context to the first question only.

    The agent server keeps the conversation, so later questions in the
    same session already have the file tree in their history.
    """

    def __init__(self) -> None:
        self._pending: str | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def load(self, repo_name: str, repo_map: str) -> None:
        self._pending = build_repo_context(repo_name, repo_map)

    def clear(self) -> None:
        self._pending = None

    def apply(self, query: str) -> str:
        """Return *query* with the pending context, if any, prefixed.

        The context stays pending until mark_sent() so a failed query
        can be retried with it.
        """
        return build_query_context(query, self._pending)

    def mark_sent(self) -> None:
        self._pending = None


def format_token_usage(usage: TokenUsage) -> str:
    result = (
        f"(Tokens: {usage.input_tokens:,} in / {usage.output_tokens:,} out, "
        f"total: {usage.total_tokens:,}"
    )
    if usage.cost is not None and usage.cost > 0:
        result += f" | Cost: ${usage.cost:.6f}"
    return result + ")"
