"""Per-session event filtering and answer reassembly."""
from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable

from .events import AgentEvent, MessageUpdated, PartUpdated, SessionIdle
from .models import TokenUsage


async def session_events(
    session_id: str,
    source: AsyncIterable[AgentEvent],
) -> AsyncIterator[AgentEvent]:
    """Narrow the global event feed to one session.

    Events attributed to another session are dropped; events with no
    session id are passed through. The generator ends right after
    yielding the first ``session.idle`` for *session_id*. If that event
    never arrives the generator never ends, so callers must bound it.
    """
    async for event in source:
        if event.session_id is not None and event.session_id != session_id:
            continue
        yield event
        if isinstance(event, SessionIdle) and event.session_id == session_id:
            return


def assemble_answer(events: Iterable[AgentEvent]) -> str:
    """Reduce collected events to the final answer text.

    Each ``message.part.updated`` carries the cumulative text of its
    part, so the latest update per part id wins while the part keeps
    the position where it was first seen.
    """
    part_ids: list[str] = []
    part_text: dict[str, str] = {}

    for event in events:
        if not isinstance(event, PartUpdated):
            continue
        if event.part_type != "text" or event.role == "user":
            continue
        if event.part_id not in part_text:
            part_ids.append(event.part_id)
        part_text[event.part_id] = event.text

    return "".join(part_text[pid] for pid in part_ids).strip()


def _token_count(tokens: dict, *keys: str) -> int:
    for key in keys:
        value = tokens.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and value > 0:
            return int(value)
    return 0


def extract_token_usage(event: AgentEvent) -> TokenUsage | None:
    """Token usage from an assistant ``message.updated``, else None."""
    if not isinstance(event, MessageUpdated):
        return None
    if event.role != "assistant" or not event.tokens:
        return None

    tokens = event.tokens
    input_tokens = _token_count(tokens, "input", "prompt")
    output_tokens = _token_count(tokens, "output", "completion")
    total_tokens = _token_count(tokens, "total") or input_tokens + output_tokens
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
        cost=event.cost if event.cost else None,
    )
