"""Event types emitted on the agent server's global event feed.

Each raw ``{"type": ..., "properties": {...}}`` payload is parsed into a
typed dataclass so the stream filter and the orchestrator can match on
the variant instead of probing dict fields.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PART_UPDATED = "message.part.updated"
MESSAGE_UPDATED = "message.updated"
SESSION_IDLE = "session.idle"
SESSION_ERROR = "session.error"

UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"


@dataclass
class AgentEvent:
    """Base event. ``session_id`` is None for broadcast/system events."""
    event_type: str = ""
    session_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class PartUpdated(AgentEvent):
    event_type: str = PART_UPDATED
    part_id: str = ""
    part_type: str = ""
    role: str | None = None
    text: str = ""


@dataclass
class MessageUpdated(AgentEvent):
    event_type: str = MESSAGE_UPDATED
    message_id: str = ""
    role: str | None = None
    tokens: dict[str, Any] | None = None
    cost: float | None = None


@dataclass
class SessionIdle(AgentEvent):
    event_type: str = SESSION_IDLE


@dataclass
class SessionErrorEvent(AgentEvent):
    event_type: str = SESSION_ERROR
    error_name: str | None = None
    message: str | None = None

    @property
    def error_message(self) -> str:
        """Structured message, then error name, then a generic text."""
        return self.message or self.error_name or UNKNOWN_ERROR_MESSAGE


@dataclass
class OtherEvent(AgentEvent):
    """Any event kind the pipeline does not interpret."""


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _parse_part_updated(props: dict[str, Any], raw: dict[str, Any]) -> PartUpdated:
    part = props.get("part")
    if not isinstance(part, dict):
        part = {}
    text = part.get("text")
    return PartUpdated(
        session_id=_optional_str(part.get("sessionID")) or _optional_str(props.get("sessionID")),
        part_id=str(part.get("id", "")),
        part_type=str(part.get("type", "")),
        role=_optional_str(part.get("role")),
        text="" if text is None else str(text),
        raw=raw,
    )


def _parse_message_updated(props: dict[str, Any], raw: dict[str, Any]) -> MessageUpdated:
    info = props.get("info")
    if not isinstance(info, dict):
        info = {}
    tokens = info.get("tokens")
    cost = info.get("cost")
    return MessageUpdated(
        session_id=_optional_str(info.get("sessionID")) or _optional_str(props.get("sessionID")),
        message_id=str(info.get("id", "")),
        role=_optional_str(info.get("role")),
        tokens=tokens if isinstance(tokens, dict) else None,
        cost=cost if isinstance(cost, (int, float)) and not isinstance(cost, bool) else None,
        raw=raw,
    )


def _parse_session_error(props: dict[str, Any], raw: dict[str, Any]) -> SessionErrorEvent:
    error = props.get("error")
    name = None
    message = None
    if isinstance(error, dict):
        name = _optional_str(error.get("name"))
        data = error.get("data")
        if isinstance(data, dict):
            message = _optional_str(data.get("message"))
    return SessionErrorEvent(
        session_id=_optional_str(props.get("sessionID")),
        error_name=name,
        message=message,
        raw=raw,
    )


def parse_event(data: dict[str, Any]) -> AgentEvent:
    """Convert a raw server event dict to a typed event dataclass."""
    event_type = str(data.get("type", ""))
    props = data.get("properties")
    if not isinstance(props, dict):
        props = {}

    if event_type == PART_UPDATED:
        return _parse_part_updated(props, data)
    if event_type == MESSAGE_UPDATED:
        return _parse_message_updated(props, data)
    if event_type == SESSION_IDLE:
        return SessionIdle(session_id=_optional_str(props.get("sessionID")), raw=data)
    if event_type == SESSION_ERROR:
        return _parse_session_error(props, data)
    return OtherEvent(
        event_type=event_type,
        session_id=_optional_str(props.get("sessionID")),
        raw=data,
    )
