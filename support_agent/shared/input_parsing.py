"""Parsing of ``[source] query`` user input."""
from __future__ import annotations

import re
from dataclasses import dataclass

_SOURCE_RE = re.compile(r"^\[(.*?)\]\s*(.*)$", re.DOTALL)


@dataclass(frozen=True)
class ParsedInput:
    query: str
    source: str | None = None


def parse_input(text: str) -> ParsedInput:
    """Split an optional leading ``[source]`` from the question.

    >>> parse_input("[./repo] what does this do")
    ParsedInput(query='what does this do', source='./repo')
    """
    match = _SOURCE_RE.match(text.strip())
    if match:
        return ParsedInput(
            query=match.group(2).strip(),
            source=match.group(1).strip() or None,
        )
    return ParsedInput(query=text.strip())
