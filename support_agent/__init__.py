"""Support Agent: ask questions about a codebase through an opencode agent server."""

__version__ = "0.1.0"
