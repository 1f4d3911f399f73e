"""Exception hierarchy for the session query pipeline.

Every failure the core can surface derives from SupportAgentError so
front ends can report a single failed outcome with a message.
"""
from __future__ import annotations


class SupportAgentError(Exception):
    """Base exception for all support agent errors."""


class ServerStartupError(SupportAgentError):
    """The agent server exited before announcing readiness."""
    def __init__(self, stderr: str, returncode: int | None = None):
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"Server failed to start. Stderr: {stderr}")


class ServerTimeoutError(SupportAgentError):
    """The agent server did not announce readiness in time."""
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timeout waiting for server to start ({timeout_seconds}s)"
        )


class AgentNotStartedError(SupportAgentError):
    """A client-facing call was made before start()."""
    def __init__(self) -> None:
        super().__init__("Agent not started")


class SessionCreationError(SupportAgentError):
    """The server refused or failed to create a session."""
    def __init__(self, reason: str = ""):
        self.reason = reason
        message = "Failed to create session"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SessionError(SupportAgentError):
    """An error reported on the event stream, or the stream itself broke."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class QueryTimeoutError(SupportAgentError):
    """No terminal event arrived before the query deadline."""
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"No response from agent server within {timeout_seconds}s"
        )


class QueryInProgressError(SupportAgentError):
    """query() was re-entered while another query was still running."""
    def __init__(self) -> None:
        super().__init__("A query is already in progress")


class InvalidModelError(SupportAgentError):
    """A model string is not of the form 'provider/model'."""
    def __init__(self, model: str):
        self.model = model
        super().__init__(
            f"Invalid model '{model}': expected 'provider/model'"
        )


class MissingApiKeyError(SupportAgentError):
    """A paid provider was selected without its API key set."""
    def __init__(self, provider_id: str, env_var: str):
        self.provider_id = provider_id
        self.env_var = env_var
        super().__init__(
            f"Provider '{provider_id}' requires {env_var} to be set"
        )


class AgentClientError(SupportAgentError):
    """A remote call to the agent server failed or returned no payload."""
    def __init__(self, operation: str, detail: str, status: int | None = None):
        self.operation = operation
        self.detail = detail
        self.status = status
        prefix = f"{operation} failed"
        if status is not None:
            prefix = f"{prefix} (HTTP {status})"
        super().__init__(f"{prefix}: {detail}")


class RepositoryLoadError(SupportAgentError):
    """A repository path or URL could not be loaded."""
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Cannot load repository {source}: {reason}")
