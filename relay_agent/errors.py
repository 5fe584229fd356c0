"""
Exception hierarchy for the relay agent.

Only backend failures are allowed to escape a generation cycle; tool-level
problems are converted into context errors by the tool executor.
"""


class RelayError(Exception):
    """Base class for all relay agent errors."""


class BackendError(RelayError):
    """Connection or protocol failure while streaming from the model backend."""

    def __init__(self, message: str, *, status: int = None):
        super().__init__(message)
        self.status = status


class ToolCatalogError(RelayError):
    """A tool catalog references tools that cannot be resolved."""


class ToolArgumentsError(RelayError):
    """Streamed tool-call arguments did not parse into a JSON object."""


class AssetError(RelayError):
    """Instruction text or tool manifest could not be loaded."""


class SessionNotFoundError(RelayError):
    """No live session is registered for the requested call SID."""


class ExternalServiceError(RelayError):
    """An external REST API (Twilio, ServiceNow) rejected or failed a request."""

    def __init__(self, message: str, *, status: int = None):
        super().__init__(message)
        self.status = status
