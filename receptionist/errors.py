"""Exception types shared by the orchestration core.

User input problems are never raised; handlers return them as
``{"success": False, "message": ...}`` payloads.
"""


class ConfigurationError(Exception):
    """A programming or configuration mistake that must fail fast."""


class PoolReleaseError(ConfigurationError):
    """A credential was released more times than it was assigned."""

    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"Credential {index} released without a matching assign")


class SessionEndedError(ConfigurationError):
    """A call id whose session already ended was offered for a new call."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} has already ended")


class InfrastructureError(Exception):
    """Storage, upstream API or collaborator failure."""

    def __init__(self, message: str, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class BridgeStateError(RuntimeError):
    """A realtime bridge was used outside its lifecycle."""


class ToolCallFailed(Exception):
    """Telemetry record for a tool call that returned ``success: False``. Never raised."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"{tool_name}: {message}")
