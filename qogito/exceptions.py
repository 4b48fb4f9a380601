"""Custom exceptions for Qogito."""


class QogitoError(Exception):
    """Base exception for Qogito."""

    pass


class ConfigurationError(QogitoError):
    """Configuration-related errors."""

    pass


class LLMError(QogitoError):
    """Inference server errors."""

    pass


class NotConnectedError(LLMError):
    """No active connection to an inference server."""

    def __init__(self, message: str = "Not connected"):
        super().__init__(message)


class LLMAPIError(LLMError):
    """Server answered with a non-successful HTTP status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMConnectionError(LLMError):
    """Transport failure while talking to the server."""

    pass


class ProtocolError(LLMError):
    """Malformed or missing response stream."""

    pass


class AbortedError(LLMError):
    """Request cancelled by the user."""

    def __init__(self, message: str = "Request aborted"):
        super().__init__(message)


class ToolError(QogitoError):
    """Tool execution errors."""

    pass


class AccessDeniedError(ToolError):
    """Path resolves outside the workspace root."""

    def __init__(self, path: str):
        super().__init__(f"Access denied: path is outside the workspace: {path}")
        self.path = path


class InvalidArgumentError(ToolError):
    """Tool arguments could not be parsed or validated."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class OutOfRangeError(ToolError):
    """Requested line range starts beyond the end of the file."""

    pass


class TextNotFoundError(ToolError):
    """Replacement target does not occur in the file."""

    pass


class NotUniqueError(ToolError):
    """Replacement target occurs more than once."""

    def __init__(self, occurrences: int):
        super().__init__(
            f"str_replace: old_str matches {occurrences} times, it must be unique"
        )
        self.occurrences = occurrences


class UnknownToolError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class PermissionDeniedError(ToolError):
    """Tool is not part of the active tool set."""

    def __init__(self, tool_name: str, mode: str):
        super().__init__(f'Tool "{tool_name}" is not permitted in {mode} mode')
        self.tool_name = tool_name
        self.mode = mode


class WorkspaceUnavailableError(ToolError):
    """Tool needs a workspace root but none is open."""

    def __init__(self, message: str = "No workspace folder open"):
        super().__init__(message)


class CommandTimeoutError(ToolError):
    """Shell command exceeded its wall-clock limit."""

    def __init__(self, command: str, timeout: float):
        label = int(timeout) if float(timeout).is_integer() else timeout
        super().__init__(f"Command timed out after {label}s: {command}")
        self.command = command
        self.timeout = timeout


class OutputLimitExceededError(ToolError):
    """Shell command produced more output than allowed."""

    def __init__(self, command: str, limit: int):
        super().__init__(f"Command output exceeded {limit} bytes: {command}")
        self.command = command
        self.limit = limit
