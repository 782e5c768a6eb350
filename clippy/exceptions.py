"""Custom exceptions for Clippy.

Every error carries a stable ``code`` so callers (the HTTP layer, tests)
can tell the kinds apart without parsing messages.
"""


class ClippyError(Exception):
    """Base exception for Clippy."""

    code = "internal"


class InvalidArgumentError(ClippyError):
    """A required request argument is missing or blank."""

    code = "invalid_argument"

    def __init__(self, argument: str):
        super().__init__(f"{argument} is required")
        self.argument = argument


class ConversationNotFoundError(ClippyError):
    """Conversation not found."""

    code = "not_found"

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ToolError(ClippyError):
    """Tool dispatch errors."""

    pass


class UnknownToolError(ToolError):
    """Tool not found in registry."""

    code = "unknown_tool"

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolTimeoutError(ToolError):
    """Tool did not finish within its time budget."""

    code = "tool_timeout"

    def __init__(self, tool_name: str, timeout_seconds: float):
        label = int(timeout_seconds) if float(timeout_seconds).is_integer() else timeout_seconds
        super().__init__(f"Tool '{tool_name}' timed out after {label}s")
        self.tool_name = tool_name
        self.timeout_seconds = timeout_seconds


class ToolExecutionError(ToolError):
    """Tool execution failed.

    ``reason`` is short and safe to show to the model; the underlying
    exception, if any, is only logged.
    """

    code = "tool_execution_failed"

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Tool '{tool_name}' failed: {reason}")
        self.tool_name = tool_name
        self.reason = reason


class InvalidToolArguments(ValueError):
    """Raised by a tool when its raw argument payload does not decode."""

    pass


class ModelError(ClippyError):
    """Model gateway and reply generation errors."""

    pass


class ModelUnavailableError(ModelError):
    """The model service could not be reached or answered with an error."""

    code = "model_unavailable"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyReplyError(ModelError):
    """The model returned an empty final answer."""

    code = "empty_reply"

    def __init__(self, message: str = "Model returned an empty reply"):
        super().__init__(message)


class LoopBoundExceededError(ModelError):
    """The reply loop kept requesting tools past its round-trip limit."""

    code = "loop_bound_exceeded"

    def __init__(self, max_round_trips: int):
        super().__init__(f"Reply loop exceeded {max_round_trips} model round-trips")
        self.max_round_trips = max_round_trips
