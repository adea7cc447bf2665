"""
Domain Errors

Exception hierarchy for the investigation engine. Tool errors are recovered
inside the agent loop (turned into observations), reasoning-service errors
propagate to the caller, and store errors are fatal.
"""


class FailureAnalystError(Exception):
    """Base class for all errors raised by failure_analyst."""


class ToolError(FailureAnalystError):
    """Base class for tool registry and tool execution errors."""


class DuplicateToolError(ToolError):
    """A tool with the same name is already registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' is already registered")
        self.tool_name = tool_name


class UnknownToolError(ToolError):
    """No tool with the requested name is registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' is not registered")
        self.tool_name = tool_name


class InvalidParametersError(ToolError):
    """Tool parameters are missing or have an implausible type."""

    def __init__(self, tool_name: str, problems: list[str]):
        super().__init__(
            f"Invalid parameters for tool '{tool_name}': {'; '.join(problems)}"
        )
        self.tool_name = tool_name
        self.problems = problems


class ToolExecutionError(ToolError):
    """The tool capability raised while executing."""

    def __init__(self, tool_name: str, cause: BaseException):
        super().__init__(
            f"Tool '{tool_name}' failed: {type(cause).__name__}: {cause}"
        )
        self.tool_name = tool_name
        self.cause = cause


class ReasoningServiceError(FailureAnalystError):
    """The reasoning service could not produce a completion."""


class RateLimitedError(ReasoningServiceError):
    """The reasoning service kept rejecting requests due to rate limiting."""

    def __init__(self, message: str = "Reasoning service rate limit exceeded", attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class SessionStoreError(FailureAnalystError):
    """The session store failed to read or write a checkpoint."""


class CheckpointDecodeError(SessionStoreError):
    """A stored checkpoint could not be decoded into a Session."""


class InvestigationFailedError(FailureAnalystError):
    """
    A step failed hard and the session cannot continue automatically.

    The message is meant for the person who requested the investigation.
    """

    def __init__(self, session_id: str, reason: str):
        super().__init__(
            f"Investigation {session_id} failed: {reason}. "
            "Please retry the same request from scratch."
        )
        self.session_id = session_id
        self.reason = reason


class ContinuationError(FailureAnalystError):
    """The next invocation for a session could not be scheduled."""

    def __init__(self, session_id: str, cause: BaseException):
        super().__init__(
            f"Could not schedule continuation for session {session_id}: {cause}"
        )
        self.session_id = session_id
        self.cause = cause
