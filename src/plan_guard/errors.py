# errors.py
# Exception taxonomy for the orchestration core.
#
# Registration errors fail at registration time, never at call time.
# Tool errors are captured per step by the executor.
# Integrity errors are always fatal and raised before any step runs.


class PlanGuardError(Exception):
    """Base class for every error raised by plan_guard."""


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class RegistrationError(PlanGuardError):
    """Raised when a tool or agent cannot be added to a registry."""


class DuplicateNameError(RegistrationError):
    """Raised when a name is already taken in a registry."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' is already registered")
        self.kind = kind
        self.name = name


class UnknownAgentError(RegistrationError):
    """Raised when an agent name is not present in the registry."""


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


class OperationTimeoutError(PlanGuardError, TimeoutError):
    """
    Raised by the timeout guard when the deadline passes or the operation is
    aborted through its cancel signal.

    The guarded operation is abandoned, not stopped. Its side effects must be
    treated as unknown.
    """

    def __init__(self, message: str, operation_name: str, timeout_ms: int, aborted: bool = False) -> None:
        super().__init__(message)
        self.operation_name = operation_name
        self.timeout_ms = timeout_ms
        self.aborted = aborted


class PlanTimeoutError(PlanGuardError):
    """Raised between steps when a plan exceeds its global time budget."""


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------


class ToolExecutionError(PlanGuardError):
    """Base class for failures surfaced by ToolRegistry.execute_tool."""

    def __init__(
        self,
        message: str,
        tool_name: str = "",
        payload: dict | None = None,
        user_id: str = "",
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.payload = payload or {}
        self.user_id = user_id


class ToolNotFoundError(ToolExecutionError):
    """Raised when a tool is unknown or disabled."""


class PayloadValidationError(ToolExecutionError):
    """Raised when a payload fails the tool's validator. No side effect has run."""

    def __init__(self, message: str, errors: list[str], **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.errors = list(errors)


class ToolTimeoutError(ToolExecutionError):
    """Raised when a tool call exceeds its timeout or is aborted."""


class ToolRuntimeError(ToolExecutionError):
    """Raised when a tool throws or returns an error-status result."""


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


class IntegrityError(PlanGuardError):
    """Raised when a plan fails verification. Always fatal."""

    def __init__(self, message: str, errors: list[str] | None = None, warnings: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])
