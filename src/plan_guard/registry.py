# registry.py
# Tool registry: name -> Tool lookup, payload validation, and timeout-bounded
# dispatch. The executor resolves every plan step through execute_tool and
# never calls a tool's execute function directly.

import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from plan_guard import display
from plan_guard.config import settings
from plan_guard.errors import (
    DuplicateNameError,
    OperationTimeoutError,
    PayloadValidationError,
    RegistrationError,
    ToolNotFoundError,
    ToolRuntimeError,
    ToolTimeoutError,
)
from plan_guard.models import (
    BatchRegistration,
    RegistryStats,
    Tool,
    ToolMetadata,
    ToolRegistryEntry,
    ToolResult,
    ValidationOutcome,
)
from plan_guard.timeout import TimeoutManager, with_timeout


class ToolRegistry:
    """
    Catalog of registered tools.

    Safe to share between concurrent execute_plan calls on one event loop:
    dispatch only reads the catalog and writes a per-entry `last_used`.
    Registration is meant for startup or administrative use.

    Pass a TimeoutManager to make in-flight calls abortable from outside
    (see abort_tool_call / abort_all_tool_calls).
    """

    def __init__(
        self,
        default_timeout_ms: int | None = None,
        timeout_manager: TimeoutManager | None = None,
    ) -> None:
        self._tools: dict[str, ToolRegistryEntry] = {}
        self._categories: dict[str, None] = {}
        self._default_timeout_ms = default_timeout_ms or settings.tool_timeout_ms
        self._timeouts = timeout_manager

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, tool: Tool) -> None:
        if not isinstance(tool, Tool):
            raise RegistrationError(f"Expected a Tool, got {type(tool).__name__}")

        name = tool.name
        if name in self._tools:
            raise DuplicateNameError("Tool", name)

        self._tools[name] = ToolRegistryEntry(tool=tool)
        self._categories[tool.metadata.category] = None
        display.tool_registered(name, tool.metadata.category)

    def register_custom_tool(
        self,
        tool: Tool,
        *,
        overwrite: bool = False,
        namespace: str | None = None,
    ) -> str:
        """
        Register a tool at runtime, optionally as "namespace:name".

        With overwrite=True an existing entry of the same name is removed
        first. Returns the name the tool was registered under.
        """
        name = f"{namespace}:{tool.name}" if namespace else tool.name
        if namespace:
            tool = tool.model_copy(update={"metadata": tool.metadata.model_copy(update={"name": name})})

        if name in self._tools:
            if not overwrite:
                raise DuplicateNameError("Tool", name)
            self.unregister(name)

        self.register(tool)
        return name

    def register_custom_tools(
        self,
        tools: Iterable[Tool],
        *,
        overwrite: bool = False,
        namespace: str | None = None,
        continue_on_error: bool = False,
    ) -> BatchRegistration:
        """
        Register several tools. By default the first failure raises; with
        continue_on_error the failures are collected and returned instead.
        Tools registered before a failure stay registered.
        """
        report = BatchRegistration()
        for tool in tools:
            try:
                report.registered.append(
                    self.register_custom_tool(tool, overwrite=overwrite, namespace=namespace)
                )
            except RegistrationError as exc:
                if not continue_on_error:
                    raise RegistrationError(f"Failed to register tool '{tool.name}': {exc}") from exc
                report.failures[tool.name] = str(exc)

        if report.failures:
            display.registration_failures(report.failures)
        return report

    def unregister(self, tool_name: str) -> bool:
        entry = self._tools.pop(tool_name, None)
        if entry is None:
            return False
        category = entry.tool.metadata.category
        if not any(e.tool.metadata.category == category for e in self._tools.values()):
            self._categories.pop(category, None)
        return True

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._tools

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_tool(self, tool_name: str) -> Tool | None:
        """Return the tool if registered and enabled, otherwise None."""
        entry = self._tools.get(tool_name)
        return entry.tool if entry is not None and entry.enabled else None

    def get_entry(self, tool_name: str) -> ToolRegistryEntry | None:
        entry = self._tools.get(tool_name)
        return entry.model_copy() if entry is not None else None

    def get_all_tools(self) -> list[Tool]:
        return [entry.tool for entry in self._tools.values() if entry.enabled]

    def get_tools_by_category(self, category: str) -> list[Tool]:
        return [tool for tool in self.get_all_tools() if tool.metadata.category == category]

    def get_categories(self) -> list[str]:
        return list(self._categories)

    def get_tool_metadata(self) -> list[ToolMetadata]:
        return [tool.metadata for tool in self.get_all_tools()]

    def search_tools(self, query: str) -> list[Tool]:
        q = query.lower()
        return [
            tool
            for tool in self.get_all_tools()
            if q in tool.metadata.name.lower()
            or q in tool.metadata.description.lower()
            or any(q in example.lower() for example in tool.metadata.examples)
        ]

    def set_tool_enabled(self, tool_name: str, enabled: bool) -> bool:
        entry = self._tools.get(tool_name)
        if entry is None:
            return False
        entry.enabled = enabled
        return True

    def get_stats(self) -> RegistryStats:
        enabled = self.get_all_tools()
        by_category: dict[str, int] = {}
        for tool in enabled:
            by_category[tool.metadata.category] = by_category.get(tool.metadata.category, 0) + 1
        return RegistryStats(
            total=len(self._tools),
            enabled=len(enabled),
            categories=len(self._categories),
            by_category=by_category,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def _run_validator(tool: Tool, payload: dict[str, Any]) -> ValidationOutcome:
        try:
            return tool.validate_payload(payload)
        except Exception as exc:
            return ValidationOutcome(valid=False, errors=[f"Validator raised: {exc}"])

    async def execute_tool(
        self,
        tool_name: str,
        payload: dict[str, Any],
        user_id: str,
        timeout_ms: int | None = None,
        *,
        operation_id: str | None = None,
    ) -> ToolResult:
        """
        Validate, then run a tool under a timeout.

        Raises ToolNotFoundError, PayloadValidationError (before any side
        effect), ToolTimeoutError, or ToolRuntimeError. A result with
        status="error" counts as a failure and raises ToolRuntimeError.
        """
        context = {"tool_name": tool_name, "payload": payload, "user_id": user_id}

        tool = self.get_tool(tool_name)
        if tool is None:
            raise ToolNotFoundError(f"Tool '{tool_name}' not found or disabled", **context)

        if tool.validate_payload is not None:
            outcome = self._run_validator(tool, payload)
            if not outcome.valid:
                raise PayloadValidationError(
                    f"Invalid payload for tool '{tool_name}': {', '.join(outcome.errors)}",
                    outcome.errors,
                    **context,
                )

        timeout = timeout_ms or self._default_timeout_ms
        operation_name = f"Tool execution: {tool_name}"

        def on_timeout() -> None:
            display.tool_timeout(tool_name, user_id, timeout)

        try:
            if self._timeouts is not None:
                result = await self._timeouts.execute(
                    operation_id or f"{tool_name}:{uuid.uuid4().hex[:12]}",
                    tool.execute(payload, user_id),
                    timeout_ms=timeout,
                    operation_name=operation_name,
                    on_timeout=on_timeout,
                )
            else:
                result = await with_timeout(
                    tool.execute(payload, user_id),
                    timeout_ms=timeout,
                    operation_name=operation_name,
                    on_timeout=on_timeout,
                )
        except OperationTimeoutError as exc:
            reason = "was aborted" if exc.aborted else f"execution timed out after {timeout}ms"
            raise ToolTimeoutError(f"Tool '{tool_name}' {reason}", **context) from exc
        except Exception as exc:
            raise ToolRuntimeError(f"Tool execution failed: {exc}", **context) from exc

        if isinstance(result, ToolResult) and result.status == "error":
            reason = result.error or result.message or "tool reported an error"
            raise ToolRuntimeError(f"Tool execution failed: {reason}", **context)

        entry = self._tools.get(tool_name)
        if entry is not None:
            entry.last_used = datetime.now(timezone.utc)

        return result

    def abort_tool_call(self, operation_id: str) -> bool:
        if self._timeouts is None:
            return False
        return self._timeouts.abort(operation_id)

    def abort_all_tool_calls(self) -> None:
        if self._timeouts is not None:
            self._timeouts.abort_all()

    def active_tool_calls(self) -> list[str]:
        return self._timeouts.active_operations() if self._timeouts is not None else []
