# models.py
# Data contracts for the orchestration core.
# No business logic lives here, only schema and validation.

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from plan_guard.config import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

ParameterType = Literal["string", "number", "boolean", "object", "array"]


class ParameterSpec(BaseModel):
    """Declared shape of one tool parameter."""

    model_config = ConfigDict(frozen=True)

    type: ParameterType
    description: str = Field(..., min_length=1)
    required: bool = False
    enum: list[str] | None = None
    min: float | None = None
    max: float | None = None
    pattern: str | None = None


class ToolMetadata(BaseModel):
    """Static description of a tool, used for lookup, search and prompting."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique registry key.")
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    parameters: dict[str, ParameterSpec] = Field(default_factory=dict)
    examples: list[str] = Field(default_factory=list)


class ToolResult(BaseModel):
    """What a tool hands back. Returned to the caller verbatim."""

    action: str
    status: Literal["success", "error"]
    message: str | None = None
    data: dict[str, Any] | None = None
    error: str | None = None


class ValidationOutcome(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class Tool(BaseModel):
    """
    Immutable capability descriptor.

    `execute` is awaited with (payload, user_id). `validate`, when present,
    runs synchronously before `execute` and must not have side effects.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    metadata: ToolMetadata
    execute: Callable[[dict[str, Any], str], Awaitable[ToolResult]]
    validate_payload: Callable[[dict[str, Any]], ValidationOutcome] | None = Field(default=None, alias="validate")

    @property
    def name(self) -> str:
        return self.metadata.name


class ToolRegistryEntry(BaseModel):
    tool: Tool
    enabled: bool = True
    last_used: datetime | None = None


class RegistryStats(BaseModel):
    total: int
    enabled: int
    categories: int
    by_category: dict[str, int]


class BatchRegistration(BaseModel):
    """Outcome of a batch registration run with continue_on_error."""

    registered: list[str] = Field(default_factory=list)
    failures: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class AgentMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    capabilities: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    priority: float = Field(default=0, ge=0, description="Higher wins among similar matches.")


class Agent(BaseModel):
    model_config = ConfigDict(frozen=True)

    metadata: AgentMetadata
    handle: Callable[[str, str], Awaitable[Any]]

    @property
    def name(self) -> str:
        return self.metadata.name


class AgentRegistryEntry(BaseModel):
    agent: Agent
    enabled: bool = True
    last_used: datetime | None = None


class ParsedIntent(BaseModel):
    """Output of the intent parser for one request."""

    category: str | None = None
    keywords: list[str] = Field(default_factory=list)
    confidence: float | None = Field(default=None, ge=0, le=1)
    raw_input: str = ""


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class PlanStep(BaseModel):
    """A single tool invocation inside a plan."""

    step_number: int
    action: str = Field(..., description="Tool name, resolved through the registry.")
    payload: dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    dependencies: list[int] = Field(default_factory=list, description="Informational only.")
    estimated_duration_ms: int | None = None


class ExecutionPlan(BaseModel):
    """An ordered, fingerprinted list of steps produced by the planner."""

    plan_id: str
    steps: list[PlanStep]
    total_steps: int | None = None
    risk_level: Literal["low", "medium", "high"] = "low"
    requires_approval: bool = False
    summary: str = ""
    estimated_duration_ms: int = 0

    plan_hash: str | None = None
    signature: str | None = None
    signed_by: str | None = None
    signed_at: str | None = None

    @model_validator(mode="after")
    def _check_total_steps(self) -> "ExecutionPlan":
        if self.total_steps is None:
            self.total_steps = len(self.steps)
        elif self.total_steps != len(self.steps):
            raise ValueError(
                f"total_steps={self.total_steps} does not match {len(self.steps)} step(s)"
            )
        return self


class TamperReport(BaseModel):
    tampered: bool
    current_hash: str
    message: str


class StepChange(BaseModel):
    index: int
    step_number: int
    change: Literal["added", "removed", "modified"]


class PlanHashMetadata(BaseModel):
    plan_id: str
    plan_hash: str
    timestamp: str
    version: str


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class StepResult(BaseModel):
    step_number: int
    action: str
    status: Literal["success", "failed", "skipped"]
    result: ToolResult | None = None
    error: str | None = None
    duration_ms: int = 0
    timestamp: datetime = Field(default_factory=_utcnow)


class ExecutionResult(BaseModel):
    plan_id: str
    status: Literal["success", "partial", "failed"]
    completed_steps: int
    total_steps: int
    step_results: list[StepResult] = Field(default_factory=list)
    error: str | None = None
    duration_ms: int = 0
    warnings: list[str] = Field(default_factory=list)


class ExecutionOptions(BaseModel):
    """Per-call policy for PlanExecutor.execute_plan."""

    stop_on_error: bool = True
    dry_run: bool = False
    timeout_ms: int = Field(default_factory=lambda: settings.plan_timeout_ms, gt=0)
    on_step_start: Callable[[PlanStep], None] | None = None
    on_step_complete: Callable[[StepResult], None] | None = None
    verify_hash: bool = True
    public_key: str | None = None
    strict_mode: bool = False
