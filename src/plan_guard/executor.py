# executor.py
# Plan executor.
#
# Control flow:
#   integrity check (hash → signature → strict structure)
#   → per-step global budget check → tool dispatch through the registry
#   → stop-on-error policy → status aggregation
#
# Steps run strictly in array order. Declared dependencies are informational
# and never reorder or block a step. All terminal output is delegated to
# display.py.

import time

from plan_guard import display
from plan_guard.errors import IntegrityError, PlanTimeoutError
from plan_guard.integrity import PlanIntegrityService
from plan_guard.models import (
    ExecutionOptions,
    ExecutionPlan,
    ExecutionResult,
    PlanStep,
    StepResult,
    ToolResult,
)
from plan_guard.registry import ToolRegistry


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def determine_execution_status(completed_steps: int, total_steps: int) -> str:
    """success when every step completed, partial when some did, failed when none did."""
    if completed_steps == total_steps:
        return "success"
    if completed_steps > 0:
        return "partial"
    return "failed"


class PlanExecutor:
    """
    Runs an ExecutionPlan against a ToolRegistry.

    Example:
        executor = PlanExecutor(registry)
        result = await executor.execute_plan(plan, "user-1", ExecutionOptions(dry_run=True))
    """

    def __init__(self, registry: ToolRegistry, integrity: PlanIntegrityService | None = None) -> None:
        self._registry = registry
        self._integrity = integrity or PlanIntegrityService()

    # ------------------------------------------------------------------
    # Integrity gate
    # ------------------------------------------------------------------

    def verify_plan_integrity(self, plan: ExecutionPlan, options: ExecutionOptions) -> list[str]:
        """
        Verify a plan before any step runs.

        Returns soft warnings. Raises IntegrityError on any hard failure:
        missing hash, hash mismatch, invalid signature, or (strict mode)
        structural defects. Callers must not retry or recover.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not plan.plan_hash:
            errors.append("Plan is missing required hash field")
            display.integrity_failed(plan.plan_id, errors)
            raise IntegrityError(f"Plan verification failed: {errors[0]}", errors)

        if not self._integrity.verify_plan_hash(plan):
            errors.append("Plan hash mismatch! Plan may have been tampered with.")
            display.hash_mismatch(
                plan.plan_id,
                expected=plan.plan_hash,
                computed=self._integrity.generate_plan_hash(plan),
            )

        if plan.signature and options.public_key:
            if not self._integrity.verify_signature(plan.plan_hash, plan.signature, options.public_key):
                errors.append("Invalid plan signature")
                display.signature_invalid(plan.plan_id, plan.signed_by)
        elif plan.signature:
            warnings.append("Plan has signature but no public key provided for verification")

        if options.strict_mode:
            if not plan.steps:
                errors.append("Plan has no steps")
            numbers = [step.step_number for step in plan.steps]
            duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
            if duplicates:
                errors.append(f"Duplicate step numbers: {', '.join(str(n) for n in duplicates)}")
            if plan.total_steps != len(plan.steps):
                errors.append(f"total_steps={plan.total_steps} but plan has {len(plan.steps)} step(s)")

        if warnings:
            display.integrity_warnings(plan.plan_id, warnings)

        if errors:
            display.integrity_failed(plan.plan_id, errors)
            raise IntegrityError(f"Plan verification failed: {', '.join(errors)}", errors, warnings)

        display.integrity_verified(plan.plan_id, plan.plan_hash)
        return warnings

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute_step(
        self,
        step: PlanStep,
        user_id: str,
        options: ExecutionOptions,
        index: int,
        total: int,
    ) -> StepResult:
        display.step_start(index, total, step)
        if options.on_step_start is not None:
            options.on_step_start(step)

        started = time.monotonic()

        if options.dry_run:
            step_result = StepResult(
                step_number=step.step_number,
                action=step.action,
                status="success",
                result=ToolResult(
                    action=step.action,
                    status="success",
                    message="Dry run - not executed",
                    data={"dry_run": True},
                ),
                duration_ms=_elapsed_ms(started),
            )
        else:
            try:
                tool_result = await self._registry.execute_tool(step.action, step.payload, user_id)
                step_result = StepResult(
                    step_number=step.step_number,
                    action=step.action,
                    status="success",
                    result=tool_result,
                    duration_ms=_elapsed_ms(started),
                )
            except Exception as exc:
                step_result = StepResult(
                    step_number=step.step_number,
                    action=step.action,
                    status="failed",
                    error=str(exc),
                    duration_ms=_elapsed_ms(started),
                )

        display.step_complete(step_result)
        return step_result

    async def execute_plan(
        self,
        plan: ExecutionPlan,
        user_id: str,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """
        Verify, then run every step in order.

        Integrity failures raise IntegrityError before any step runs. Every
        other problem (a failing step, the global budget running out) is
        reported through the returned ExecutionResult.
        """
        options = options or ExecutionOptions()
        started = time.monotonic()
        step_results: list[StepResult] = []
        completed = 0
        warnings: list[str] = []

        display.execution_start(plan, user_id, options.dry_run)

        if options.verify_hash:
            warnings = self.verify_plan_integrity(plan, options)

        try:
            for index, step in enumerate(plan.steps):
                elapsed = _elapsed_ms(started)
                if elapsed > options.timeout_ms:
                    raise PlanTimeoutError(f"Execution timeout after {elapsed}ms")

                step_result = await self._execute_step(step, user_id, options, index, len(plan.steps))
                step_results.append(step_result)

                if options.on_step_complete is not None:
                    options.on_step_complete(step_result)

                if step_result.status == "success":
                    completed += 1
                elif options.stop_on_error:
                    display.stopping_on_error(step)
                    break

        except Exception as exc:
            result = ExecutionResult(
                plan_id=plan.plan_id,
                status="failed",
                completed_steps=completed,
                total_steps=plan.total_steps,
                step_results=step_results,
                error=str(exc),
                duration_ms=_elapsed_ms(started),
                warnings=warnings,
            )
            display.execution_failed(plan.plan_id, result.error)
            return result

        result = ExecutionResult(
            plan_id=plan.plan_id,
            status=determine_execution_status(completed, plan.total_steps),
            completed_steps=completed,
            total_steps=plan.total_steps,
            step_results=step_results,
            duration_ms=_elapsed_ms(started),
            warnings=warnings,
        )
        display.execution_summary(result)
        return result

    async def rollback(self, plan: ExecutionPlan, execution_result: ExecutionResult) -> list[PlanStep]:
        """
        Announce a rollback. No compensating action is run.

        Returns the completed steps, most recent first, that a compensation
        routine would have to undo.
        """
        completed = {r.step_number for r in execution_result.step_results if r.status == "success"}
        pending = [step for step in reversed(plan.steps) if step.step_number in completed]
        display.rollback_requested(plan.plan_id, [step.step_number for step in pending])
        return pending
