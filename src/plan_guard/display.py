# display.py
# All terminal output for the orchestration core.
#
# This module owns presentation entirely. The registries, timeout guard and
# executor never format strings; they call named functions here. Swap this
# file to change the entire UI.
#
# Colour language:
#   cyan   : routing / registration events
#   yellow : verification checkpoints and warnings
#   green  : success / confirmed
#   red    : failures, halts, integrity breaches
#   magenta: step internals (action / observation)

import json
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from plan_guard.config import settings

if TYPE_CHECKING:
    from plan_guard.models import ExecutionPlan, ExecutionResult, PlanStep, StepResult

console = Console(quiet=settings.quiet)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        value = value[:max_len] + "…"
    return escape(value)


def _short_hash(value: str | None) -> str:
    if not value:
        return "(none)"
    return f"{value[:24]}…{value[-8:]}" if len(value) > 32 else value


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------


def tool_registered(name: str, category: str) -> None:
    console.print(f"[dim cyan]  + tool[/dim cyan] [white]{escape(name)}[/white] [dim]({escape(category)})[/dim]")


def registration_failures(failures: dict[str, str]) -> None:
    console.print()
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold yellow", padding=(0, 1))
    table.add_column("Tool", style="bold white")
    table.add_column("Error", style="yellow")
    for name, error in failures.items():
        table.add_row(escape(name), _mono(error, 80))
    console.print(
        Panel(
            table,
            title=_label("REGISTRY: SOME TOOLS FAILED TO REGISTER", "yellow"),
            border_style="yellow",
            padding=(0, 1),
        )
    )


def agent_registered(name: str, category: str) -> None:
    console.print(f"[dim cyan]  + agent[/dim cyan] [white]{escape(name)}[/white] [dim]({escape(category)})[/dim]")


def agent_selected(name: str, score: float, category: str | None) -> None:
    console.print(
        _label("ROUTER", "cyan"),
        f"[cyan] → {escape(name)}[/cyan] [dim]score={score:.2f} category={escape(category or '-')}[/dim]",
    )


def agent_fallback(name: str, reason: str) -> None:
    console.print(
        _label("ROUTER", "yellow"),
        f"[yellow] No agent matched the intent. Using {escape(reason)}:[/yellow] [white]{escape(name)}[/white]",
    )


def no_agents_available() -> None:
    console.print(_label("ROUTER", "red"), "[red] No enabled agents in registry.[/red]")


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


def operation_timeout(operation_name: str, timeout_ms: int) -> None:
    console.print(
        f"  [bold red]⏱ Timeout[/bold red] [white]{escape(operation_name)}[/white] "
        f"[dim]after {timeout_ms}ms; operation abandoned, side effects unknown[/dim]"
    )


def tool_timeout(tool_name: str, user_id: str, timeout_ms: int) -> None:
    console.print(
        f"  [red]↳ Tool[/red] [bold white]{escape(tool_name)}[/bold white] "
        f"[red]exceeded {timeout_ms}ms[/red] [dim](user={escape(user_id)})[/dim]"
    )


# ---------------------------------------------------------------------------
# Plan display
# ---------------------------------------------------------------------------


def execution_start(plan: "ExecutionPlan", user_id: str, dry_run: bool) -> None:
    console.print()
    mode = " [DRY RUN]" if dry_run else ""
    console.print(Rule(f"[cyan]PLAN {escape(plan.plan_id)}: {len(plan.steps)} step(s){mode}[/cyan]", style="cyan"))

    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Action", style="bold white", width=16)
    table.add_column("Payload", style="dim white", width=32)
    table.add_column("Description", style="white")

    for step in plan.steps:
        table.add_row(
            str(step.step_number),
            escape(step.action),
            _mono(json.dumps(step.payload, default=str), 30),
            escape(step.description),
        )

    console.print(
        Panel(
            table,
            title=_label("EXECUTOR: PLAN RECEIVED", "cyan"),
            subtitle=f"[dim]user={escape(user_id)} risk={plan.risk_level}[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


def integrity_verified(plan_id: str, plan_hash: str | None) -> None:
    console.print(
        f"  [bold green]✓ Plan hash verified[/bold green]  [dim]{escape(_short_hash(plan_hash))}[/dim]"
    )


def hash_mismatch(plan_id: str, expected: str | None, computed: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]Plan hash mismatch for {escape(plan_id)}.[/bold red]\n"
            f"[white]Expected: {escape(str(expected))}\n"
            f"Computed: {escape(computed)}[/white]\n"
            "[dim]The plan in hand differs from the one that was hashed at approval time.[/dim]",
            title=_label("INTEGRITY BREACH ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def signature_invalid(plan_id: str, signed_by: str | None) -> None:
    console.print(
        f"  [bold red]✗ Signature rejected[/bold red] [white]{escape(plan_id)}[/white] "
        f"[dim]signed_by={escape(signed_by or '-')}[/dim]"
    )


def integrity_warnings(plan_id: str, warnings: list[str]) -> None:
    for warning in warnings:
        console.print(f"  [yellow]⚠ {escape(warning)}[/yellow] [dim]({escape(plan_id)})[/dim]")


def integrity_failed(plan_id: str, errors: list[str]) -> None:
    console.print()
    console.print(
        Panel(
            "\n".join(f"[white]• {escape(e)}[/white]" for e in errors)
            + "\n[dim]Execution halted before any step ran.[/dim]",
            title=_label(f"PLAN {plan_id} REJECTED ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Execution loop
# ---------------------------------------------------------------------------


def step_start(index: int, total: int, step: "PlanStep") -> None:
    console.print()
    console.print(
        f"[bold cyan]  STEP [{index + 1}/{total}][/bold cyan]  "
        f"[white]{escape(step.description or step.action)}[/white]"
    )
    console.print(
        f"  [magenta]Action[/magenta]   [bold white]{escape(step.action)}[/bold white]"
        f"  [dim]{_mono(json.dumps(step.payload, default=str), 100)}[/dim]"
    )


def step_complete(result: "StepResult") -> None:
    if result.status == "success":
        message = result.result.message if result.result and result.result.message else "ok"
        console.print(
            f"  [magenta]Observe[/magenta]  [green]{_mono(message, 140)}[/green] "
            f"[dim]{result.duration_ms}ms[/dim]"
        )
    else:
        console.print(
            f"  [magenta]Observe[/magenta]  [red]{_mono(result.error or result.status, 140)}[/red] "
            f"[dim]{result.duration_ms}ms[/dim]"
        )


def stopping_on_error(step: "PlanStep") -> None:
    console.print(
        f"  [red]↳ Step {step.step_number} failed; stop_on_error is set, remaining steps skipped.[/red]"
    )


def execution_failed(plan_id: str, error: str | None) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(str(error))}[/bold white]",
            title=_label(f"PLAN {plan_id} FAILED", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def execution_summary(result: "ExecutionResult") -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Step", justify="center", width=6)
    table.add_column("Action", width=16)
    table.add_column("Status", justify="center", width=10)
    table.add_column("Detail", style="dim white")

    for record in result.step_results:
        status = (
            "[bold green]✓[/bold green]" if record.status == "success" else "[bold red]✗[/bold red]"
        )
        detail = record.error or (record.result.message if record.result else "") or ""
        table.add_row(str(record.step_number), escape(record.action), status, _mono(detail, 60))

    colour = {"success": "green", "partial": "yellow", "failed": "red"}[result.status]
    console.print(
        Panel(
            table,
            title=f"[{colour}]EXECUTION {result.status.upper()}[/{colour}]",
            subtitle=f"[dim]{result.completed_steps}/{result.total_steps} step(s) in {result.duration_ms}ms[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def rollback_requested(plan_id: str, step_numbers: list[int]) -> None:
    console.print()
    console.print(Rule(f"[yellow]ROLLBACK {escape(plan_id)}[/yellow]", style="yellow"))
    if step_numbers:
        console.print(
            f"[yellow]  Steps needing compensation (newest first): "
            f"{', '.join(str(n) for n in step_numbers)}[/yellow]"
        )
    else:
        console.print("[yellow]  No completed steps to compensate.[/yellow]")
    console.print("[dim]  No compensating actions are configured; nothing was undone.[/dim]")


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
