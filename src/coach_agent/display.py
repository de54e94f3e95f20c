# display.py
# All terminal output for the coach agent CLI.
#
# This module owns presentation entirely. The engine and runner never format
# strings for the terminal. run.py calls named functions here.
#
# Colour language:
#   cyan: run scaffolding
#   magenta: model thoughts
#   green: level 1 / success
#   yellow: level 2 / no action taken
#   red: level 3, failures, halts

import json

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from coach_agent.models import AgentStepOutput, Level, RunResult

console = Console()

_LEVEL_STYLE = {
    Level.NOMINAL: ("LEVEL 1 · NOMINAL", "green"),
    Level.NO_ACTION_TAKEN: ("LEVEL 2 · NO ACTION", "yellow"),
    Level.ESCALATED_FAILURE: ("LEVEL 3 · ESCALATED", "red"),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Run entry
# ---------------------------------------------------------------------------


def banner(model: str | None) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Social Coach Agent[/bold cyan]\n"
            "[dim]Bounded observe → act → verify steps with escalation levels[/dim]\n\n"
            f"[dim]Model :[/dim] [white]{model or 'demo mode (no API key)'}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def goal_received(goal: str, steps: int, max_tools: int) -> None:
    console.print()
    console.print(Rule("[cyan]NEW RUN[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{goal}[/white]",
            title=_label("GOAL", "cyan"),
            subtitle=f"[dim]≤ {steps} step(s), ≤ {max_tools} tool(s) per step[/dim]",
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Step output
# ---------------------------------------------------------------------------


def step_result(index: int, out: AgentStepOutput) -> None:
    console.print()
    console.print(f"[bold cyan]  STEP {index + 1}[/bold cyan]")
    console.print(f"  [magenta]Thoughts[/magenta]  [dim white]{_mono(out.thoughts, 200)}[/dim white]")

    if out.tool_calls:
        table = Table(box=box.SIMPLE_HEAVY, show_header=True, header_style="bold dim", padding=(0, 1))
        table.add_column("Tool", style="bold white", width=22)
        table.add_column("OK", justify="center", width=4)
        table.add_column("Args", style="dim white", width=32)
        table.add_column("Result / Error", style="white")
        for call in out.tool_calls:
            ok = "[bold green]✓[/bold green]" if call.ok else "[bold red]✗[/bold red]"
            detail = json.dumps(call.result, default=str) if call.ok else (call.error or "")
            table.add_row(call.name, ok, _mono(json.dumps(call.args), 30), _mono(detail, 60))
        console.print(table)
    else:
        console.print("  [dim]No tool calls.[/dim]")

    if out.level is not None:
        tag, color = _LEVEL_STYLE[out.level]
        console.print(" ", _label(tag, color), f"[dim]{out.signature}[/dim]")

    if out.final:
        console.print(
            Panel(
                f"[white]{out.final}[/white]",
                title=_label("SAY", "green"),
                border_style="green",
                padding=(0, 2),
            )
        )


# ---------------------------------------------------------------------------
# Run summary
# ---------------------------------------------------------------------------


def run_summary(result: RunResult) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]Steps run:[/white] {result.steps}\n"
            f"[white]Elapsed:[/white]   {result.ended - result.started} ms\n"
            f"[white]Artifact:[/white]  [dim]{result.artifact}[/dim]",
            title="[dim]RUN SUMMARY[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )
    console.print()


def session_report(report: dict) -> None:
    lines = [f"[white]{report.get('summary', '')}[/white]"]
    for risk in report.get("risks") or []:
        lines.append(f"[yellow]risk[/yellow]    {_mono(str(risk))}")
    for action in report.get("actions") or []:
        title = action.get("title", "") if isinstance(action, dict) else action
        lines.append(f"[green]action[/green]  {_mono(str(title))}")
    console.print(
        Panel(
            "\n".join(lines),
            title=f"[dim]SESSION REPORT ({report.get('mode', '?')})[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{reason}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
