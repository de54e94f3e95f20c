# run.py
# Entry point. Config and wiring only. No logic lives here.
#
# Set OPENROUTER_API_KEY (or put it in .env) to talk to a real model;
# without it every step runs in demo mode.

import argparse

from coach_agent import display
from coach_agent.agent import AgentEngine
from coach_agent.audit import AuditTrail
from coach_agent.config import load_settings
from coach_agent.models import AgentStepOutput
from coach_agent.runner import run_goal

DEFAULT_GOAL = "plan follow-up"


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="coach-agent", description="Run the coach agent toward a goal.")
    parser.add_argument("goal", nargs="?", default=DEFAULT_GOAL)
    parser.add_argument("--steps", type=int, default=3)
    parser.add_argument("--max-tools", type=int, default=2)
    parser.add_argument("--report", action="store_true", help="Write an HTML audit report afterwards.")
    parser.add_argument("--summary", action="store_true", help="Print a post-session summary afterwards.")
    args = parser.parse_args(argv)

    settings = load_settings()
    engine = AgentEngine.create(settings)
    display.banner(settings.model if engine.model else None)

    session = engine.sessions.get()
    if session is None or not session.active:
        engine.sessions.start()

    display.goal_received(args.goal, args.steps, args.max_tools)
    try:
        result = run_goal(engine, args.goal, steps=args.steps, max_tools=args.max_tools)
    except ValueError as exc:
        display.halt(str(exc))
        raise SystemExit(2) from exc

    for entry in result.trace:
        display.step_result(entry["i"], AgentStepOutput.model_validate(entry["out"]))
    display.run_summary(result)

    audit = AuditTrail(settings.data_dir, engine.sessions, engine.tasks, engine.logger)
    if args.report:
        display.console.print(f"[dim]Audit report:[/dim] {audit.write_report()}")
    if args.summary:
        profile = engine.profile.get()
        display.session_report(audit.session_report(engine.model, profile.preferences, profile.system_instruction))


if __name__ == "__main__":
    main()
