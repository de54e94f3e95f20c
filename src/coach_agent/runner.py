# runner.py
# Multi-step goal runner: repeated engine steps with an early stop, plus a
# JSON run artifact under verify/ for later audit.

import json

from coach_agent.agent import AgentEngine
from coach_agent.models import AgentStepInput, RunResult, now_ms

MAX_STEPS = 10
MAX_TOOLS_PER_STEP = 5
CONTEXT_HINT_CHARS = 2000


def run_goal(
    engine: AgentEngine,
    goal: str,
    steps: int = 3,
    max_tools: int = 2,
    preferences: dict | None = None,
) -> RunResult:
    """
    Pursue `goal` for at most `steps` engine steps.

    Stops early as soon as a step returns a non-empty final message.
    Raises ValueError when goal is empty.
    """
    goal = (goal or "").strip()
    if not goal:
        raise ValueError("missing_goal")
    steps = max(1, min(MAX_STEPS, int(steps)))
    max_tools = max(0, min(MAX_TOOLS_PER_STEP, int(max_tools)))

    started = now_ms()
    trace: list[dict] = []

    for index in range(steps):
        hint = engine.context.assemble()[:CONTEXT_HINT_CHARS]
        observation = {"goal": goal, "step_index": index, "long_context_hint": hint}
        out = engine.run_step(AgentStepInput(observation=observation, preferences=preferences, max_tools=max_tools))
        trace.append({"i": index, "out": out.to_json()})
        engine.sessions.add_event("system", {"kind": "agent.run_step", "index": index, "tools": len(out.tool_calls)})
        if out.final:
            break

    result = RunResult(
        goal=goal,
        steps=len(trace),
        max_tools=max_tools,
        started=started,
        ended=now_ms(),
        trace=trace,
    )
    artifact = engine.settings.data_path("verify", f"run_{result.ended}.json")
    artifact.parent.mkdir(parents=True, exist_ok=True)
    artifact.write_text(json.dumps(result.to_json(), indent=2), encoding="utf-8")
    result.artifact = str(artifact)
    return result
