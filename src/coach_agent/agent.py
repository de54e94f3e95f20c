# agent.py
# Agent step engine
#
# One call to run_step() is one bounded observe → prompt → act → verify cycle.
# The model is a passive responder: this class owns all control flow, tool
# dispatch, escalation and the audit trail.
#
# Control flow:
#   demo short-circuit? → gather context → prompt → model (retry/backoff)
#   → JSON extraction → bounded sequential tool execution → level + signature
#   → verification → level-3 escalation? → policies → session event + memory
#
# run_step() never raises for model, parsing or tool failures. Trouble shows
# up as a degraded final, level 2/3, and failing verification records.

import json
import math
import random
import time
from threading import Lock
from typing import Any

from coach_agent.config import Settings
from coach_agent.context import ContextAssembler
from coach_agent.llm import ModelProvider, OpenRouterModel
from coach_agent.memory import LongMemory
from coach_agent.models import AgentStepInput, AgentStepOutput, ExecutedToolCall, Level, ToolCall
from coach_agent.policy import PolicyEvaluator
from coach_agent.profile import ProfileStore
from coach_agent.research import ResearchProvider
from coach_agent.session import SessionManager
from coach_agent.tasks import TaskStore
from coach_agent.telemetry import JsonlLogger
from coach_agent.tools import ToolRegistry

DEFAULT_MAX_TOOLS = 2
MODEL_ATTEMPTS = 3
BACKOFF_START = 0.25
BACKOFF_CAP = 2.0
JITTER_MS = 100

DEMO_THOUGHTS = "Demo: no API key present"
DEMO_FINAL = "No-op"
MODEL_FAILED_CLAIM = "Model call failed after retries"
LEVEL3_CLAIM = "Level 3 escalation executed (no successful tools)"
LEVEL3_NOTE = "Level 3 escalation: no successful tools; documenting uncertainty and requesting follow-up."

DEGRADED_PAYLOAD = json.dumps({
    "thoughts": "Model unreachable, deferring actions.",
    "tool_calls": [],
    "final": "degraded",
})


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

ROLE_AND_CONTRACT = """\
ROLE: You are a real-time social translator and coach. You help users with \
social communication challenges interpret tone, detect sarcasm or irony, infer \
likely intent, and respond clearly and kindly.

PRINCIPLES:
- Prioritize clarity, empathy, and safety. Avoid judgments; assume good intent.
- Detect sarcasm, teasing, passive-aggression, ambiguity, and emotional tone.
- Only conclude what the observation supports. Do not speculate beyond the evidence.
- Keep language simple (grade 7-8), concrete, and non-technical.
- When action is needed, prefer minimal, high-value tool calls. Avoid noisy or speculative actions.
- Obey privacy preferences and do not request sensitive data.

OUTPUT CONTRACT (STRICT): Return ONLY a JSON object with exactly these keys:
- thoughts: brief rationale (concise, safe)
- tool_calls: array of {"name": ..., "args": {...}} using TOOLS below (may be empty)
- final: short speakable message for the user (<= 180 chars). When interpreting \
something someone said, use two lines:
  Means: <one sentence on what it likely means>
  Reply: <one sentence on how to respond>\
"""


def approximate_tokens(text: str) -> int:
    # crude heuristic: 1 token ~ 4 chars
    return math.ceil(len(text or "") / 4)


def build_prompt(
    system_instruction: str,
    tools: list[dict],
    observation: dict,
    preferences: dict,
    stats: dict,
    long_context: str,
    memory_snippet: str = "",
) -> str:
    sections = [
        system_instruction,
        ROLE_AND_CONTRACT,
        f"TOOLS (JSON schema summary):\n{json.dumps(tools)}",
        "INPUTS:",
        f"- Observation: {json.dumps(observation, default=str)}",
        f"- Preferences: {json.dumps(preferences, default=str)}",
        f"- Stats: {json.dumps(stats)}",
        f"- LongContext: {long_context}",
    ]
    if memory_snippet:
        sections.append(f"- LongMemory:\n{memory_snippet}")
    return "\n\n".join(sections) + "\n"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_json_object(text: str) -> dict | None:
    """
    Best-effort recovery of the JSON object a model wrapped in prose or fences.

    Tries the span from the first "{" to the last "}", then the first
    balanced object found by scanning forward. Heuristic, not a parser.
    """
    start, end = text.find("{"), text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        obj = json.loads(text[start:end + 1])
        if isinstance(obj, dict):
            return obj
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    index = start
    while index != -1:
        try:
            obj, _ = decoder.raw_decode(text, index)
            if isinstance(obj, dict):
                return obj
        except json.JSONDecodeError:
            pass
        index = text.find("{", index + 1)
    return None


def parse_model_output(text: str) -> dict:
    parsed = extract_json_object(text)
    if parsed is None:
        return {"thoughts": text, "tool_calls": []}
    return parsed


def _to_tool_calls(raw: Any) -> list[ToolCall]:
    if not isinstance(raw, list):
        return []
    calls = []
    for item in raw:
        if isinstance(item, dict):
            args = item.get("args")
            calls.append(ToolCall(name=str(item.get("name", "")), args=args if isinstance(args, dict) else {}))
        else:
            calls.append(ToolCall(name=str(item)))
    return calls


def make_signature(observation: dict, executed: list[ExecutedToolCall]) -> str:
    keys = ",".join(list(observation)[:4])
    names = "+".join(call.name for call in executed)
    ok_count = sum(1 for call in executed if call.ok)
    return f"obs:{keys}|tools:{names}|ok:{ok_count}"


def initial_level(ok_count: int) -> Level:
    return Level.NOMINAL if ok_count > 0 else Level.NO_ACTION_TAKEN


def should_escalate(level: Level, attempted: int, ok_count: int) -> bool:
    """Level 3 needs an attempt: inaction alone stays at level 2."""
    return level == Level.NO_ACTION_TAKEN and attempted > 0 and ok_count == 0


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AgentEngine:
    """
    Executes exactly one bounded reasoning-and-action step per call.

    model=None puts the engine in demo mode: no network, a fixed no-op
    output, and a single session event.

    Example:
        engine = AgentEngine.create(load_settings())
        engine.sessions.start()
        out = engine.run_step(AgentStepInput(observation={"transcript": "Nice job..."}))
    """

    def __init__(
        self,
        settings: Settings,
        model: ModelProvider | None,
        sessions: SessionManager,
        tasks: TaskStore,
        registry: ToolRegistry,
        context: ContextAssembler,
        memory: LongMemory,
        policies: PolicyEvaluator,
        profile: ProfileStore,
        logger: JsonlLogger,
    ) -> None:
        self.settings = settings
        self.model = model
        self.sessions = sessions
        self.tasks = tasks
        self.registry = registry
        self.context = context
        self.memory = memory
        self.policies = policies
        self.profile = profile
        self.logger = logger
        self._step_lock = Lock()

    @classmethod
    def create(
        cls,
        settings: Settings,
        model: ModelProvider | None = None,
        research: ResearchProvider | None = None,
    ) -> "AgentEngine":
        """Wire every collaborator under settings.data_dir."""
        logger = JsonlLogger(settings.data_path("logs", "agent.jsonl"))
        sessions = SessionManager(settings.data_path("agent.json"), max_events=settings.max_events, logger=logger)
        tasks = TaskStore(settings.data_path("tasks.json"))
        profile = ProfileStore(settings.data_path("profile.json"))
        if research is None:
            research = ResearchProvider()
        registry = ToolRegistry(settings.data_dir, sessions, tasks, research, logger)
        if model is None:
            model = OpenRouterModel.from_settings(settings)
        return cls(
            settings=settings,
            model=model,
            sessions=sessions,
            tasks=tasks,
            registry=registry,
            context=ContextAssembler(sessions, tasks, logger),
            memory=LongMemory(settings.data_path("long_memory.jsonl"), disabled=settings.long_memory_disabled),
            policies=PolicyEvaluator(settings.data_path("policies.json"), registry, logger),
            profile=profile,
            logger=logger,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _tool_limit(self, requested: int | None) -> int:
        limit = DEFAULT_MAX_TOOLS if requested is None else requested
        return max(0, min(limit, self.settings.max_tools_cap))

    def _verify(self, claim: str, evidence: str, passed: bool) -> None:
        self.registry.execute(ToolCall(
            name="agent.verify_step",
            args={"claim": claim, "evidence": evidence, "pass": passed},
        ))

    def _memory_snippet(self, preferences: dict) -> str:
        if self.settings.long_memory_chars <= 0:
            return ""
        try:
            return self.memory.build_snippet(preferences=preferences, max_chars=self.settings.long_memory_chars)
        except Exception:
            return ""

    def call_model(self, prompt: str) -> str:
        """
        Up to MODEL_ATTEMPTS calls with exponential backoff and jitter.

        Exhausted retries are not an error: they log, record a failing
        verification and hand back a degraded payload for normal parsing.
        """
        delay = BACKOFF_START
        last_error: Exception | None = None
        for attempt in range(MODEL_ATTEMPTS):
            try:
                return self.model.generate(prompt).strip()
            except Exception as exc:
                last_error = exc
                if attempt < MODEL_ATTEMPTS - 1:
                    time.sleep(delay + random.randint(0, JITTER_MS) / 1000)
                    delay = min(BACKOFF_CAP, delay * 2)

        self.sessions.add_event("system", {
            "kind": "agent.error",
            "details": {"where": "AgentEngine.call_model", "error": str(last_error)},
        })
        self._verify(MODEL_FAILED_CLAIM, "generate", False)
        return DEGRADED_PAYLOAD

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run_step(self, step_input: AgentStepInput) -> AgentStepOutput:
        with self._step_lock:
            return self._run_step(step_input)

    def _run_demo(self) -> AgentStepOutput:
        demo = AgentStepOutput(thoughts=DEMO_THOUGHTS, final=DEMO_FINAL)
        self.sessions.add_event("system", {"kind": "agent.step", "details": demo.to_json()})
        return demo

    def _run_step(self, step_input: AgentStepInput) -> AgentStepOutput:
        if self.model is None:
            return self._run_demo()

        started = time.monotonic()
        observation = step_input.observation or {}
        profile = self.profile.get()
        preferences = step_input.preferences if step_input.preferences is not None else profile.preferences
        privacy = str(preferences.get("privacyMode") or "cloud")
        session = self.sessions.get()
        stats = session.stats.to_json() if session else {}

        # ── Prompt ────────────────────────────────────────────────────
        prompt = build_prompt(
            system_instruction=profile.system_instruction,
            tools=self.registry.schema_summary(),
            observation=observation,
            preferences=preferences,
            stats=stats,
            long_context=self.context.assemble(),
            memory_snippet=self._memory_snippet(preferences),
        )

        # ── Model ─────────────────────────────────────────────────────
        parsed = parse_model_output(self.call_model(prompt))
        calls = _to_tool_calls(parsed.get("tool_calls"))[: self._tool_limit(step_input.max_tools)]
        self.logger.log({"type": "agent_prompt", "tokens_est": approximate_tokens(prompt), "tool_calls": len(calls)})

        # ── Tools (sequential, failures isolated) ─────────────────────
        executed: list[ExecutedToolCall] = []
        for call in calls:
            result = self.registry.execute(call, privacy=privacy)
            executed.append(ExecutedToolCall(args=call.args, **result.model_dump()))

        # ── Level + signature ─────────────────────────────────────────
        ok_count = sum(1 for call in executed if call.ok)
        level = initial_level(ok_count)
        signature = make_signature(observation, executed)
        self.logger.log({"type": "thought_signature", "level": int(level), "signature": signature})

        self._verify(f"Executed {len(executed)} tool(s) with {ok_count} success", signature, ok_count > 0)

        if should_escalate(level, len(executed), ok_count):
            level = Level.ESCALATED_FAILURE
            self.registry.execute(ToolCall(name="notes.write", args={"text": LEVEL3_NOTE}))
            self.registry.execute(ToolCall(
                name="agent.event",
                args={"kind": "agent.level3", "details": {"signature": signature, "toolCalls": [c.name for c in executed]}},
            ))
            self._verify(LEVEL3_CLAIM, signature, False)

        # ── Best-effort side channels ─────────────────────────────────
        try:
            self.policies.evaluate(observation, privacy)
        except Exception as exc:
            self.logger.log({"type": "policy_error", "error": str(exc)})

        final = parsed.get("final")
        out = AgentStepOutput(
            thoughts=str(parsed.get("thoughts") or ""),
            tool_calls=executed,
            final=str(final) if final else None,
            level=level,
            signature=signature,
        )

        ms = int((time.monotonic() - started) * 1000)
        self.sessions.add_event("system", {"kind": "agent.step", "ms": ms, "output": out.to_json()})
        self.logger.log({"type": "agent_step", "ms": ms, "tools": len(executed)})

        try:
            self.memory.append_interaction(
                "agent.step",
                input=observation,
                output=out.to_json(),
                meta={"level": int(level), "signature": signature},
                preferences=preferences,
            )
        except Exception as exc:
            self.logger.log({"type": "memory_error", "error": str(exc)})

        return out
