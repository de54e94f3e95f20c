# models.py
# Data contracts for the coach agent loop.
# No business logic lives here: pure schema and validation.
#
# Python attributes are snake_case; the JSON written to disk and embedded in
# prompts uses the camelCase aliases.

import time
from enum import IntEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    return int(time.time() * 1000)


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Session timeline
# ---------------------------------------------------------------------------

EventType = Literal["insight", "note", "system"]


class Event(_Record):
    """A single entry in the session timeline. Never mutated after append."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    t: int = Field(..., description="Epoch milliseconds.")
    type: EventType
    data: Any = None


class SessionStats(_Record):
    false_positives: int = Field(default=0, ge=0, alias="falsePositives")
    improvements: int = Field(default=0, ge=0)


class Session(_Record):
    id: str
    started_at: int = Field(..., alias="startedAt")
    ended_at: int | None = Field(default=None, alias="endedAt")
    events: list[Event] = Field(default_factory=list)
    stats: SessionStats = Field(default_factory=SessionStats)

    @property
    def active(self) -> bool:
        return self.ended_at is None


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolCall(_Record):
    """A tool invocation as proposed by the model. Args are unvalidated."""

    name: str
    args: dict = Field(default_factory=dict)


class ToolResult(_Record):
    """Registry output. ok=True carries result, ok=False carries error."""

    name: str
    ok: bool
    result: Any = None
    error: str | None = None


class ExecutedToolCall(ToolResult):
    args: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Agent step
# ---------------------------------------------------------------------------


class Level(IntEnum):
    """Escalation outcome of a step.

    NOMINAL          at least one tool succeeded
    NO_ACTION_TAKEN  nothing succeeded (including: nothing was attempted)
    ESCALATED_FAILURE tools were attempted and every one failed
    """

    NOMINAL = 1
    NO_ACTION_TAKEN = 2
    ESCALATED_FAILURE = 3


class AgentStepInput(_Record):
    observation: dict = Field(default_factory=dict)
    preferences: dict | None = None
    max_tools: int | None = Field(default=None, ge=0, alias="maxTools")


class AgentStepOutput(_Record):
    thoughts: str = ""
    tool_calls: list[ExecutedToolCall] = Field(default_factory=list, alias="toolCalls")
    final: str | None = None
    level: Level | None = None
    signature: str | None = None


# ---------------------------------------------------------------------------
# Collaborator records
# ---------------------------------------------------------------------------

TaskStatus = Literal["pending", "in_progress", "done", "blocked"]


class TaskLog(_Record):
    t: int
    msg: str


class Task(_Record):
    id: str
    title: str
    status: TaskStatus = "pending"
    notes: str | None = None
    created_at: int = Field(..., alias="createdAt")
    updated_at: int = Field(..., alias="updatedAt")
    logs: list[TaskLog] = Field(default_factory=list)


class VerificationRecord(_Record):
    ts: int = Field(default_factory=now_ms)
    claim: str
    evidence: str | None = None
    passed: bool = Field(..., alias="pass")


class InteractionRecord(_Record):
    """One line of the long-term interaction memory."""

    t: int = Field(default_factory=now_ms)
    kind: str
    input: Any = None
    output: Any = None
    meta: Any = None


class PolicyTrigger(_Record):
    path: str


class PolicyTriggers(_Record):
    any_true: list[PolicyTrigger] = Field(default_factory=list, alias="anyTrue")


class PolicySafeguards(_Record):
    cooldown_ms: int = Field(default=300_000, ge=0, alias="cooldownMs")
    privacy: str = "cloud"


class PolicyVerify(_Record):
    claim: str


class Policy(_Record):
    """A short-lived rule: when a trigger path is truthy, run its actions."""

    id: str
    intent: str
    triggers: PolicyTriggers = Field(default_factory=PolicyTriggers)
    actions: list[ToolCall] = Field(default_factory=list)
    safeguards: PolicySafeguards = Field(default_factory=PolicySafeguards)
    verify: PolicyVerify | None = None
    ttl_ms: int = Field(default=24 * 60 * 60 * 1000, ge=0, alias="ttlMs")
    priority: int = 1
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    last_fired_at: int | None = Field(default=None, alias="lastFiredAt")


class RunResult(_Record):
    """Outcome of a multi-step goal run."""

    goal: str
    steps: int
    max_tools: int = Field(..., alias="maxTools")
    started: int
    ended: int
    trace: list[dict] = Field(default_factory=list)
    artifact: str | None = None
