# tools.py
# Tool registry: every side effect the agent can request.
#
# The engine imports ToolRegistry and never calls handlers directly.
# Contract: execute() never raises. Unknown names, invalid arguments and
# handler exceptions all come back as ToolResult(ok=False, error=...).

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from coach_agent.models import TaskStatus, ToolCall, ToolResult, VerificationRecord, now_ms
from coach_agent.research import ResearchProvider
from coach_agent.session import SessionManager
from coach_agent.tasks import TaskStore
from coach_agent.telemetry import JsonlLogger

MAX_QUERY_CHARS = 256
MAX_ATTENDEES = 20


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------


class _Args(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def null_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        # Models often send null for an optional field.
        field = cls.model_fields[info.field_name]
        if value is None and not field.is_required():
            return field.get_default(call_default_factory=True)
        return value


class SearchArgs(_Args):
    query: str


class CalendarEventArgs(_Args):
    title: str
    when: str
    attendees: list[str] = Field(default_factory=list)
    notes: str = ""


class MemoryWriteArgs(_Args):
    text: str
    tags: list[str] = Field(default_factory=list)


class AgentEventArgs(_Args):
    kind: str
    details: dict = Field(default_factory=dict)


class TaskCreateArgs(_Args):
    title: str
    notes: str | None = None


class TaskUpdateArgs(_Args):
    id: str
    status: TaskStatus
    notes: str | None = None


class NoteArgs(_Args):
    text: str


class VerifyStepArgs(_Args):
    claim: str
    evidence: str | None = None
    passed: bool = Field(..., alias="pass")


def _schema(model: type[BaseModel]) -> dict:
    """JSON schema for prompting, without pydantic's generated titles."""
    schema = model.model_json_schema(by_alias=True)
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolDef:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: Callable[..., Any]
    privacy_aware: bool = False

    @property
    def schema(self) -> dict:
        return _schema(self.args_model)


class ToolRegistry:
    """
    Fixed catalog of named, schema-described operations.

    Each handler persists its own side effect and, on success, mirrors it
    into the session timeline as a system event.
    """

    def __init__(
        self,
        data_dir: Path,
        sessions: SessionManager,
        tasks: TaskStore,
        research: ResearchProvider,
        logger: JsonlLogger,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.sessions = sessions
        self.tasks = tasks
        self.research = research
        self.logger = logger
        self._tools: dict[str, ToolDef] = {}
        for tool in self._builtin_tools():
            self.register(tool)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def calendar_path(self) -> Path:
        return self.data_dir / "calendar.json"

    @property
    def memory_path(self) -> Path:
        return self.data_dir / "memory.json"

    @property
    def notes_path(self) -> Path:
        return self.data_dir / "notes.md"

    @property
    def verify_path(self) -> Path:
        return self.data_dir / "verify" / "steps.jsonl"

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    def register(self, tool: ToolDef) -> None:
        self._tools[tool.name] = tool

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def schema_summary(self) -> list[dict]:
        return [
            {"name": t.name, "description": t.description, "schema": t.schema}
            for t in self._tools.values()
        ]

    def execute(self, call: ToolCall, privacy: str | None = None) -> ToolResult:
        """
        Run one call. `privacy` is the caller's privacy mode for this step and
        is handed to tools that reach outside the machine.
        """
        tool = self._tools.get(call.name)
        if tool is None:
            return ToolResult(name=call.name, ok=False, error="Unknown tool")

        started = time.monotonic()
        try:
            args = tool.args_model.model_validate(call.args or {})
            extra = {"privacy": privacy} if tool.privacy_aware else {}
            result = ToolResult(name=tool.name, ok=True, result=tool.handler(args, **extra))
        except ValidationError as exc:
            result = ToolResult(name=tool.name, ok=False, error=f"invalid_args: {_first_error(exc)}")
        except Exception as exc:
            result = ToolResult(name=tool.name, ok=False, error=str(exc) or type(exc).__name__)

        ms = int((time.monotonic() - started) * 1000)
        self.logger.log({"type": "tool_result", "name": tool.name, "ms": ms, "ok": result.ok})
        return result

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _record(self, kind: str, details: Any) -> None:
        self.sessions.add_event("system", {"kind": kind, "details": details})

    def _web_search(self, args: SearchArgs, privacy: str | None = None) -> Any:
        return self.research.enrich_person(args.query[:MAX_QUERY_CHARS], privacy_mode=privacy)

    def _calendar_create(self, args: CalendarEventArgs) -> dict:
        event = {
            "title": args.title,
            "when": args.when,
            "attendees": args.attendees[:MAX_ATTENDEES],
            "notes": args.notes,
            "createdAt": now_ms(),
        }
        _append_json_array(self.calendar_path, event)
        self._record("calendar.create_event", event)
        return event

    def _memory_write(self, args: MemoryWriteArgs) -> dict:
        item = {"text": args.text, "tags": args.tags, "createdAt": now_ms()}
        _append_json_array(self.memory_path, item)
        self._record("memory.write", item)
        return item

    def _agent_event(self, args: AgentEventArgs) -> bool:
        self._record(args.kind, args.details)
        return True

    def _tasks_create(self, args: TaskCreateArgs) -> dict:
        task = self.tasks.create_task(args.title, args.notes)
        self._record("tasks.create", task.to_json())
        return task.to_json()

    def _tasks_update_status(self, args: TaskUpdateArgs) -> dict:
        task = self.tasks.update_task_status(args.id, args.status, args.notes)
        if task is None:
            raise LookupError("not_found")
        self._record("tasks.update_status", task.to_json())
        return task.to_json()

    def _notes_write(self, args: NoteArgs) -> bool:
        stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        self.notes_path.parent.mkdir(parents=True, exist_ok=True)
        with self.notes_path.open("a", encoding="utf-8") as fh:
            fh.write(f"- {stamp} {args.text}\n")
        self._record("notes.write", {"text": args.text})
        return True

    def _verify_step(self, args: VerifyStepArgs) -> bool:
        record = VerificationRecord(claim=args.claim, evidence=args.evidence, passed=args.passed)
        self.verify_path.parent.mkdir(parents=True, exist_ok=True)
        with self.verify_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record.to_json()) + "\n")
        self._record("agent.verify_step", record.to_json())
        return True

    def _builtin_tools(self) -> list[ToolDef]:
        return [
            ToolDef(
                "web.search",
                "Search the web for public information relevant to the query.",
                SearchArgs,
                self._web_search,
                privacy_aware=True,
            ),
            ToolDef(
                "calendar.create_event",
                "Create a calendar event stub saved locally.",
                CalendarEventArgs,
                self._calendar_create,
            ),
            ToolDef(
                "memory.write",
                "Write a memory item with optional tags to the long-term store.",
                MemoryWriteArgs,
                self._memory_write,
            ),
            ToolDef(
                "agent.event",
                "Emit an internal agent event into the session timeline.",
                AgentEventArgs,
                self._agent_event,
            ),
            ToolDef(
                "tasks.create",
                "Create a task in the local task store with optional notes.",
                TaskCreateArgs,
                self._tasks_create,
            ),
            ToolDef(
                "tasks.update_status",
                "Update a task's status and optional notes.",
                TaskUpdateArgs,
                self._tasks_update_status,
            ),
            ToolDef(
                "notes.write",
                "Append a note line to the local notes file for audit/summary.",
                NoteArgs,
                self._notes_write,
            ),
            ToolDef(
                "agent.verify_step",
                "Record a verification entry for the current step.",
                VerifyStepArgs,
                self._verify_step,
            ),
        ]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _append_json_array(path: Path, item: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    existing: list = []
    if path.exists():
        text = path.read_text(encoding="utf-8").strip()
        existing = json.loads(text) if text else []
    existing.append(item)
    path.write_text(json.dumps(existing, indent=2), encoding="utf-8")


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ())) or "args"
    return f"{loc}: {err.get('msg', 'invalid')}"
