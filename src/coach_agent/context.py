# context.py
# Long-context blob for prompting: session + tasks + recent log lines.

import json

from coach_agent.session import SessionManager
from coach_agent.tasks import TaskStore
from coach_agent.telemetry import JsonlLogger, parse_lines

DEFAULT_MAX_CHARS = 60_000
RECENT_LOG_LINES = 300
REDUCED_TASK_COUNT = 10


class ContextAssembler:
    def __init__(self, sessions: SessionManager, tasks: TaskStore, logger: JsonlLogger) -> None:
        self.sessions = sessions
        self.tasks = tasks
        self.logger = logger

    def assemble(self, max_chars: int = DEFAULT_MAX_CHARS) -> str:
        """
        Serialize everything relevant right now, never exceeding `max_chars`.

        Over budget, the logs are dropped and only the last ten tasks kept;
        the reduced text is then hard-truncated.
        """
        session = self.sessions.get()
        session_json = session.to_json() if session else None
        tasks = [task.to_json() for task in self.tasks.list_tasks()]
        logs = parse_lines(self.logger.read_recent(RECENT_LOG_LINES))

        text = json.dumps({"session": session_json, "tasks": tasks, "recent_logs": logs}, default=str)
        if len(text) <= max_chars:
            return text

        reduced = {"session": session_json, "tasks": tasks[-REDUCED_TASK_COUNT:]}
        return json.dumps(reduced, default=str)[:max_chars]
