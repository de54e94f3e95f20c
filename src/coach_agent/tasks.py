# tasks.py
# File-backed task list. The agent reaches it only through tool calls.

import json
import random
from pathlib import Path
from threading import Lock

from pydantic import ValidationError

from coach_agent.models import Task, TaskLog, TaskStatus, now_ms


class TaskStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def _load(self) -> list[Task]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return [Task.model_validate(item) for item in raw.get("tasks", [])]
        except (OSError, json.JSONDecodeError, ValidationError, AttributeError):
            return []

    def _save(self, tasks: list[Task]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"tasks": [task.to_json() for task in tasks]}
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def list_tasks(self) -> list[Task]:
        with self._lock:
            return self._load()

    def create_task(self, title: str, notes: str | None = None) -> Task:
        with self._lock:
            tasks = self._load()
            now = now_ms()
            task = Task(
                id=f"t-{now}-{random.randrange(1_000_000)}",
                title=title,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            tasks.append(task)
            self._save(tasks)
            return task

    def update_task_status(self, task_id: str, status: TaskStatus, notes: str | None = None) -> Task | None:
        """Returns None when no task has `task_id`."""
        with self._lock:
            tasks = self._load()
            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                return None
            task.status = status
            if notes:
                task.notes = notes
            task.updated_at = now_ms()
            self._save(tasks)
            return task

    def log_task(self, task_id: str, msg: str) -> Task | None:
        with self._lock:
            tasks = self._load()
            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                return None
            task.logs.append(TaskLog(t=now_ms(), msg=msg))
            task.updated_at = task.logs[-1].t
            self._save(tasks)
            return task
