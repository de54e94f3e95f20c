# memory.py
# Long-term interaction memory: a privacy-gated rolling JSONL log of past
# steps, read back as a short snippet for the next prompt.
#
# Writes are best-effort from the engine's point of view; readers treat a
# missing or corrupt file as "no memory".

import json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

from pydantic import ValidationError

from coach_agent.models import InteractionRecord

MAX_STRING = 1200
MAX_DEPTH = 4
MAX_LIST_ITEMS = 24
MAX_KEYS = 40


def truncate_text(text: str, limit: int = MAX_STRING) -> str:
    if not text:
        return ""
    return text[:limit] + "…" if len(text) > limit else text


def sanitize(value: Any, depth: int = 0) -> Any:
    """Bound depth, breadth and string length of an arbitrary JSON value."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if depth > MAX_DEPTH:
        return None
    if isinstance(value, str):
        return truncate_text(value)
    if isinstance(value, (list, tuple)):
        return [sanitize(v, depth + 1) for v in list(value)[:MAX_LIST_ITEMS]]
    if isinstance(value, dict):
        return {str(k): sanitize(v, depth + 1) for k, v in list(value.items())[:MAX_KEYS]}
    return str(value)


def _clamp(value: int | None, default: int, low: int, high: int) -> int:
    return max(low, min(high, int(value or default)))


class LongMemory:
    def __init__(self, path: Path, disabled: bool = False) -> None:
        self.path = Path(path)
        self.disabled = disabled
        self._lock = Lock()

    def is_enabled(self, preferences: dict | None = None) -> bool:
        if self.disabled:
            return False
        return not (preferences and preferences.get("enableMemory") is False)

    def append_interaction(
        self,
        kind: str,
        input: Any = None,
        output: Any = None,
        meta: Any = None,
        preferences: dict | None = None,
        max_items: int | None = None,
    ) -> None:
        if not self.is_enabled(preferences):
            return
        keep = _clamp(max_items, 600, 50, 2000)
        record = InteractionRecord(
            kind=kind,
            input=sanitize(input),
            output=sanitize(output),
            meta=sanitize(meta),
        )
        line = json.dumps(record.to_json(), default=str)

        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
            lines = self.path.read_text(encoding="utf-8").splitlines()
            if len(lines) > keep:
                self.path.write_text("\n".join(lines[-keep:]) + "\n", encoding="utf-8")

    def list_recent(self, limit: int | None = None, preferences: dict | None = None) -> list[InteractionRecord]:
        """Most recent interactions, oldest first."""
        if not self.is_enabled(preferences) or not self.path.exists():
            return []
        limit = _clamp(limit, 40, 1, 200)
        with self._lock:
            lines = [line for line in self.path.read_text(encoding="utf-8").splitlines() if line.strip()]
        items: list[InteractionRecord] = []
        for line in lines[-limit:]:
            try:
                items.append(InteractionRecord.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError):
                continue
        return items

    def build_snippet(
        self,
        preferences: dict | None = None,
        limit: int | None = None,
        max_chars: int | None = None,
    ) -> str:
        limit = _clamp(limit, 24, 1, 80)
        max_chars = _clamp(max_chars, 2200, 400, 6000)
        items = self.list_recent(limit=limit, preferences=preferences)
        if not items:
            return ""

        lines = []
        for item in items:
            stamp = datetime.fromtimestamp(item.t / 1000, tz=timezone.utc).isoformat()
            in_txt = truncate_text(json.dumps(item.input), 500) if item.input else ""
            out_txt = truncate_text(json.dumps(item.output), 500) if item.output else ""
            lines.append(f"- {stamp} {item.kind} in={in_txt} out={out_txt}")
        text = "\n".join(lines)
        return text[:max_chars] + "…" if len(text) > max_chars else text
