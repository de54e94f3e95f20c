# telemetry.py
# Append-only JSONL log sink for prompt, tool and step telemetry.
#
# Writers never raise: a telemetry failure must not change the outcome of
# the step that produced it.

import json
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonlLogger:
    """Writes one JSON object per line and reads the tail back for context."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def log(self, record: dict[str, Any]) -> None:
        line = json.dumps({"ts": _now_iso(), **record}, default=str)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except OSError:
            return

    def read_recent(self, n: int = 300) -> list[str]:
        """Return the last `n` non-empty raw lines, oldest first."""
        if n <= 0 or not self.path.exists():
            return []
        with self._lock:
            with self.path.open("r", encoding="utf-8") as fh:
                tail = deque((line.rstrip("\n") for line in fh if line.strip()), maxlen=n)
        return list(tail)


def parse_lines(lines: list[str]) -> list[Any]:
    """JSON-decode each line where possible; keep the raw string otherwise."""
    parsed: list[Any] = []
    for line in lines:
        try:
            parsed.append(json.loads(line))
        except json.JSONDecodeError:
            parsed.append(line)
    return parsed
