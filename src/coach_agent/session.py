# session.py
# Single-active-session timeline store.
#
# One SessionManager per process owns the session file. Every mutating call
# rewrites the whole file synchronously so a crash loses at most the call in
# flight. A reentrant lock serializes writers. Write failures are logged and
# never reach the caller; the in-memory session stays authoritative.

import json
from pathlib import Path
from threading import RLock
from typing import Any

from pydantic import ValidationError

from coach_agent.models import Event, EventType, Session, SessionStats, now_ms
from coach_agent.telemetry import JsonlLogger


class SessionManager:
    """
    Owns the active session: start / stop / add_event / feedback / get.

    Events form a ring buffer of at most `max_events` entries; the oldest
    are dropped first once the cap is reached.
    """

    def __init__(self, path: Path, max_events: int = 500, logger: JsonlLogger | None = None) -> None:
        self.path = Path(path)
        self.max_events = max_events
        self.logger = logger
        self._lock = RLock()
        self._session: Session | None = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> Session | None:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            data = raw.get("session") if isinstance(raw, dict) else None
            return Session.model_validate(data) if data else None
        except (OSError, json.JSONDecodeError, ValidationError):
            return None

    def _save(self) -> None:
        payload = {"session": self._session.to_json() if self._session else None}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            if self.logger is not None:
                self.logger.log({"type": "session_persist_error", "path": str(self.path), "error": str(exc)})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> Session:
        with self._lock:
            started = now_ms()
            self._session = Session(id=f"sess-{started}", started_at=started)
            self._save()
            return self._session.model_copy(deep=True)

    def stop(self) -> Session | None:
        with self._lock:
            if self._session is None or not self._session.active:
                return None
            self._session.ended_at = now_ms()
            self._save()
            return self._session.model_copy(deep=True)

    def get(self) -> Session | None:
        with self._lock:
            return self._session.model_copy(deep=True) if self._session else None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _active(self) -> Session | None:
        if self._session is None or not self._session.active:
            return None
        return self._session

    def add_event(self, type: EventType, data: Any) -> None:
        """
        Append to the timeline.

        Silently dropped when no session exists or the session was stopped;
        a stopped session's timeline is frozen.
        """
        with self._lock:
            session = self._active()
            if session is None:
                return
            events = session.events
            t = now_ms()
            if events and events[-1].t > t:
                t = events[-1].t
            events.append(Event(t=t, type=type, data=data))
            if len(events) > self.max_events:
                del events[: len(events) - self.max_events]
            self._save()

    def feedback(self, false_positive: bool = False, improved: bool = False) -> SessionStats | None:
        """Bump the session counters. None when no session is active."""
        with self._lock:
            session = self._active()
            if session is None:
                return None
            stats = session.stats
            if false_positive:
                stats.false_positives += 1
            if improved:
                stats.improvements += 1
            self._save()
            return stats.model_copy()
