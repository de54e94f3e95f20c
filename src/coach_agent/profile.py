# profile.py
# Persisted role instructions and default preferences.

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_SYSTEM_INSTRUCTION = """\
Coach Core
Role: You are a proactive assistant that processes real-time audio and visual \
cues to give the user social, logistical and strategic advantages.

Core capabilities:
- Multimodal synthesis: interpret intent and implications of what was seen and heard.
- Social intelligence: tactical advice from robust, ethical signals (turn-taking, \
tone, speaking balance). No sensitive attribute inferences.
- Logistics: spot missing items, hazards or inefficiencies.
- Long-term context: use the supplied preference and history summaries.

Operational guidelines:
- Be proactive: flag tense moments or hazards.
- Verify conclusions before advising; do not speculate.
- When a task is identified, request it through the structured tool calls.\
"""


def default_preferences() -> dict:
    return {"privacyMode": "cloud", "outputMode": "text", "enableMemory": True}


class Profile(BaseModel):
    system_instruction: str = Field(default=DEFAULT_SYSTEM_INSTRUCTION, alias="systemInstruction")
    preferences: dict = Field(default_factory=default_preferences)
    history_snippet: str = Field(default="", alias="historySnippet")

    model_config = ConfigDict(populate_by_name=True)


class ProfileStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._profile = self._load()

    def _load(self) -> Profile:
        if not self.path.exists():
            return Profile()
        try:
            return Profile.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError):
            return Profile()

    def get(self) -> Profile:
        return self._profile

    def update(
        self,
        system_instruction: str | None = None,
        preferences: dict | None = None,
        history_snippet: str | None = None,
    ) -> Profile:
        if system_instruction is not None:
            self._profile.system_instruction = system_instruction
        if preferences is not None:
            self._profile.preferences = preferences
        if history_snippet is not None:
            self._profile.history_snippet = history_snippet
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self._profile.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        return self._profile
