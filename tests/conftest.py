import json
from unittest.mock import MagicMock

import pytest

from coach_agent.agent import AgentEngine
from coach_agent.config import Settings
from coach_agent.research import ResearchProvider


class ScriptedModel:
    """Model stand-in: replays responses in order, raising any exception items."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def model_reply(thoughts="ok", tool_calls=None, final=None) -> str:
    payload = {"thoughts": thoughts, "tool_calls": tool_calls or []}
    if final is not None:
        payload["final"] = final
    return json.dumps(payload)


@pytest.fixture
def settings(tmp_path):
    return Settings(api_key=None, data_dir=tmp_path / ".data")


@pytest.fixture
def research():
    provider = MagicMock(spec=ResearchProvider)
    provider.enrich_person.return_value = {"source": "ddgs", "results": []}
    return provider


@pytest.fixture
def make_engine(settings, research):
    def _make(model=None, start=True):
        engine = AgentEngine.create(settings, model=model, research=research)
        if start:
            engine.sessions.start()
        return engine

    return _make


def read_jsonl(path):
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
