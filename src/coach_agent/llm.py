# llm.py
# Model provider seam. The engine only ever sees generate(prompt) -> str.

from typing import Protocol

from openai import OpenAI

from coach_agent.config import Settings


class ModelProvider(Protocol):
    def generate(self, prompt: str) -> str:
        """Return free text expected to contain one JSON object."""


class OpenRouterModel:
    """
    Chat-completions client pointed at OpenRouter.

    With json_mode the provider is asked for a bare JSON object; models that
    ignore the flag still go through the engine's brace-scanning fallback.
    """

    def __init__(self, api_key: str, model: str, base_url: str, json_mode: bool = True) -> None:
        self.model = model
        self.json_mode = json_mode
        self._client = OpenAI(base_url=base_url, api_key=api_key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenRouterModel | None":
        if not settings.api_key:
            return None
        return cls(settings.api_key, settings.model, settings.base_url, settings.json_mode)

    def generate(self, prompt: str) -> str:
        kwargs: dict = {}
        if self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
        return (response.choices[0].message.content or "").strip()
