# config.py
# Runtime settings. Environment first, .env file second, defaults last.
#
# Nothing else in the package reads os.environ directly; everything flows
# through Settings so tests can build one by hand.

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _writable_base_dir() -> Path:
    """Serverless roots are read-only; fall back to /tmp there."""
    cwd = Path.cwd()
    if os.getenv("VERCEL") or str(cwd).startswith("/var/task"):
        return Path("/tmp")
    return cwd


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Validated runtime configuration for one agent process."""

    api_key: str | None = Field(default=None, description="OpenRouter API key. None = demo mode.")
    base_url: str = Field(default="https://openrouter.ai/api/v1")
    model: str = Field(default="google/gemini-2.5-pro")
    data_dir: Path = Field(default_factory=lambda: _writable_base_dir() / ".data")
    max_tools_cap: int = Field(default=5, ge=0, description="Hard per-step tool ceiling.")
    max_events: int = Field(default=500, ge=1, description="Session event ring-buffer size.")
    json_mode: bool = Field(default=True, description="Ask the provider for JSON output.")
    long_memory_disabled: bool = False
    long_memory_chars: int = Field(default=2200, ge=0)

    def data_path(self, *parts: str) -> Path:
        return self.data_dir.joinpath(*parts)


def load_settings() -> Settings:
    values: dict = {
        "api_key": os.getenv("OPENROUTER_API_KEY") or None,
        "json_mode": _flag("COACH_JSON_MODE", True),
        "long_memory_disabled": _flag("COACH_LONG_MEMORY_DISABLED", False),
    }
    optional = {
        "base_url": "OPENROUTER_BASE_URL",
        "model": "COACH_MODEL",
        "data_dir": "COACH_DATA_DIR",
        "max_tools_cap": "COACH_MAX_TOOLS_CAP",
        "max_events": "COACH_MAX_EVENTS",
        "long_memory_chars": "COACH_LONG_MEMORY_CHARS",
    }
    for field_name, env_name in optional.items():
        raw = os.getenv(env_name)
        if raw:
            values[field_name] = raw
    return Settings.model_validate(values)
