"""Runtime settings read from the environment (``.env`` is loaded by the entry points)."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel

DEFAULT_HOME = Path.home() / ".roadmap_mentor"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_MODEL = "google/gemini-2.5-flash"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

PROVIDERS = ("openrouter", "gemini", "offline")


class Settings(BaseModel):
    home: Path = DEFAULT_HOME
    db_path: Path = DEFAULT_HOME / "roadmap_mentor.db"
    provider: str = "offline"
    openrouter_api_key: str = ""
    openrouter_model: str = DEFAULT_OPENROUTER_MODEL
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    log_level: str = "INFO"
    log_file: Path | None = None

    def ensure_dirs(self) -> None:
        self.home.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


def _default_provider(openrouter_key: str, gemini_key: str) -> str:
    if openrouter_key:
        return "openrouter"
    if gemini_key:
        return "gemini"
    return "offline"


def load_settings() -> Settings:
    home = Path(os.environ.get("ROADMAP_MENTOR_HOME", str(DEFAULT_HOME))).expanduser()
    openrouter_key = os.environ.get("OPENROUTER_API_KEY", "")
    gemini_key = os.environ.get("GEMINI_API_KEY", "") or os.environ.get("GOOGLE_API_KEY", "")
    provider = os.environ.get("MENTOR_PROVIDER", "").strip().lower() or _default_provider(openrouter_key, gemini_key)
    if provider not in PROVIDERS:
        raise ValueError(f"MENTOR_PROVIDER must be one of {', '.join(PROVIDERS)}, got '{provider}'")
    log_file = os.environ.get("ROADMAP_MENTOR_LOG_FILE")
    return Settings(
        home=home,
        db_path=Path(os.environ.get("ROADMAP_MENTOR_DB", str(home / "roadmap_mentor.db"))).expanduser(),
        provider=provider,
        openrouter_api_key=openrouter_key,
        openrouter_model=os.environ.get("OPENROUTER_MODEL", DEFAULT_OPENROUTER_MODEL),
        gemini_api_key=gemini_key,
        gemini_model=os.environ.get("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        log_file=Path(log_file).expanduser() if log_file else None,
    )
