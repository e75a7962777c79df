"""Request/response models for the API."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from roadmap_mentor.models import ChatMessage


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Projects ---

class ProjectCreate(_Body):
    user_id: str = "local"
    name: str = Field(min_length=1)
    domain: str | None = None
    description: str | None = None
    team_size: int | None = None
    target_date: date | None = None
    tech_stack: list[str] = Field(default_factory=list)


class ProjectUpdate(_Body):
    name: str | None = None
    domain: str | None = None
    description: str | None = None
    team_size: int | None = None
    target_date: date | None = None
    tech_stack: list[str] | None = None
    status: str | None = None


# --- Roadmap ---

class ToggleRequest(_Body):
    phase_id: str
    task_id: str
    completed: bool | None = None  # None flips the current value
    parent_task_id: str | None = None


# --- Chat ---

class ChatRequest(_Body):
    message: str


class ChatResponse(_Body):
    reply: ChatMessage
    messages: list[ChatMessage]


class HealthResponse(_Body):
    status: str
    provider: str
