"""Pydantic models for projects, roadmaps, chat messages and progress."""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def as_utc(value: datetime | None) -> datetime | None:
    """Read offset-less timestamps as UTC so every stamp compares with every other."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


Timestamp = Annotated[datetime, AfterValidator(as_utc)]


class _Document(BaseModel):
    """camelCase on the wire and in storage, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Roadmap tree ---


class Task(_Document):
    id: str = ""  # filled by normalize_roadmap when a generator omits it
    name: str
    completed: bool = False
    completed_at: Timestamp | None = None
    sub_tasks: list[Task] = Field(default_factory=list)

    @model_validator(mode="after")
    def _clear_stale_timestamp(self) -> Task:
        # completedAt only ever accompanies completed == True
        if not self.completed and self.completed_at is not None:
            self.completed_at = None
        return self

    @property
    def is_leaf(self) -> bool:
        return not self.sub_tasks


class Phase(_Document):
    id: str = ""
    name: str
    description: str = ""
    tasks: list[Task] = Field(default_factory=list)


class Roadmap(_Document):
    phases: list[Phase] = Field(default_factory=list)
    created_at: Timestamp | None = None
    updated_at: Timestamp | None = None


# --- Chat ---


class Role(enum.StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(enum.StrEnum):
    SENT = "sent"  # confirmed by a snapshot
    PENDING = "pending"  # optimistic, write in flight
    UNSENT = "unsent"  # write failed, kept so user input is not lost


class ChatMessage(_Document):
    id: str
    role: Role
    content: str
    created_at: Timestamp
    marker: str | None = None  # synthetic marker, e.g. on the bootstrap greeting
    status: MessageStatus = Field(default=MessageStatus.SENT, exclude=True)

    @field_validator("role", mode="before")
    @classmethod
    def _legacy_roles(cls, value: Any) -> Any:
        if value == "user":
            return Role.USER
        # "model", "ai" and anything unknown are assistant output
        return Role.ASSISTANT


# --- Projects ---


class Project(_Document):
    id: str
    user_id: str
    name: str
    domain: str | None = None
    description: str | None = None
    team_size: int | None = None
    target_date: date | None = None
    tech_stack: list[str] = Field(default_factory=list)
    status: str = "active"
    created_at: Timestamp | None = None
    updated_at: Timestamp | None = None


class DetailsCheck(_Document):
    has_all_details: bool
    missing_fields: list[str] = Field(default_factory=list)


# --- Progress ---


class PhaseStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class PhaseProgress(_Document):
    name: str
    progress_pct: int
    status: PhaseStatus


class CompletionEvent(_Document):
    id: str  # "<phase>-<task>" or "<phase>-<task>-<sub task>"
    task: str
    phase: str
    parent_task: str | None = None
    completed_at: Timestamp | None = None


class Milestone(_Document):
    name: str
    completed: bool


class Progress(_Document):
    overall: int = 0
    per_phase: list[PhaseProgress] = Field(default_factory=list)
    recent_completions: list[CompletionEvent] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
