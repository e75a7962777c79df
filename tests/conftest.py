"""Shared fixtures: a controllable clock, stores and roadmap builders."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from roadmap_mentor.infrastructure.store import InMemoryDocumentStore, SqliteDocumentStore
from roadmap_mentor.models import Phase, Project, Roadmap, Task

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    """Advances by ``step`` on every read so store-assigned timestamps stay ordered."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def now(self) -> datetime:
        value = self.current
        self.current += self.step
        return value

    def advance(self, delta: timedelta) -> None:
        self.current += delta


async def settle(rounds: int = 20) -> None:
    """Let queued snapshot deliveries and spawned tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def sqlite_store(tmp_path, clock):
    s = SqliteDocumentStore(tmp_path / "test.db", clock=clock)
    yield s
    s.close()


def make_roadmap() -> Roadmap:
    """Two phases: a leaf task plus a parent with two sub-tasks, then a single leaf."""
    return Roadmap(
        phases=[
            Phase(
                id="1",
                name="Planning",
                description="Plan it",
                tasks=[
                    Task(id="1-1", name="Define goals"),
                    Task(
                        id="1-2",
                        name="Set up tooling",
                        sub_tasks=[
                            Task(id="1-2-1", name="Create repo"),
                            Task(id="1-2-2", name="Configure CI"),
                        ],
                    ),
                ],
            ),
            Phase(id="2", name="Build", tasks=[Task(id="2-1", name="Write code")]),
        ]
    )


def make_project(**overrides) -> Project:
    fields = {"id": "demo", "user_id": "u1", "name": "Demo"}
    fields.update(overrides)
    return Project(**fields)
