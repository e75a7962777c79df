"""Tests for project records and the client session's generation flow."""

import asyncio
from datetime import date
from unittest.mock import patch

import pytest
from conftest import make_project, settle

from roadmap_mentor.core.tree import find_task
from roadmap_mentor.errors import GenerationNotAllowed, ProjectNotFound, StoreWriteError
from roadmap_mentor.infrastructure.store import InMemoryDocumentStore
from roadmap_mentor.models import ChatMessage, Role
from roadmap_mentor.services.mentor import Mentor
from roadmap_mentor.services.projects import ProjectRepository, messages_collection
from roadmap_mentor.services.session import ClientSession


class TestProjectRepository:
    async def test_create_and_get(self, store, clock):
        projects = ProjectRepository(store, clock)
        created = await projects.create("u1", "Habit Tracker", tech_stack=["Python"])
        assert created.id == "habit-tracker"
        fetched = await projects.get("habit-tracker")
        assert fetched == created
        doc = await store.read("projects/habit-tracker")
        assert doc["userId"] == "u1"
        assert doc["techStack"] == ["Python"]

    async def test_ids_are_unique(self, store, clock):
        projects = ProjectRepository(store, clock)
        first = await projects.create("u1", "App")
        second = await projects.create("u2", "App")
        assert (first.id, second.id) == ("app", "app-1")

    async def test_list_for_user_newest_first(self, store, clock):
        projects = ProjectRepository(store, clock)
        await projects.create("u1", "Old")
        await projects.create("u2", "Someone else's")
        await projects.create("u1", "New")
        assert [p.name for p in await projects.list_for_user("u1")] == ["New", "Old"]

    async def test_list_without_index_sorts_client_side(self, clock):
        store = InMemoryDocumentStore(clock=clock, indexed_fields=())
        projects = ProjectRepository(store, clock)
        await projects.create("u1", "Old")
        await projects.create("u1", "New")
        assert [p.name for p in await projects.list_for_user("u1")] == ["New", "Old"]

    async def test_get_missing(self, store):
        with pytest.raises(ProjectNotFound):
            await ProjectRepository(store).get("nope")

    async def test_update_details(self, store, clock):
        projects = ProjectRepository(store, clock)
        created = await projects.create("u1", "App")
        updated = await projects.update_details(
            created.id, description="Tracks habits", tech_stack=[" Python ", "", "SQLite"], target_date=date(2025, 9, 1)
        )
        assert updated.tech_stack == ["Python", "SQLite"]
        assert updated.target_date == date(2025, 9, 1)
        assert updated.updated_at > created.updated_at
        assert (await projects.get(created.id)).description == "Tracks habits"

    async def test_update_merges_into_the_stored_document(self, store, clock):
        projects = ProjectRepository(store, clock)
        created = await projects.create("u1", "App")
        await store.update("projects/app", {"archivedBy": "admin"})
        await projects.update(created.id, name="Renamed")
        doc = await store.read("projects/app")
        assert doc["name"] == "Renamed"
        assert doc["archivedBy"] == "admin"
        assert doc["userId"] == "u1"

    async def test_concurrent_creates_with_one_name_get_distinct_ids(self, clock):
        store = InMemoryDocumentStore(clock=clock, latency=0.001)
        projects = ProjectRepository(store, clock)
        first, second = await asyncio.gather(projects.create("u1", "App"), projects.create("u2", "App"))
        assert {first.id, second.id} == {"app", "app-1"}
        assert (await projects.get(first.id)).user_id == "u1"
        assert (await projects.get(second.id)).user_id == "u2"


class TestGenerateRoadmap:
    async def test_gate_closed_without_details_or_chat(self, store, clock):
        session = ClientSession(store, Mentor(), clock)
        with pytest.raises(GenerationNotAllowed) as exc_info:
            await session.generate_roadmap(make_project(), [])
        assert exc_info.value.missing_fields == ["description", "tech stack", "timeline/target date"]

    async def test_generates_after_a_user_message(self, store, clock):
        session = ClientSession(store, Mentor(), clock)
        project = make_project()
        await store.add(messages_collection(project.id), {"role": "user", "content": "A habit tracker"})
        roadmap = await session.generate_roadmap(project)
        assert len(roadmap.phases) == 4
        assert roadmap.created_at is not None
        assert await session.roadmaps.get(project.id) == roadmap

    async def test_regeneration_discards_progress_but_keeps_created_at(self, store, clock):
        session = ClientSession(store, Mentor(), clock)
        project = make_project(description="x", tech_stack=["y"], target_date=date(2025, 1, 1))
        first = await session.generate_roadmap(project, [])
        await session.roadmaps.toggle(project.id, "1", "1-1", True)
        second = await session.generate_roadmap(project, [])
        assert second.created_at == first.created_at
        assert find_task(second, "1", "1-1").completed is False

    async def test_store_failure_propagates(self, store, clock):
        session = ClientSession(store, Mentor(), clock)
        history = [ChatMessage(id="m", role=Role.USER, content="hi", created_at=clock.now())]
        with patch.object(store, "_put", side_effect=StoreWriteError("roadmaps/demo", "offline")):
            with pytest.raises(StoreWriteError):
                await session.generate_roadmap(make_project(), history)


async def test_session_views_share_the_guard_and_close_together(store, clock):
    session = ClientSession(store, Mentor(), clock)
    project = make_project()
    first, second = session.chat(project), session.chat(project)
    view = session.roadmap_view(project.id)
    await first.ready()
    await second.ready()
    await settle()
    assert len(await session.history(project.id)) == 1
    assert view.loaded and view.roadmap is None

    session.close()
    await store.add(messages_collection(project.id), {"role": "user", "content": "late"})
    await settle()
    assert len(first.messages) == 1
