"""One connected client: its views, its bootstrap guard and roadmap generation."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from roadmap_mentor.clock import Clock
from roadmap_mentor.core.gate import can_generate, check_project_details
from roadmap_mentor.core.tree import normalize_roadmap
from roadmap_mentor.errors import GenerationNotAllowed, IndexUnavailable
from roadmap_mentor.infrastructure.broker import SubscriptionBroker
from roadmap_mentor.infrastructure.store import DocumentStore, sort_documents
from roadmap_mentor.models import ChatMessage, Project, Roadmap
from roadmap_mentor.services.chat import BootstrapGuard, ChatSyncEngine
from roadmap_mentor.services.mentor import Mentor
from roadmap_mentor.services.projects import ProjectRepository, messages_collection
from roadmap_mentor.services.roadmaps import RoadmapStore, RoadmapSync

logger = logging.getLogger(__name__)


class ClientSession:
    def __init__(self, store: DocumentStore, mentor: Mentor | None = None, clock: Clock | None = None):
        self.store = store
        self.mentor = mentor or Mentor()
        self.clock = clock or store.clock
        self.guard = BootstrapGuard()
        self.broker = SubscriptionBroker(store)
        self.roadmaps = RoadmapStore(store, self.broker, self.clock)
        self.projects = ProjectRepository(store, self.clock)
        self._views: list[RoadmapSync | ChatSyncEngine] = []

    def roadmap_view(self, project_id: str) -> RoadmapSync:
        view = RoadmapSync(self.roadmaps, project_id, self.clock)
        view.start()
        self._views.append(view)
        return view

    def chat(self, project: Project) -> ChatSyncEngine:
        engine = ChatSyncEngine(self.store, project, self.guard, self.mentor, self.broker, self.clock)
        engine.start()
        self._views.append(engine)
        return engine

    def release(self, view: RoadmapSync | ChatSyncEngine) -> None:
        view.stop()
        if view in self._views:
            self._views.remove(view)

    def close(self) -> None:
        for view in self._views:
            view.stop()
        self._views.clear()

    async def history(self, project_id: str) -> list[ChatMessage]:
        collection = messages_collection(project_id)
        try:
            docs = await self.store.query(collection, order_by="createdAt")
        except IndexUnavailable:
            docs = sort_documents(await self.store.query(collection), "createdAt")
        return [ChatMessage.model_validate(d) for d in docs]

    async def generate_roadmap(self, project: Project, history: Sequence[ChatMessage] | None = None) -> Roadmap:
        """Generate and save a roadmap, replacing any existing one.

        Prior completion state is discarded; only ``created_at`` survives.
        Raises GenerationNotAllowed when the project lacks details and nobody has chatted yet.
        """
        if history is None:
            history = await self.history(project.id)
        if not can_generate(project, history):
            raise GenerationNotAllowed(project.id, check_project_details(project).missing_fields)
        generated = await self.mentor.generate_roadmap(project, history)
        roadmap = normalize_roadmap(generated, self.clock.now())
        saved = await self.roadmaps.replace(project.id, roadmap)
        logger.info("Roadmap generated for project %s", project.id)
        return saved
