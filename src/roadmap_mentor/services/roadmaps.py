"""Roadmap persistence and the optimistic roadmap view."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from datetime import datetime

from roadmap_mentor.clock import Clock, SystemClock
from roadmap_mentor.core.progress import compute_progress
from roadmap_mentor.core.tree import apply_toggle, find_task
from roadmap_mentor.errors import RoadmapNotFound, StoreWriteError
from roadmap_mentor.infrastructure.broker import SubscriptionBroker
from roadmap_mentor.infrastructure.store import Document, DocumentStore, Unsubscribe
from roadmap_mentor.models import Progress, Roadmap

logger = logging.getLogger(__name__)

RoadmapHandler = Callable[[Roadmap | None], None]


def roadmap_key(project_id: str) -> str:
    return f"roadmaps/{project_id}"


def _to_roadmap(doc: Document | None) -> Roadmap | None:
    return Roadmap.model_validate(doc) if doc else None


class RoadmapStore:
    """Owns the authoritative roadmap document of each project."""

    def __init__(self, store: DocumentStore, broker: SubscriptionBroker | None = None, clock: Clock | None = None):
        self.store = store
        self.broker = broker or SubscriptionBroker(store)
        self.clock = clock or SystemClock()

    async def get(self, project_id: str) -> Roadmap | None:
        return _to_roadmap(await self.store.read(roadmap_key(project_id)))

    async def replace(self, project_id: str, roadmap: Roadmap) -> Roadmap:
        """Write the whole roadmap, keeping an existing ``created_at`` and stamping ``updated_at``.

        Raises StoreWriteError. The returned value is what was written, not yet
        what the store confirms; the next snapshot is the truth.
        """
        existing = await self.get(project_id)
        now = self.clock.now()
        created_at = existing.created_at if existing and existing.created_at else now
        stamped = roadmap.model_copy(update={"created_at": created_at, "updated_at": now})
        await self.store.write(roadmap_key(project_id), stamped.to_document())
        logger.info("Saved roadmap for project %s (%d phases)", project_id, len(stamped.phases))
        return stamped

    async def toggle(
        self,
        project_id: str,
        phase_id: str,
        task_id: str,
        completed: bool,
        is_sub_task: bool = False,
        parent_task_id: str | None = None,
        *,
        at: datetime | None = None,
    ) -> Roadmap:
        current = await self.get(project_id)
        if current is None:
            raise RoadmapNotFound(project_id)
        updated = apply_toggle(
            current,
            phase_id,
            task_id,
            completed,
            at=at or self.clock.now(),
            parent_task_id=parent_task_id if is_sub_task else None,
        )
        return await self.replace(project_id, updated)

    def subscribe(self, project_id: str, on_snapshot: RoadmapHandler) -> Unsubscribe:
        return self.broker.watch_document(roadmap_key(project_id), lambda doc: on_snapshot(_to_roadmap(doc)))


class SyncState(enum.StrEnum):
    CONFIRMED = "confirmed"
    OPTIMISTIC = "optimistic"


class RoadmapSync:
    """A mounted roadmap view: local tree, optimistic toggles, snapshot wins.

    Every snapshot replaces the local tree unconditionally. A toggle applies
    locally first, then writes; if the write fails and no snapshot has landed
    in the meantime, the pre-toggle tree is restored.
    """

    def __init__(self, roadmaps: RoadmapStore, project_id: str, clock: Clock | None = None):
        self.roadmaps = roadmaps
        self.project_id = project_id
        self.clock = clock or roadmaps.clock
        self.roadmap: Roadmap | None = None
        self.state = SyncState.CONFIRMED
        self.loaded = False
        self.listeners: list[RoadmapHandler] = []
        self._unsubscribe: Unsubscribe | None = None

    @property
    def progress(self) -> Progress:
        return compute_progress(self.roadmap)

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.roadmaps.subscribe(self.project_id, self._on_snapshot)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, roadmap: Roadmap | None) -> None:
        if self._unsubscribe is None:
            return
        self.roadmap = roadmap
        self.state = SyncState.CONFIRMED
        self.loaded = True
        self._notify()

    def _notify(self) -> None:
        for listener in self.listeners:
            listener(self.roadmap)

    async def toggle(
        self,
        phase_id: str,
        task_id: str,
        completed: bool | None = None,
        parent_task_id: str | None = None,
    ) -> Roadmap:
        """Toggle a task (or sub-task when ``parent_task_id`` is set). ``completed=None`` flips it.

        Raises RoadmapNotFound when nothing is loaded and StoreWriteError after rolling back.
        """
        before = self.roadmap
        if before is None:
            raise RoadmapNotFound(self.project_id)
        if completed is None:
            task = find_task(before, phase_id, task_id, parent_task_id)
            if task is None:
                return before
            completed = not task.completed

        at = self.clock.now()
        optimistic = apply_toggle(before, phase_id, task_id, completed, at=at, parent_task_id=parent_task_id)
        if optimistic == before:
            return before
        self.roadmap = optimistic
        self.state = SyncState.OPTIMISTIC
        self._notify()

        try:
            await self.roadmaps.toggle(
                self.project_id,
                phase_id,
                task_id,
                completed,
                is_sub_task=parent_task_id is not None,
                parent_task_id=parent_task_id,
                at=at,
            )
        except (StoreWriteError, RoadmapNotFound):
            if self.roadmap is optimistic:
                self.roadmap = before
                self.state = SyncState.CONFIRMED
                self._notify()
                logger.warning("Toggle of %s/%s failed, restored previous roadmap", phase_id, task_id)
            else:
                logger.warning("Toggle of %s/%s failed after a newer snapshot arrived", phase_id, task_id)
            raise
        return self.roadmap
