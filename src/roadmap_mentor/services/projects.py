"""Project records kept in the document store."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date
from typing import Any

from roadmap_mentor.clock import Clock, SystemClock
from roadmap_mentor.errors import IndexUnavailable, ProjectNotFound
from roadmap_mentor.infrastructure.store import DocumentStore, sort_documents
from roadmap_mentor.models import Project

logger = logging.getLogger(__name__)

PROJECTS = "projects"


def project_key(project_id: str) -> str:
    return f"{PROJECTS}/{project_id}"


def messages_collection(project_id: str) -> str:
    return f"{PROJECTS}/{project_id}/messages"


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "project"


class ProjectRepository:
    def __init__(self, store: DocumentStore, clock: Clock | None = None):
        self.store = store
        self.clock = clock or SystemClock()
        self._create_lock = asyncio.Lock()

    async def create(
        self,
        user_id: str,
        name: str,
        *,
        domain: str | None = None,
        description: str | None = None,
        team_size: int | None = None,
        target_date: date | None = None,
        tech_stack: list[str] | None = None,
    ) -> Project:
        slug = _slugify(name)
        # Held from the id check to the write so concurrent creates never pick the same id
        async with self._create_lock:
            existing = {doc.get("id") for doc in await self.store.query(PROJECTS)}

            # Ensure unique id
            project_id = slug
            counter = 1
            while project_id in existing:
                project_id = f"{slug}-{counter}"
                counter += 1

            now = self.clock.now()
            project = Project(
                id=project_id,
                user_id=user_id,
                name=name,
                domain=domain,
                description=description,
                team_size=team_size,
                target_date=target_date,
                tech_stack=tech_stack or [],
                created_at=now,
                updated_at=now,
            )
            await self.store.write(project_key(project_id), project.to_document())
        logger.info("Created project %s for user %s", project_id, user_id)
        return project

    async def list_for_user(self, user_id: str) -> list[Project]:
        """Newest first. Sorted client-side when the store cannot order the query."""
        where = {"userId": user_id}
        try:
            docs = await self.store.query(PROJECTS, where=where, order_by="createdAt", descending=True)
        except IndexUnavailable as e:
            logger.warning("Falling back to client-side project ordering: %s", e)
            docs = sort_documents(await self.store.query(PROJECTS, where=where), "createdAt", descending=True)
        return [Project.model_validate(d) for d in docs]

    async def get(self, project_id: str) -> Project:
        doc = await self.store.read(project_key(project_id))
        if doc is None:
            raise ProjectNotFound(project_id)
        return Project.model_validate(doc)

    async def update(self, project_id: str, **fields: Any) -> Project:
        """Update attributes by their Python names. Raises ProjectNotFound."""
        current = await self.get(project_id)
        updated = current.model_copy(update={**fields, "updated_at": self.clock.now()})
        # Round-trip through validation so field types stay consistent
        updated = Project.model_validate(updated.to_document())
        # Merge only the changed fields so keys this model does not know survive
        changes = updated.model_dump(mode="json", by_alias=True, include={*fields, "updated_at"})
        await self.store.update(project_key(project_id), changes)
        logger.info("Updated project %s (%s)", project_id, ", ".join(sorted(fields)) or "touch")
        return updated

    async def update_details(
        self,
        project_id: str,
        *,
        description: str | None = None,
        tech_stack: list[str] | None = None,
        target_date: date | None = None,
    ) -> Project:
        """Fill in the fields the generation gate looks at; ``None`` leaves a field untouched."""
        fields: dict[str, Any] = {}
        if description is not None:
            fields["description"] = description
        if tech_stack is not None:
            fields["tech_stack"] = [t.strip() for t in tech_stack if t.strip()]
        if target_date is not None:
            fields["target_date"] = target_date
        return await self.update(project_id, **fields)
