"""Typed failures surfaced by the store, the views and the mentor."""

from __future__ import annotations


class RoadmapMentorError(Exception):
    """Base class for every error raised by roadmap_mentor."""


class ProjectNotFound(RoadmapMentorError):
    def __init__(self, project_id: str):
        super().__init__(f"Project '{project_id}' not found")
        self.project_id = project_id


class RoadmapNotFound(RoadmapMentorError):
    """Toggle against a project that has no roadmap. Not retried."""

    def __init__(self, project_id: str):
        super().__init__(f"Roadmap not found for project '{project_id}'")
        self.project_id = project_id


class StoreWriteError(RoadmapMentorError):
    """A write was rejected by the document store. Transient; callers may retry."""

    def __init__(self, key: str, reason: str = ""):
        message = f"Write to '{key}' failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.key = key


class SubscriptionError(RoadmapMentorError):
    """A subscription could not be established or broke after it was."""


class IndexUnavailable(SubscriptionError):
    """Ordered query requested on a field the store has no index for."""

    def __init__(self, collection: str, field: str):
        super().__init__(f"No index on '{field}' for collection '{collection}'")
        self.collection = collection
        self.field = field


class GenerationUnavailable(RoadmapMentorError):
    """A mentor backend could not produce output. Absorbed by Mentor's fallbacks."""


class GenerationNotAllowed(RoadmapMentorError):
    """Roadmap generation requested while the generation gate is closed."""

    def __init__(self, project_id: str, missing_fields: list[str]):
        missing = ", ".join(missing_fields) or "nothing"
        super().__init__(
            f"Project '{project_id}' needs more details or a chat message before generating (missing: {missing})"
        )
        self.project_id = project_id
        self.missing_fields = missing_fields
