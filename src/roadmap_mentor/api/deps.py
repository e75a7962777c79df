"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from roadmap_mentor.errors import ProjectNotFound
from roadmap_mentor.models import Project
from roadmap_mentor.services.session import ClientSession


def get_session(request: Request) -> ClientSession:
    return request.app.state.session


async def get_project(project_id: str, session: ClientSession = Depends(get_session)) -> Project:
    try:
        return await session.projects.get(project_id)
    except ProjectNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
