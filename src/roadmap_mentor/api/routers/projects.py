"""Project CRUD endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from roadmap_mentor.api.deps import get_project, get_session
from roadmap_mentor.api.schemas import ProjectCreate, ProjectUpdate
from roadmap_mentor.errors import StoreWriteError
from roadmap_mentor.models import Project
from roadmap_mentor.services.session import ClientSession

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=list[Project])
async def list_projects_endpoint(user_id: str = "local", session: ClientSession = Depends(get_session)):
    return await session.projects.list_for_user(user_id)


@router.post("", response_model=Project, status_code=201)
async def create_project_endpoint(body: ProjectCreate, session: ClientSession = Depends(get_session)):
    try:
        return await session.projects.create(
            body.user_id,
            body.name,
            domain=body.domain,
            description=body.description,
            team_size=body.team_size,
            target_date=body.target_date,
            tech_stack=body.tech_stack,
        )
    except StoreWriteError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.get("/{project_id}", response_model=Project)
async def get_project_endpoint(project: Project = Depends(get_project)):
    return project


@router.patch("/{project_id}", response_model=Project)
async def update_project_endpoint(
    body: ProjectUpdate,
    project: Project = Depends(get_project),
    session: ClientSession = Depends(get_session),
):
    try:
        return await session.projects.update(project.id, **body.model_dump(exclude_unset=True, exclude_none=True))
    except StoreWriteError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
