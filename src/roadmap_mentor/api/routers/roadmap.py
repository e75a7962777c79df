"""Roadmap, generation, toggle and progress endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from roadmap_mentor.api.deps import get_project, get_session
from roadmap_mentor.api.schemas import ToggleRequest
from roadmap_mentor.core.progress import compute_progress
from roadmap_mentor.core.tree import find_task
from roadmap_mentor.errors import GenerationNotAllowed, RoadmapNotFound, StoreWriteError
from roadmap_mentor.models import Progress, Project, Roadmap
from roadmap_mentor.services.session import ClientSession

router = APIRouter(prefix="/projects/{project_id}", tags=["roadmap"])


@router.get("/roadmap", response_model=Roadmap)
async def get_roadmap(project: Project = Depends(get_project), session: ClientSession = Depends(get_session)):
    roadmap = await session.roadmaps.get(project.id)
    if roadmap is None:
        raise HTTPException(status_code=404, detail=str(RoadmapNotFound(project.id)))
    return roadmap


@router.post("/roadmap/generate", response_model=Roadmap, status_code=201)
async def generate_roadmap(project: Project = Depends(get_project), session: ClientSession = Depends(get_session)):
    try:
        return await session.generate_roadmap(project)
    except GenerationNotAllowed as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except StoreWriteError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.post("/roadmap/toggle", response_model=Roadmap)
async def toggle_task(
    body: ToggleRequest,
    project: Project = Depends(get_project),
    session: ClientSession = Depends(get_session),
):
    completed = body.completed
    try:
        if completed is None:
            current = await session.roadmaps.get(project.id)
            if current is None:
                raise RoadmapNotFound(project.id)
            task = find_task(current, body.phase_id, body.task_id, body.parent_task_id)
            if task is None:
                raise HTTPException(status_code=404, detail=f"Task '{body.task_id}' not found")
            completed = not task.completed
        return await session.roadmaps.toggle(
            project.id,
            body.phase_id,
            body.task_id,
            completed,
            is_sub_task=body.parent_task_id is not None,
            parent_task_id=body.parent_task_id,
        )
    except RoadmapNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreWriteError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.get("/progress", response_model=Progress)
async def get_progress(project: Project = Depends(get_project), session: ClientSession = Depends(get_session)):
    return compute_progress(await session.roadmaps.get(project.id))
