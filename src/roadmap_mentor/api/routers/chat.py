"""Chat endpoints: each request mounts a chat view for the duration of the call."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from roadmap_mentor.api.deps import get_project, get_session
from roadmap_mentor.api.schemas import ChatRequest, ChatResponse
from roadmap_mentor.errors import StoreWriteError
from roadmap_mentor.models import ChatMessage, Project
from roadmap_mentor.services.chat import ChatSyncEngine, dedupe_greetings
from roadmap_mentor.services.session import ClientSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/chat", tags=["chat"])

READY_TIMEOUT = 5.0


async def _wait_ready(engine: ChatSyncEngine) -> None:
    try:
        await asyncio.wait_for(engine.ready(), READY_TIMEOUT)
    except TimeoutError:
        logger.warning("Chat log for %s not populated after %.1fs", engine.project.id, READY_TIMEOUT)


@router.get("", response_model=list[ChatMessage])
async def get_chat(project: Project = Depends(get_project), session: ClientSession = Depends(get_session)):
    engine = session.chat(project)
    try:
        await _wait_ready(engine)
        return engine.messages
    finally:
        session.release(engine)


@router.post("", response_model=ChatResponse)
async def post_chat(
    body: ChatRequest,
    project: Project = Depends(get_project),
    session: ClientSession = Depends(get_session),
):
    engine = session.chat(project)
    try:
        await _wait_ready(engine)
        reply = await engine.send(body.message)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except StoreWriteError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    finally:
        session.release(engine)
    return ChatResponse(reply=reply, messages=dedupe_greetings(await session.history(project.id)))
