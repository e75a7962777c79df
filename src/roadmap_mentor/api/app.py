"""FastAPI application assembly."""

from __future__ import annotations

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from roadmap_mentor.api.routers import chat, projects, roadmap
from roadmap_mentor.api.schemas import HealthResponse
from roadmap_mentor.config import load_settings
from roadmap_mentor.infrastructure.store import DocumentStore, SqliteDocumentStore
from roadmap_mentor.services.mentor import Mentor, build_mentor
from roadmap_mentor.services.session import ClientSession

load_dotenv()


def create_app(store: DocumentStore | None = None, mentor: Mentor | None = None) -> FastAPI:
    """Build the app. Without a store, a SQLite store at the configured path is opened for the app's lifetime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned: SqliteDocumentStore | None = None
        active_store, active_mentor = store, mentor
        if active_store is None or active_mentor is None:
            settings = load_settings()
            if active_store is None:
                settings.ensure_dirs()
                owned = active_store = SqliteDocumentStore(settings.db_path)
            if active_mentor is None:
                active_mentor = build_mentor(settings)
        app.state.session = ClientSession(active_store, active_mentor)
        try:
            yield
        finally:
            app.state.session.close()
            if owned is not None:
                owned.close()

    app = FastAPI(title="Roadmap Mentor API", version="0.1.0", lifespan=lifespan)

    app.include_router(projects.router)
    app.include_router(roadmap.router)
    app.include_router(chat.router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health():
        return HealthResponse(status="ok", provider=app.state.session.mentor.backend.name)

    return app


app = create_app()
