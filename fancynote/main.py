"""FancyNote API - Main Application."""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fancynote.api.routes import (
    events_router,
    notes_router,
    notifications_router,
    settings_router,
)
from fancynote.config import settings
from fancynote.database import create_db_and_tables


@asynccontextmanager
async def lifespan(_app: FastAPI):
    create_db_and_tables()
    if settings.storage_backend == "local":
        Path(settings.storage_base_path).mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(
    title=settings.app_name,
    description="Note-taking service with AI transcription, structuring and titling",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(events_router)
app.include_router(notes_router)
app.include_router(notifications_router)
app.include_router(settings_router)


@app.get("/health")
async def health_check() -> dict:
    """
    System health check.
    """
    # Database is connected if we reached this point
    return {
        "status": "ok",
        "db_connected": True,
        "storage_backend": settings.storage_backend,
    }
