"""Pytest configuration and fixtures."""

import json
from collections.abc import Generator
from pathlib import Path
from typing import cast

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from fancynote.api.deps import get_db, get_intake, get_pipeline, get_store
from fancynote.config import PipelineConfig
from fancynote.main import app
from fancynote.models import Note, User, UserSettings
from fancynote.services.auth_service import create_access_token
from fancynote.services.intake_service import NoteIntake
from fancynote.services.scraping_service import ScrapeResult
from fancynote.services.storage_service import LocalAttachmentStore
from fancynote.tasks.processing_tasks import EnrichmentPipeline
from fancynote.utils.events import EventManager
from fancynote.utils.exceptions import TranscriptionError

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite://"


class FakeTranscriber:
    """Returns a transcript derived from the file name; fails for listed names."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.failing: set[str] = set()

    async def transcribe(self, file_path, language):
        name = Path(file_path).name
        self.calls.append((name, language))
        if any(name.endswith(fail) for fail in self.failing):
            raise TranscriptionError("provider unavailable")
        return f"transcript of {name}"


class FakeChat:
    """Chat collaborator recording every message list it receives."""

    def __init__(self):
        self.calls: list[dict] = []
        self.answer = "Structured note"
        self.error: Exception | None = None

    async def complete_with_fallback(self, models, messages, api_key=None):
        self.calls.append({"models": models, "messages": messages, "api_key": api_key})
        if self.error is not None:
            raise self.error
        return self.answer


class FakeMetadata:
    def __init__(self):
        self.title: str | None = "Generated Title"
        self.excerpt: str | None = "A short generated excerpt."
        self.title_error: Exception | None = None
        self.excerpt_error: Exception | None = None
        self.calls: list[tuple[str, str, str]] = []

    async def generate_title(self, content, language):
        self.calls.append(("title", content, language))
        if self.title_error is not None:
            raise self.title_error
        return self.title

    async def generate_excerpt(self, content, language):
        self.calls.append(("excerpt", content, language))
        if self.excerpt_error is not None:
            raise self.excerpt_error
        return self.excerpt


class FakeScraper:
    def __init__(self):
        self.results: dict[str, ScrapeResult] = {}

    async def scrape(self, url):
        return self.results.get(url, ScrapeResult(success=False, error="Unreachable"))


class RecordingPipeline:
    """Stands in for the enrichment pipeline in API tests."""

    def __init__(self):
        self.runs: list[tuple] = []

    async def run(self, note_id, user_id, ai_settings_raw, process_type):
        self.runs.append((note_id, user_id, ai_settings_raw, process_type))


@pytest.fixture(name="engine")
def engine_fixture():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine


@pytest.fixture(name="session")
def session_fixture(engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="store_root")
def store_root_fixture(tmp_path: Path) -> Path:
    root = tmp_path / "store"
    root.mkdir()
    return root


@pytest.fixture(name="put_file")
def put_file_fixture(store_root: Path):
    """Place a file directly in the local attachment store."""

    def put(path: str, data: bytes) -> str:
        target = store_root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    return put


@pytest.fixture(name="pipeline_config")
def pipeline_config_fixture() -> PipelineConfig:
    return PipelineConfig(
        public_base_url="https://notes.example.com",
        storage_backend="local",
        default_llm_model="google/default-model",
        fallback_llm_models=["google/fallback-model"],
        transcription_language="pl",
    )


@pytest.fixture(name="transcriber")
def transcriber_fixture() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture(name="chat")
def chat_fixture() -> FakeChat:
    return FakeChat()


@pytest.fixture(name="metadata")
def metadata_fixture() -> FakeMetadata:
    return FakeMetadata()


@pytest.fixture(name="scraper")
def scraper_fixture() -> FakeScraper:
    return FakeScraper()


@pytest.fixture(name="events")
def events_fixture() -> EventManager:
    return EventManager()


@pytest.fixture(name="pipeline")
def pipeline_fixture(
    engine, store_root, pipeline_config, transcriber, chat, metadata, events
) -> EnrichmentPipeline:
    """Enrichment pipeline wired to the test database and local store."""
    return EnrichmentPipeline(
        session_factory=lambda: Session(engine),
        config=pipeline_config,
        store_factory=lambda: LocalAttachmentStore(store_root),
        transcriber=transcriber,
        chat=chat,
        metadata=metadata,
        events=events,
        token_factory=lambda user_id: f"link-token-{user_id}",
    )


@pytest.fixture(name="intake")
def intake_fixture(store_root, pipeline_config, transcriber, chat, scraper) -> NoteIntake:
    return NoteIntake(
        config=pipeline_config,
        store_factory=lambda: LocalAttachmentStore(store_root),
        transcriber=transcriber,
        chat=chat,
        scraper=scraper,
        token_factory=lambda user_id: f"link-token-{user_id}",
    )


@pytest.fixture(name="recording_pipeline")
def recording_pipeline_fixture() -> RecordingPipeline:
    return RecordingPipeline()


@pytest.fixture(name="client")
def client_fixture(
    session: Session, store_root: Path, intake: NoteIntake, recording_pipeline
) -> Generator[TestClient, None, None]:
    """Create a test client with database, storage and collaborator overrides."""

    def get_session_override() -> Generator[Session, None, None]:
        yield session

    app.dependency_overrides[get_db] = get_session_override
    app.dependency_overrides[get_store] = lambda: LocalAttachmentStore(store_root)
    app.dependency_overrides[get_intake] = lambda: intake
    app.dependency_overrides[get_pipeline] = lambda: recording_pipeline
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="test_user")
def test_user_fixture(session: Session) -> User:
    """Create a test user with a few credits and an API key configured."""
    user = User(username="testuser", project_credits=3, api_token="integration-token")
    session.add(user)
    session.commit()
    session.refresh(user)

    settings = UserSettings(
        user_id=cast(int, user.id),
        ai_settings=json.dumps(
            {
                "apiKey": "user-key",
                "model": "anthropic/some-model",
                "systemPrompt": "You organize notes.",
                "language": "en",
            }
        ),
    )
    session.add(settings)
    session.commit()

    return user


@pytest.fixture(name="other_user")
def other_user_fixture(session: Session) -> User:
    user = User(username="someoneelse")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="auth_headers")
def auth_headers_fixture(test_user: User) -> dict[str, str]:
    """Create authentication headers for test user."""
    token = create_access_token(cast(int, test_user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(name="test_note")
def test_note_fixture(session: Session, test_user: User) -> Note:
    """Create a test note with text only."""
    note = Note(
        user_id=cast(int, test_user.id),
        text="Buy milk, call the plumber about the kitchen sink.",
    )
    session.add(note)
    session.commit()
    session.refresh(note)
    return note
