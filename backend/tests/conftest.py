"""Shared test fixtures for backend tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from simplechat.core.config import settings
from simplechat.core.database import get_session, init_db
from simplechat.models.conversation import ChatMessage, Conversation, MessageRole
from simplechat.models.user import User
from simplechat.services.chat import ChatService
from simplechat.services.llm.base import BaseLLMProvider, CompletionStream, StreamChunk, TokenUsage

USER_ID = "U1"
OTHER_USER_ID = "U2"


class FakeStream(CompletionStream):
    """Replays scripted chunks; stops early once aborted."""

    def __init__(self, chunks: list[StreamChunk], error: Exception | None = None, delay: float = 0.0):
        self.chunks = chunks
        self.error = error
        self.delay = delay
        self.aborted = False
        self.consumed = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            if self.aborted:
                return
            if self.delay:
                await asyncio.sleep(self.delay)
            self.consumed += 1
            yield chunk
        if self.error:
            raise self.error

    async def abort(self) -> None:
        self.aborted = True


class FakeLLM(BaseLLMProvider):
    def __init__(self):
        self.chunks = [
            StreamChunk(delta="Hello"),
            StreamChunk(delta=" from"),
            StreamChunk(delta=" model"),
        ]
        self.error: Exception | None = None  # raised after the chunks
        self.open_error: Exception | None = None  # raised instead of opening the stream
        self.delay = 0.0
        self.calls: list[tuple[str, list]] = []
        self.streams: list[FakeStream] = []

    async def stream(self, model, messages):
        self.calls.append((model, messages))
        if self.open_error:
            raise self.open_error
        stream = FakeStream(list(self.chunks), self.error, self.delay)
        self.streams.append(stream)
        return stream


def usage_chunk(prompt: int, completion: int, total: int) -> StreamChunk:
    return StreamChunk(delta="", usage=TokenUsage(prompt, completion, total))


@pytest.fixture
def engine():
    # In-memory SQLite with StaticPool so all connections (including threads) share one DB
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def service(engine, fake_llm, upload_dir):
    return ChatService(
        engine=engine,
        llm=fake_llm,
        upload_dir=upload_dir,
        default_model="free-router",
        title_preview_length=50,
    )


@pytest.fixture
def client(engine, fake_llm, upload_dir, monkeypatch):
    """FastAPI TestClient authenticated as USER_ID, with all external deps patched."""
    monkeypatch.setattr(settings, "upload_dir", upload_dir)
    monkeypatch.setattr(settings, "default_model", "free-router")
    with (
        patch("simplechat.main.engine", engine),
        patch("simplechat.main.create_llm_provider", return_value=fake_llm),
    ):
        from simplechat.main import app

        def override_session():
            with Session(engine) as session:
                yield session

        app.dependency_overrides[get_session] = override_session
        with TestClient(app, headers={"X-User-Id": USER_ID}) as c:
            yield c
        app.dependency_overrides.clear()


def seed_user(engine, user_id: str = USER_ID, email: str | None = None) -> str:
    with Session(engine) as session:
        session.add(User(id=user_id, email=email or f"{user_id.lower()}@example.com"))
        session.commit()
    return user_id


def seed_conversation(engine, user_id: str = USER_ID, title="New Chat", model="free-router", messages=None) -> str:
    """Insert a conversation + messages directly into the test DB. Messages are (role, content) pairs."""
    with Session(engine) as session:
        conv = Conversation(user_id=user_id, title=title, model=model)
        session.add(conv)
        session.commit()
        session.refresh(conv)

        if messages:
            start = datetime.now(timezone.utc) - timedelta(minutes=len(messages))
            for i, (role, content) in enumerate(messages):
                session.add(
                    ChatMessage(
                        conversation_id=conv.id,
                        role=MessageRole(role),
                        content=content,
                        created_at=start + timedelta(seconds=i),
                    )
                )
            session.commit()

        return conv.id


def get_messages(engine, conversation_id: str) -> list[ChatMessage]:
    from sqlmodel import select

    with Session(engine) as session:
        return list(
            session.exec(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .order_by(ChatMessage.created_at)
            ).all()
        )


def get_conversation_row(engine, conversation_id: str) -> Conversation | None:
    with Session(engine) as session:
        return session.get(Conversation, conversation_id)


def get_user_row(engine, user_id: str = USER_ID) -> User | None:
    with Session(engine) as session:
        return session.get(User, user_id)
