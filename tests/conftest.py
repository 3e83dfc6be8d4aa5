"""
Shared fixtures: a throwaway SQLite database per test, fake collaborators
and an ASGI client wired through ``create_app``.
"""

import asyncio
import os
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

# Must be set before workmate modules read their settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RESEND_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
# Retries run without waiting
for _name in ("BATCH_MIN_TIMEOUT", "BATCH_MAX_TIMEOUT", "STREAM_MIN_TIMEOUT", "STREAM_MAX_TIMEOUT"):
    os.environ[_name] = "0"
os.environ["BATCH_RETRIES"] = "1"
os.environ["STREAM_RETRIES"] = "1"

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workmate.config import Settings
from workmate.db import (
    Agent, AgentGoal, Base, Business, Conversation, Message, TrainingData,
)
from workmate.errors import GenerationError
from workmate.main import create_app
from workmate.services.history_store import ConversationLocks
from workmate.services.llm_service import LanguageModel
from workmate.services.notification_service import Notifier
from workmate.services.web_fetch import WebFetcher


class FakeLanguageModel(LanguageModel):
    """Scripted replies; records every call."""

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None, default: str = "Fake reply"):
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[Dict] = []
        self.delay = 0.0

    async def complete(self, system_prompt: str, messages: List[Dict[str, str]], max_tokens: int) -> str:
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": messages,
            "max_tokens": max_tokens,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply


class FailingLanguageModel(LanguageModel):
    async def complete(self, system_prompt, messages, max_tokens):
        raise GenerationError("model unavailable")


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent: List[Dict[str, str]] = []

    async def send_email(self, to: str, subject: str, text: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "text": text})
        return True


class Seeder:
    """Creates rows directly through a session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def business(self, **kwargs) -> Business:
        kwargs.setdefault("name", "Acme Plumbing")
        kwargs.setdefault("slug", f"acme-{os.urandom(4).hex()}")
        business = Business(**kwargs)
        self.session.add(business)
        await self.session.commit()
        return business

    async def agent(self, business: Business, pilot_mode: str = "suggestive", **kwargs) -> Agent:
        kwargs.setdefault("name", "Front Desk")
        kwargs.setdefault("type", "chat")
        agent = Agent(business_id=business.id, pilot_mode=pilot_mode, **kwargs)
        self.session.add(agent)
        await self.session.commit()
        await self.session.refresh(agent, attribute_names=["goals"])
        return agent

    async def goal(self, agent: Agent, **kwargs) -> AgentGoal:
        kwargs.setdefault("goal_type", "collect_info")
        goal = AgentGoal(agent_id=agent.id, **kwargs)
        self.session.add(goal)
        await self.session.commit()
        await self.session.refresh(agent, attribute_names=["goals"])
        return goal

    async def conversation(self, business: Business, agent: Optional[Agent] = None, **kwargs) -> Conversation:
        kwargs.setdefault("contact_name", "Jamie")
        kwargs.setdefault("channel", "webchat")
        conversation = Conversation(
            business_id=business.id,
            agent_id=agent.id if agent else None,
            **kwargs,
        )
        self.session.add(conversation)
        await self.session.commit()
        return conversation

    async def messages(self, conversation: Conversation, *turns) -> List[Message]:
        """``turns`` are ``(role, content)`` pairs appended in order."""
        rows = []
        for seq, (role, content) in enumerate(turns, 1):
            row = Message(conversation_id=conversation.id, seq=seq, role=role, content=content)
            self.session.add(row)
            rows.append(row)
        await self.session.commit()
        return rows

    async def training(self, business: Business, agent: Optional[Agent] = None, **kwargs) -> TrainingData:
        kwargs.setdefault("type", "qa_pair")
        kwargs.setdefault("created_at", datetime.utcnow())
        row = TrainingData(business_id=business.id, agent_id=agent.id if agent else None, **kwargs)
        self.session.add(row)
        await self.session.commit()
        return row


def page_transport(pages: Dict[str, Union[str, int, Callable]]) -> httpx.MockTransport:
    """Serve ``pages[url]``: HTML text, an error status code, or a callable raising."""

    def handler(request: httpx.Request) -> httpx.Response:
        page = pages.get(str(request.url), 404)
        if callable(page):
            return page(request)
        if isinstance(page, int):
            return httpx.Response(page, text="error")
        return httpx.Response(200, text=page, headers={"content-type": "text/html"})

    return httpx.MockTransport(handler)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/workmate-test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(db_session) -> Seeder:
    return Seeder(db_session)


@pytest.fixture
def llm() -> FakeLanguageModel:
    return FakeLanguageModel()


@pytest.fixture
def locks() -> ConversationLocks:
    return ConversationLocks()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def pages() -> Dict[str, Union[str, int, Callable]]:
    return {}


@pytest.fixture
def fetcher(pages) -> WebFetcher:
    return WebFetcher(Settings(), transport=page_transport(pages))


@pytest.fixture
def app(session_factory, llm, fetcher, notifier):
    return create_app(
        language_model=llm,
        web_fetcher=fetcher,
        notifier=notifier,
        session_factory=session_factory,
    )


@pytest_asyncio.fixture
async def client(app):
    """Create an async test client"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def owner(client: AsyncClient) -> Dict:
    """Sign up a business through the API; returns its body plus auth headers."""
    response = await client.post("/api/businesses", json={
        "name": "Acme Plumbing",
        "email": "owner@acme.test",
    })
    assert response.status_code == 201
    body = response.json()
    body["headers"] = {"X-Owner-Token": body["owner_token"]}
    return body
