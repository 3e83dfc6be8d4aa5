"""Shared FastAPI dependencies: sessions, collaborators and owner authentication"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.db import Agent, Business, Conversation, TrainingData
from workmate.errors import NotFound, Unauthorized
from workmate.services.history_store import ConversationLocks
from workmate.services.llm_service import LanguageModel
from workmate.services.notification_service import Notifier
from workmate.services.web_fetch import WebFetcher


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """One session per request from the app's session factory."""
    async with request.app.state.session_factory() as session:
        yield session


def get_language_model(request: Request) -> LanguageModel:
    return request.app.state.language_model


def get_web_fetcher(request: Request) -> WebFetcher:
    return request.app.state.web_fetcher


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_locks(request: Request) -> ConversationLocks:
    return request.app.state.conversation_locks


async def get_current_business(
    x_owner_token: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Business:
    """Resolve the calling tenant from its ``X-Owner-Token`` header."""
    if not x_owner_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing owner token",
        )

    result = await db.execute(select(Business).where(Business.owner_token == x_owner_token))
    business = result.scalars().first()
    if business is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid owner token",
        )
    return business


def ensure_owner(business: Business, business_id: str) -> None:
    if business.id != business_id:
        raise Unauthorized("Not authorized for this business", business_id=business_id)


async def get_owned_agent(db: AsyncSession, business: Business, agent_id: str) -> Agent:
    agent = await db.get(Agent, agent_id)
    if agent is None:
        raise NotFound("Agent not found", agent_id=agent_id)
    ensure_owner(business, agent.business_id)
    return agent


async def get_owned_conversation(
    db: AsyncSession,
    business: Business,
    conversation_id: str,
) -> Conversation:
    conversation = await db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFound("Conversation not found", conversation_id=conversation_id)
    ensure_owner(business, conversation.business_id)
    return conversation


async def get_owned_training(db: AsyncSession, business: Business, training_id: str) -> TrainingData:
    row = await db.get(TrainingData, training_id)
    if row is None:
        raise NotFound("Training data not found", training_id=training_id)
    ensure_owner(business, row.business_id)
    return row
