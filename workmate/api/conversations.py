"""Conversation inbox endpoints: list, inspect, open, update and manual replies"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.api.deps import (
    ensure_owner, get_current_business, get_db, get_locks, get_owned_agent, get_owned_conversation,
)
from workmate.db import Business, Channel, Conversation, ConversationStatus, MessageRole
from workmate.errors import ValidationError
from workmate.schemas import (
    ConversationCreate, ConversationDetail, ConversationResponse, ConversationUpdate,
    MessageCreate, MessageResponse,
)
from workmate.services.history_store import ConversationHistoryStore, ConversationLocks

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Conversations"])

# Allowed status moves; resolved is terminal
STATUS_TRANSITIONS = {
    ConversationStatus.ACTIVE.value: {ConversationStatus.RESOLVED.value, ConversationStatus.TRANSFERRED.value},
    ConversationStatus.TRANSFERRED.value: {ConversationStatus.RESOLVED.value},
    ConversationStatus.RESOLVED.value: set(),
}


def check_status_transition(current: str, new: str) -> None:
    if current == new:
        return
    if new not in STATUS_TRANSITIONS.get(current, set()):
        raise ValidationError(f"Cannot change conversation status from {current} to {new}")


@router.get("/businesses/{business_id}/conversations", response_model=List[ConversationResponse])
async def list_conversations(
    business_id: str,
    channel: Optional[Channel] = Query(None),
    status_filter: Optional[ConversationStatus] = Query(None, alias="status"),
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    """Most recently updated first."""
    ensure_owner(business, business_id)
    stmt = select(Conversation).where(Conversation.business_id == business_id)
    if channel is not None:
        stmt = stmt.where(Conversation.channel == channel.value)
    if status_filter is not None:
        stmt = stmt.where(Conversation.status == status_filter.value)
    result = await db.execute(stmt.order_by(Conversation.updated_at.desc()))
    return result.scalars().all()


@router.post(
    "/businesses/{business_id}/conversations",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    business_id: str,
    body: ConversationCreate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    ensure_owner(business, business_id)
    if not (body.contact_name or body.contact_email or body.contact_phone):
        raise ValidationError("At least one of contact_name, contact_email or contact_phone is required")
    if body.agent_id is not None:
        await get_owned_agent(db, business, body.agent_id)

    conversation = Conversation(
        business_id=business_id,
        agent_id=body.agent_id,
        channel=body.channel.value,
        contact_name=body.contact_name,
        contact_email=body.contact_email,
        contact_phone=body.contact_phone,
        status=ConversationStatus.ACTIVE.value,
    )
    db.add(conversation)
    await db.commit()
    logger.info(f"Conversation created: {conversation.id} ({conversation.channel})")
    return conversation


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    locks: ConversationLocks = Depends(get_locks),
):
    conversation = await get_owned_conversation(db, business, conversation_id)
    messages = await ConversationHistoryStore(db, locks).recent_history(conversation_id)
    detail = ConversationDetail.model_validate(conversation)
    detail.messages = [MessageResponse.model_validate(m) for m in messages]
    return detail


@router.patch("/conversations/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: str,
    body: ConversationUpdate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    conversation = await get_owned_conversation(db, business, conversation_id)
    changes = body.model_dump(exclude_unset=True)

    if "status" in changes:
        if changes["status"] is None:
            raise ValidationError("status cannot be null")
        changes["status"] = changes["status"].value
        check_status_transition(conversation.status, changes["status"])
    if changes.get("sentiment") is not None:
        changes["sentiment"] = changes["sentiment"].value

    for field, value in changes.items():
        setattr(conversation, field, value)
    await db.commit()
    return conversation


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    body: MessageCreate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    locks: ConversationLocks = Depends(get_locks),
):
    """Send a reply written by a human operator."""
    await get_owned_conversation(db, business, conversation_id)
    return await ConversationHistoryStore(db, locks).append(
        conversation_id,
        MessageRole.AGENT.value,
        body.content,
        auto_generated=False,
    )
