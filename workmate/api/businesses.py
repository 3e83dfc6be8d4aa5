"""Business (tenant) endpoints: signup, profile, dashboard stats and usage"""

import logging
import re
import secrets
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.api.deps import ensure_owner, get_current_business, get_db
from workmate.config import settings
from workmate.db import Agent, Business, Conversation, ConversationStatus
from workmate.schemas import (
    BusinessCreate, BusinessCreated, BusinessResponse, BusinessStats,
    CreditLimitResponse, CreditLimitUpdate, UsageLogResponse,
)
from workmate.services.usage_metering import UsageMeter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Businesses"])


def generate_slug(name: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{base}-{secrets.token_hex(4)}"


@router.post("/businesses", response_model=BusinessCreated, status_code=status.HTTP_201_CREATED)
async def create_business(body: BusinessCreate, db: AsyncSession = Depends(get_db)):
    """Sign up a new business. The returned owner token authenticates every later call."""
    business = Business(
        name=body.name,
        slug=generate_slug(body.name),
        email=body.email,
        phone=body.phone,
        website=body.website,
        ai_credits_remaining=settings.default_ai_credits,
    )
    db.add(business)
    await db.commit()
    logger.info(f"Business created: {business.id} ({business.slug})")
    return business


@router.get("/me", response_model=BusinessResponse)
async def get_me(business: Business = Depends(get_current_business)):
    return business


@router.get("/businesses/{business_id}", response_model=BusinessResponse)
async def get_business(business_id: str, business: Business = Depends(get_current_business)):
    ensure_owner(business, business_id)
    return business


@router.get("/businesses/{business_id}/stats", response_model=BusinessStats)
async def get_stats(
    business_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    ensure_owner(business, business_id)

    agent_count = await db.scalar(
        select(func.count(Agent.id)).where(Agent.business_id == business_id)
    )
    conversation_count = await db.scalar(
        select(func.count(Conversation.id)).where(Conversation.business_id == business_id)
    )
    active_count = await db.scalar(
        select(func.count(Conversation.id)).where(
            Conversation.business_id == business_id,
            Conversation.status == ConversationStatus.ACTIVE.value,
        )
    )
    remaining = await UsageMeter(db).remaining_credits(business_id)

    return BusinessStats(
        ai_credits_remaining=remaining,
        subscription_tier=business.subscription_tier,
        agent_count=agent_count or 0,
        conversation_count=conversation_count or 0,
        active_conversation_count=active_count or 0,
    )


@router.get("/businesses/{business_id}/usage", response_model=List[UsageLogResponse])
async def get_usage(
    business_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    """The 50 most recent usage entries, newest first."""
    ensure_owner(business, business_id)
    return await UsageMeter(db).recent(business_id)


@router.post("/businesses/{business_id}/usage/limit", response_model=CreditLimitResponse)
async def set_usage_limit(
    business_id: str,
    body: CreditLimitUpdate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    ensure_owner(business, business_id)
    new_limit = await UsageMeter(db).set_credit_limit(business_id, body.limit)
    return CreditLimitResponse(new_limit=new_limit)
