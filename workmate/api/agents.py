"""Agent configuration endpoints, including per-agent goals"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.api.deps import ensure_owner, get_current_business, get_db, get_owned_agent
from workmate.db import Agent, AgentGoal, Business
from workmate.errors import NotFound, ValidationError
from workmate.schemas import (
    AgentCreate, AgentResponse, AgentUpdate, GoalCreate, GoalResponse, GoalUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Agents"])


_REQUIRED_FIELDS = {"name", "type", "direction", "is_active", "pilot_mode", "goal_type", "priority"}


def _apply_changes(target, changes: dict) -> None:
    for field, value in changes.items():
        if value is None and field in _REQUIRED_FIELDS:
            raise ValidationError(f"{field} cannot be null")
        if hasattr(value, "value"):
            value = value.value
        setattr(target, field, value)


@router.get("/businesses/{business_id}/agents", response_model=List[AgentResponse])
async def list_agents(
    business_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    ensure_owner(business, business_id)
    result = await db.execute(
        select(Agent).where(Agent.business_id == business_id).order_by(Agent.created_at.desc())
    )
    return result.scalars().all()


@router.post(
    "/businesses/{business_id}/agents",
    response_model=AgentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_agent(
    business_id: str,
    body: AgentCreate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    ensure_owner(business, business_id)
    agent = Agent(
        business_id=business_id,
        name=body.name,
        type=body.type.value,
        direction=body.direction.value,
        initial_message=body.initial_message,
        personality=body.personality,
        is_active=body.is_active,
        pilot_mode=body.pilot_mode.value,
    )
    db.add(agent)
    await db.commit()
    logger.info(f"Agent created: {agent.id} for business {business_id} (pilot={agent.pilot_mode})")
    await db.refresh(agent, attribute_names=["goals"])
    return agent


@router.get("/agents/{agent_id}", response_model=AgentResponse)
async def get_agent(
    agent_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    return await get_owned_agent(db, business, agent_id)


@router.patch("/agents/{agent_id}", response_model=AgentResponse)
async def update_agent(
    agent_id: str,
    body: AgentUpdate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    """Change agent settings. A new pilot mode applies to the next generation call."""
    agent = await get_owned_agent(db, business, agent_id)
    _apply_changes(agent, body.model_dump(exclude_unset=True))
    await db.commit()
    await db.refresh(agent, attribute_names=["goals"])
    return agent


@router.delete("/agents/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(
    agent_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    agent = await get_owned_agent(db, business, agent_id)
    await db.delete(agent)
    await db.commit()
    logger.info(f"Agent deleted: {agent_id}")


# ============ Goals ============

async def _get_owned_goal(db: AsyncSession, business: Business, goal_id: str) -> AgentGoal:
    goal = await db.get(AgentGoal, goal_id)
    if goal is None:
        raise NotFound("Goal not found", goal_id=goal_id)
    await get_owned_agent(db, business, goal.agent_id)
    return goal


@router.get("/agents/{agent_id}/goals", response_model=List[GoalResponse])
async def list_goals(
    agent_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    agent = await get_owned_agent(db, business, agent_id)
    return agent.goals


@router.post(
    "/agents/{agent_id}/goals",
    response_model=GoalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_goal(
    agent_id: str,
    body: GoalCreate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_agent(db, business, agent_id)
    goal = AgentGoal(
        agent_id=agent_id,
        goal_type=body.goal_type.value,
        fields_to_collect=body.fields_to_collect,
        custom_instructions=body.custom_instructions,
        priority=body.priority,
    )
    db.add(goal)
    await db.commit()
    return goal


@router.patch("/goals/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: str,
    body: GoalUpdate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    goal = await _get_owned_goal(db, business, goal_id)
    _apply_changes(goal, body.model_dump(exclude_unset=True))
    await db.commit()
    return goal


@router.delete("/goals/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_goal(
    goal_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    goal = await _get_owned_goal(db, business, goal_id)
    await db.delete(goal)
    await db.commit()
