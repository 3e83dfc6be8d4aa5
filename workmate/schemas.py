"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field

from workmate.db import (
    AgentDirection, AgentType, Channel, ConversationStatus, GoalType, PilotMode, Sentiment,
)


class StrictModel(BaseModel):
    """Request bodies reject unknown fields."""

    class Config:
        extra = "forbid"


# ============ Business Schemas ============

class BusinessCreate(StrictModel):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None


class BusinessResponse(BaseModel):
    id: str
    name: str
    slug: str
    email: Optional[str]
    phone: Optional[str]
    website: Optional[str]
    subscription_tier: str
    ai_credits_remaining: int
    notifications_enabled: bool
    created_at: datetime

    class Config:
        from_attributes = True


class BusinessCreated(BusinessResponse):
    owner_token: str


class BusinessStats(BaseModel):
    ai_credits_remaining: int
    subscription_tier: str
    agent_count: int
    conversation_count: int
    active_conversation_count: int


class UsageLogResponse(BaseModel):
    id: str
    type: str
    quantity: int
    credits_used: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class UsageSummary(BaseModel):
    ai_credits_remaining: int
    logs: List[UsageLogResponse]


class CreditLimitUpdate(StrictModel):
    limit: int = Field(ge=0)


class CreditLimitResponse(BaseModel):
    success: bool = True
    new_limit: int


# ============ Agent Schemas ============

class AgentCreate(StrictModel):
    name: str = Field(min_length=1, max_length=255)
    type: AgentType
    direction: AgentDirection = AgentDirection.INBOUND
    initial_message: Optional[str] = None
    personality: Optional[str] = None
    is_active: bool = True
    pilot_mode: PilotMode = PilotMode.SUGGESTIVE


class AgentUpdate(StrictModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[AgentType] = None
    direction: Optional[AgentDirection] = None
    initial_message: Optional[str] = None
    personality: Optional[str] = None
    is_active: Optional[bool] = None
    pilot_mode: Optional[PilotMode] = None


class GoalCreate(StrictModel):
    goal_type: GoalType
    fields_to_collect: Optional[List[str]] = None
    custom_instructions: Optional[str] = None
    priority: int = 0


class GoalUpdate(StrictModel):
    goal_type: Optional[GoalType] = None
    fields_to_collect: Optional[List[str]] = None
    custom_instructions: Optional[str] = None
    priority: Optional[int] = None


class GoalResponse(BaseModel):
    id: str
    agent_id: str
    goal_type: str
    fields_to_collect: Optional[List[str]]
    custom_instructions: Optional[str]
    priority: int

    class Config:
        from_attributes = True


class AgentResponse(BaseModel):
    id: str
    business_id: str
    name: str
    type: str
    direction: str
    initial_message: Optional[str]
    personality: Optional[str]
    is_active: bool
    pilot_mode: str
    created_at: datetime
    goals: List[GoalResponse] = []

    class Config:
        from_attributes = True


# ============ Conversation Schemas ============

class ConversationCreate(StrictModel):
    agent_id: Optional[str] = None
    channel: Channel = Channel.WEBCHAT
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class ConversationUpdate(StrictModel):
    """Only these fields may be changed after creation."""
    status: Optional[ConversationStatus] = None
    sentiment: Optional[Sentiment] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class MessageCreate(StrictModel):
    content: str = Field(min_length=1)


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    seq: int
    role: str
    content: str
    audio_url: Optional[str]
    was_auto_generated: bool
    was_approved: Optional[bool]
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationResponse(BaseModel):
    id: str
    business_id: str
    agent_id: Optional[str]
    channel: str
    contact_name: Optional[str]
    contact_email: Optional[str]
    contact_phone: Optional[str]
    status: str
    sentiment: Optional[str]
    summary: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ConversationDetail(ConversationResponse):
    messages: List[MessageResponse] = []


# ============ AI Schemas ============

class GenerateRequest(StrictModel):
    conversation_id: str
    pilot_mode: Optional[PilotMode] = None


class GenerateResponse(BaseModel):
    sent: bool
    message: Optional[MessageResponse] = None
    suggested_response: Optional[str] = None


class ApproveRequest(StrictModel):
    conversation_id: str
    content: str = Field(min_length=1)


class SummarizeRequest(StrictModel):
    conversation_id: str


class SummaryResponse(BaseModel):
    summary: str


class BatchSummarizeRequest(StrictModel):
    conversation_ids: List[str] = Field(min_length=1)
    concurrency: Optional[int] = Field(None, ge=1, le=10)


class ConversationSummary(BaseModel):
    conversation_id: str
    summary: str


class BatchSummarizeResponse(BaseModel):
    results: List[ConversationSummary]


# ============ Training Schemas ============

class QACreate(StrictModel):
    question: str
    answer: str


class BusinessQACreate(QACreate):
    agent_id: Optional[str] = None


class CrawlRequest(StrictModel):
    url: str


class BatchCrawlRequest(StrictModel):
    urls: List[str] = Field(min_length=1)


class TrainingResponse(BaseModel):
    id: str
    business_id: str
    agent_id: Optional[str]
    type: str
    question: Optional[str]
    answer: Optional[str]
    title: Optional[str]
    source_url: Optional[str]
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class CrawlResponse(BaseModel):
    training: TrainingResponse
    content_length: int
    preview: str


# ============ Channel Webhook Schemas ============

class InboundMessage(StrictModel):
    agent_id: str
    channel: Channel = Channel.SMS
    contact: str = Field(min_length=1)
    body: str


class InboundResponse(BaseModel):
    conversation_id: str
    message_id: str
    created: bool
    sent: bool = False
    reply: Optional[str] = None


class CallStart(StrictModel):
    agent_id: str
    caller_phone: str = Field(min_length=1)


class Utterance(StrictModel):
    speech: Optional[str] = None


class VoiceTurnResponse(BaseModel):
    conversation_id: str
    say: str
    reprompt: bool
    hangup: bool
