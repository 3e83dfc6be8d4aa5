"""
Database models for the WorkMate agent core.

Tenants (businesses) own agents, conversations, training data and usage logs.
Messages and usage logs are append-only; nothing here is updated in place
except conversation status/summary/timestamps and the tenant credit balance.
"""

from datetime import datetime
from typing import Optional, List
from enum import Enum
import secrets
import uuid

from sqlalchemy import (
    String, Text, DateTime, Integer, Boolean, ForeignKey, JSON, Index
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class AgentType(str, Enum):
    VOICE = "voice"
    CHAT = "chat"
    SMS = "sms"


class AgentDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class PilotMode(str, Enum):
    """Per-agent autonomy setting for generated replies."""
    OFF = "off"                 # No AI generation; humans handle everything
    SUGGESTIVE = "suggestive"   # Generate, hold for human approval
    AUTOPILOT = "autopilot"     # Generate and commit immediately


class GoalType(str, Enum):
    COLLECT_INFO = "collect_info"
    BOOK_APPOINTMENT = "book_appointment"
    TRANSFER_CALL = "transfer_call"
    CUSTOM = "custom"


class Channel(str, Enum):
    PHONE = "phone"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    WEBCHAT = "webchat"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    TRANSFERRED = "transferred"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class MessageRole(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class TrainingType(str, Enum):
    QA_PAIR = "qa_pair"
    WEBSITE_CRAWL = "website_crawl"


class TrainingStatus(str, Enum):
    ACTIVE = "active"
    PROCESSING = "processing"
    ERROR = "error"


class UsageType(str, Enum):
    AI_MESSAGE = "ai_message"
    VOICE_MINUTE = "voice_minute"
    SMS_SENT = "sms_sent"
    CALL_MADE = "call_made"


# ============ Tenants ============

class Business(Base):
    """A tenant account. Owns everything else."""
    __tablename__ = "businesses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(300), unique=True, index=True)
    owner_token: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, default=lambda: secrets.token_hex(32)
    )
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    subscription_tier: Mapped[str] = mapped_column(String(20), default="free")  # free, starter, pro, enterprise
    ai_credits_remaining: Mapped[int] = mapped_column(Integer, default=100)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ============ Agents ============

class Agent(Base):
    """An AI persona bound to one tenant and one channel type."""
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    business_id: Mapped[str] = mapped_column(String(36), ForeignKey("businesses.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(10))  # AgentType value
    direction: Mapped[str] = mapped_column(String(10), default=AgentDirection.INBOUND.value)
    initial_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    personality: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # System prompt
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    pilot_mode: Mapped[str] = mapped_column(String(20), default=PilotMode.SUGGESTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    goals: Mapped[List["AgentGoal"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AgentGoal.priority.desc()",
    )


class AgentGoal(Base):
    """An ordered objective attached to an agent."""
    __tablename__ = "agent_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("agents.id", ondelete="CASCADE"), index=True
    )
    goal_type: Mapped[str] = mapped_column(String(30))  # GoalType value
    fields_to_collect: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)  # ['name', 'email', ...]
    custom_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)

    agent: Mapped["Agent"] = relationship(back_populates="goals")


# ============ Conversations ============

class Conversation(Base):
    """One thread of interaction with an external contact over one channel."""
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    business_id: Mapped[str] = mapped_column(String(36), ForeignKey("businesses.id"), index=True)
    agent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("agents.id", ondelete="SET NULL"), nullable=True, index=True
    )
    channel: Mapped[str] = mapped_column(String(20), default=Channel.WEBCHAT.value)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default=ConversationStatus.ACTIVE.value, index=True)
    sentiment: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # AI-generated
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class Message(Base):
    """One immutable turn within a conversation."""
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_seq", "conversation_id", "seq", unique=True),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    conversation_id: Mapped[str] = mapped_column(String(36), ForeignKey("conversations.id"), index=True)
    seq: Mapped[int] = mapped_column(Integer)  # Per-conversation append order
    role: Mapped[str] = mapped_column(String(10))  # MessageRole value
    content: Mapped[str] = mapped_column(Text)
    audio_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    was_auto_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    was_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ============ Knowledge ============

class TrainingData(Base):
    """One unit of agent knowledge: a Q&A pair or a crawled page excerpt."""
    __tablename__ = "training_data"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    business_id: Mapped[str] = mapped_column(String(36), ForeignKey("businesses.id"), index=True)
    agent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("agents.id", ondelete="SET NULL"), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(String(20))  # TrainingType value
    question: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=TrainingStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


# ============ Billing ============

class UsageLog(Base):
    """Immutable accounting record for one metered action."""
    __tablename__ = "usage_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    business_id: Mapped[str] = mapped_column(String(36), ForeignKey("businesses.id"), index=True)
    type: Mapped[str] = mapped_column(String(20))  # UsageType value
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    credits_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
