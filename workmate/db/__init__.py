from workmate.db.models import (
    Base,
    Business,
    Agent, AgentGoal, AgentType, AgentDirection, PilotMode, GoalType,
    Conversation, ConversationStatus, Channel, Sentiment,
    Message, MessageRole,
    TrainingData, TrainingType, TrainingStatus,
    UsageLog, UsageType,
)
from workmate.db.database import init_db, drop_db, async_session_maker, engine

__all__ = [
    "Base",
    # Tenants & agents
    "Business",
    "Agent",
    "AgentGoal",
    "AgentType",
    "AgentDirection",
    "PilotMode",
    "GoalType",
    # Conversations
    "Conversation",
    "ConversationStatus",
    "Channel",
    "Sentiment",
    "Message",
    "MessageRole",
    # Knowledge
    "TrainingData",
    "TrainingType",
    "TrainingStatus",
    # Billing
    "UsageLog",
    "UsageType",
    # Database
    "init_db",
    "drop_db",
    "async_session_maker",
    "engine",
]
