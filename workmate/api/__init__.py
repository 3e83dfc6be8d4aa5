"""API routers"""

from workmate.api.agents import router as agents_router
from workmate.api.ai import router as ai_router
from workmate.api.businesses import router as businesses_router
from workmate.api.channels import router as channels_router
from workmate.api.conversations import router as conversations_router
from workmate.api.training import router as training_router

__all__ = [
    "agents_router",
    "ai_router",
    "businesses_router",
    "channels_router",
    "conversations_router",
    "training_router",
]
