"""
Inbound Service - entry point for carrier/webchat messages

Finds the contact's active conversation with the agent (or opens one),
appends the customer's turn and, for autopilot agents, notifies the owner and
answers straight away. Suggestive and off agents only record the message.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.config import Settings, settings as default_settings
from workmate.db import (
    Agent, Business, Channel, Conversation, ConversationStatus, Message, MessageRole,
)
from workmate.errors import NotFound, ValidationError
from workmate.services.history_store import ConversationHistoryStore, ConversationLocks
from workmate.services.llm_service import LanguageModel
from workmate.services.notification_service import Notifier
from workmate.services.pilot_policy import decide, resolve_mode
from workmate.services.response_generator import GenerationResult, ResponseGenerator
from workmate.structured_logging import Subsystem, get_subsystem_logger

log = get_subsystem_logger(Subsystem.INBOUND)


@dataclass
class InboundResult:
    conversation: Conversation
    message: Message
    created: bool
    reply: Optional[GenerationResult] = None


class InboundService:

    def __init__(
        self,
        db: AsyncSession,
        language_model: LanguageModel,
        locks: ConversationLocks,
        notifier: Optional[Notifier] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.notifier = notifier
        self.history = ConversationHistoryStore(db, locks)
        self.generator = ResponseGenerator(db, language_model, locks, self.config)

    async def find_or_create_conversation(
        self,
        agent: Agent,
        channel: str,
        contact: str,
    ) -> Tuple[Conversation, bool]:
        result = await self.db.execute(
            select(Conversation)
            .where(
                Conversation.agent_id == agent.id,
                Conversation.contact_phone == contact,
                Conversation.status == ConversationStatus.ACTIVE.value,
            )
            .order_by(Conversation.updated_at.desc())
            .limit(1)
        )
        conversation = result.scalars().first()
        if conversation is not None:
            return conversation, False

        conversation = Conversation(
            business_id=agent.business_id,
            agent_id=agent.id,
            channel=channel,
            contact_phone=contact,
            status=ConversationStatus.ACTIVE.value,
        )
        self.db.add(conversation)
        await self.db.commit()
        log.info("Conversation opened", {
            "conversation_id": conversation.id,
            "agent_id": agent.id,
            "channel": channel,
        })
        return conversation, True

    async def _notify_owner(self, agent: Agent, contact: str, body: str) -> None:
        if self.notifier is None:
            return
        business = await self.db.get(Business, agent.business_id)
        if business is None or not business.notifications_enabled or not business.email:
            return
        try:
            await self.notifier.send_email(
                business.email,
                f"New message for {agent.name}",
                f"From: {contact}\n\n{body}",
            )
        except Exception as e:
            log.warning("Owner notification failed", {
                "agent_id": agent.id,
                "business_id": business.id,
                "error": str(e),
            })

    async def receive_message(
        self,
        agent_id: str,
        channel: str,
        contact: str,
        body: str,
    ) -> InboundResult:
        try:
            channel = Channel(channel).value
        except ValueError:
            raise ValidationError(f"Invalid channel: {channel}")
        if not contact or not contact.strip():
            raise ValidationError("Contact is required")
        if not body or not body.strip():
            raise ValidationError("Message body is required")

        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            raise NotFound("Agent not found", agent_id=agent_id)

        conversation, created = await self.find_or_create_conversation(agent, channel, contact.strip())
        message = await self.history.append(conversation.id, MessageRole.USER.value, body)

        outcome = InboundResult(conversation=conversation, message=message, created=created)
        if not agent.is_active or not decide(resolve_mode(None, agent)).commit:
            return outcome

        await self._notify_owner(agent, contact, body)
        outcome.reply = await self.generator.generate_response(conversation.id)
        return outcome
