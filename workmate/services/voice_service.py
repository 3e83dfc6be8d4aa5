"""
Voice Service - turn-by-turn phone conversations

A call opens a phone-channel conversation and greets the caller. Each caller
utterance is appended and, for autopilot agents, answered with a short spoken
reply before the caller is prompted again. Silence gets a retry turn instead
of an error. Agents that are not on autopilot take a message and hang up.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from workmate.config import Settings, settings as default_settings
from workmate.db import Agent, Channel, Conversation, ConversationStatus, MessageRole
from workmate.errors import GenerationError, NotFound, ValidationError
from workmate.services.history_store import ConversationHistoryStore, ConversationLocks
from workmate.services.llm_service import LanguageModel
from workmate.services.pilot_policy import decide, resolve_mode
from workmate.services.response_generator import ResponseGenerator
from workmate.structured_logging import Subsystem, get_subsystem_logger

log = get_subsystem_logger(Subsystem.VOICE)

DEFAULT_GREETING = "Hello, how can I help you?"
SILENCE_REPLY = "Sorry, I didn't catch that. Could you please repeat?"
TAKE_MESSAGE_REPLY = (
    "Thank you, I've passed your message along. Someone will get back to you soon. Goodbye."
)
APOLOGY_REPLY = "I'm sorry, I'm having trouble right now. Please try again later. Goodbye."


@dataclass
class VoiceTurn:
    """What the carrier should do next on the call."""
    conversation_id: str
    say: str
    hangup: bool = False

    @property
    def reprompt(self) -> bool:
        return not self.hangup

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "say": self.say,
            "reprompt": self.reprompt,
            "hangup": self.hangup,
        }


class VoiceService:

    def __init__(
        self,
        db: AsyncSession,
        language_model: LanguageModel,
        locks: ConversationLocks,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.history = ConversationHistoryStore(db, locks)
        self.generator = ResponseGenerator(db, language_model, locks, self.config)

    async def start_call(self, agent_id: str, caller_phone: str) -> VoiceTurn:
        if not caller_phone or not caller_phone.strip():
            raise ValidationError("Caller phone is required")
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            raise NotFound("Agent not found", agent_id=agent_id)

        conversation = Conversation(
            business_id=agent.business_id,
            agent_id=agent.id,
            channel=Channel.PHONE.value,
            contact_phone=caller_phone.strip(),
            status=ConversationStatus.ACTIVE.value,
        )
        self.db.add(conversation)
        await self.db.commit()

        greeting = agent.initial_message or DEFAULT_GREETING
        await self.history.append(conversation.id, MessageRole.AGENT.value, greeting)
        log.info("Call started", {"conversation_id": conversation.id, "agent_id": agent.id})
        return VoiceTurn(conversation_id=conversation.id, say=greeting)

    async def handle_utterance(self, conversation_id: str, speech: Optional[str]) -> VoiceTurn:
        conversation = await self.history.get_conversation(conversation_id)

        if not speech or not speech.strip():
            return VoiceTurn(conversation_id=conversation_id, say=SILENCE_REPLY)

        await self.history.append(conversation_id, MessageRole.USER.value, speech.strip())

        agent = await self.db.get(Agent, conversation.agent_id) if conversation.agent_id else None
        if not decide(resolve_mode(None, agent)).commit:
            log.info("Taking a message", {"conversation_id": conversation_id})
            return VoiceTurn(conversation_id=conversation_id, say=TAKE_MESSAGE_REPLY, hangup=True)

        try:
            result = await self.generator.generate_response(conversation_id, voice=True)
        except GenerationError as e:
            log.error("Voice turn failed", {"conversation_id": conversation_id, "error": str(e)})
            return VoiceTurn(conversation_id=conversation_id, say=APOLOGY_REPLY, hangup=True)

        return VoiceTurn(conversation_id=conversation_id, say=result.text)
