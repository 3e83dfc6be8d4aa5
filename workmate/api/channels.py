"""
Carrier-facing webhooks for inbound messages and phone calls

These endpoints are called by the messaging/voice provider rather than the
business owner, so they are addressed by agent id and carry no owner token.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.api.deps import get_db, get_language_model, get_locks, get_notifier
from workmate.schemas import (
    CallStart, InboundMessage, InboundResponse, Utterance, VoiceTurnResponse,
)
from workmate.services.history_store import ConversationLocks
from workmate.services.inbound_service import InboundService
from workmate.services.llm_service import LanguageModel
from workmate.services.notification_service import Notifier
from workmate.services.voice_service import VoiceService

router = APIRouter(tags=["Channels"])


@router.post("/inbound/messages", response_model=InboundResponse)
async def receive_message(
    body: InboundMessage,
    db: AsyncSession = Depends(get_db),
    language_model: LanguageModel = Depends(get_language_model),
    locks: ConversationLocks = Depends(get_locks),
    notifier: Notifier = Depends(get_notifier),
):
    service = InboundService(db, language_model, locks, notifier)
    outcome = await service.receive_message(body.agent_id, body.channel.value, body.contact, body.body)
    return InboundResponse(
        conversation_id=outcome.conversation.id,
        message_id=outcome.message.id,
        created=outcome.created,
        sent=outcome.reply is not None and outcome.reply.sent,
        reply=outcome.reply.text if outcome.reply is not None else None,
    )


@router.post("/voice/calls", response_model=VoiceTurnResponse)
async def start_call(
    body: CallStart,
    db: AsyncSession = Depends(get_db),
    language_model: LanguageModel = Depends(get_language_model),
    locks: ConversationLocks = Depends(get_locks),
):
    """Open a call and return the greeting to speak."""
    turn = await VoiceService(db, language_model, locks).start_call(body.agent_id, body.caller_phone)
    return turn.to_dict()


@router.post("/voice/calls/{conversation_id}/turns", response_model=VoiceTurnResponse)
async def call_turn(
    conversation_id: str,
    body: Utterance,
    db: AsyncSession = Depends(get_db),
    language_model: LanguageModel = Depends(get_language_model),
    locks: ConversationLocks = Depends(get_locks),
):
    """Handle one caller utterance and return what to say next."""
    turn = await VoiceService(db, language_model, locks).handle_utterance(conversation_id, body.speech)
    return turn.to_dict()
