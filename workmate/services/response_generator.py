"""
Response Generator - decides what the agent says next

The generator orchestrates one conversational turn:
1. Load the conversation and its bound agent
2. Build the system prompt (personality or fallback + goals + knowledge base)
3. Map stored history onto model roles (agent -> assistant)
4. Call the language model with a hard output ceiling
5. Apply the pilot policy: hand the candidate back (suggestive) or commit it
   (autopilot) as one append + usage entry + credit debit transaction

Nothing is written when the model call fails.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workmate.config import Settings, settings as default_settings
from workmate.db import (
    Agent, AgentGoal, Business, Conversation, Message, MessageRole, PilotMode, UsageType,
)
from workmate.errors import GenerationError, ValidationError, WorkmateError
from workmate.services.batch_orchestrator import batch_process
from workmate.services.history_store import ConversationHistoryStore, ConversationLocks
from workmate.services.knowledge_base import KnowledgeBaseAssembler
from workmate.services.llm_service import LanguageModel
from workmate.services.pilot_policy import decide, resolve_mode
from workmate.services.usage_metering import UsageMeter
from workmate.structured_logging import Subsystem, get_subsystem_logger

log = get_subsystem_logger(Subsystem.GENERATOR)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant for a business. "
    "Be professional, friendly, and helpful."
)
VOICE_SYSTEM_PROMPT = (
    "You are a friendly phone assistant for {business_name}. "
    "Your replies will be spoken aloud to a caller, so keep every reply to "
    "1-2 short sentences. Never use lists, markdown, links or emojis."
)
SUMMARY_PROMPT = "Summarize this conversation in 2-3 sentences."
EMPTY_SUMMARY = "No messages in this conversation yet."

GOAL_LABELS = {
    "collect_info": "Collect the caller's information",
    "book_appointment": "Book an appointment",
    "transfer_call": "Offer to transfer the customer to a human",
    "custom": "Custom objective",
}


@dataclass
class GenerationResult:
    """Outcome of ``generate_response``."""
    sent: bool
    mode: PilotMode
    message: Optional[Message] = None
    suggested_response: Optional[str] = None

    @property
    def text(self) -> str:
        if self.message is not None:
            return self.message.content
        return self.suggested_response or ""


def to_model_messages(history: List[Message]) -> List[Dict[str, str]]:
    """Map stored turns onto language-model roles."""
    return [
        {
            "role": "assistant" if m.role == MessageRole.AGENT.value else m.role,
            "content": m.content,
        }
        for m in history
    ]


def render_goals(goals: List[AgentGoal]) -> str:
    if not goals:
        return ""
    ordered = sorted(goals, key=lambda g: g.priority, reverse=True)
    lines = ["\n\n## Goals", "Work toward these objectives, most important first:"]
    for number, goal in enumerate(ordered, 1):
        line = f"{number}. {GOAL_LABELS.get(goal.goal_type, goal.goal_type)}"
        if goal.fields_to_collect:
            line += f" (ask for: {', '.join(goal.fields_to_collect)})"
        lines.append(line)
        if goal.custom_instructions:
            lines.append(f"   {goal.custom_instructions}")
    return "\n".join(lines)


class ResponseGenerator:
    """One instance per request; collaborators are injected."""

    def __init__(
        self,
        db: AsyncSession,
        language_model: LanguageModel,
        locks: ConversationLocks,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.language_model = language_model
        self.config = config or default_settings
        self.history = ConversationHistoryStore(db, locks)
        self.knowledge_base = KnowledgeBaseAssembler(
            db,
            row_limit=self.config.knowledge_base_row_limit,
            item_chars=self.config.knowledge_base_item_chars,
        )
        self.meter = UsageMeter(db)

    # ------------------------------------------------------------------
    # Prompt construction
    # ------------------------------------------------------------------

    async def _load_agent(self, conversation: Conversation) -> Optional[Agent]:
        if not conversation.agent_id:
            return None
        return await self.db.get(Agent, conversation.agent_id)

    async def build_system_prompt(
        self,
        conversation: Conversation,
        agent: Optional[Agent],
        voice: bool = False,
    ) -> str:
        if voice:
            business = await self.db.get(Business, conversation.business_id)
            prompt = VOICE_SYSTEM_PROMPT.format(
                business_name=business.name if business else "this business"
            )
            if agent and agent.personality:
                prompt += f"\n\n{agent.personality}"
        else:
            prompt = agent.personality if agent and agent.personality else DEFAULT_SYSTEM_PROMPT

        if agent is not None:
            prompt += render_goals(agent.goals)
            prompt += await self.knowledge_base.assemble(agent.id)
        return prompt

    async def _complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_tokens: int,
        timeout: Optional[float] = None,
    ) -> str:
        try:
            call = self.language_model.complete(system_prompt, messages, max_tokens)
            if timeout is not None:
                return await asyncio.wait_for(call, timeout=timeout)
            return await call
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Language model timed out after {timeout}s") from e
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Language model call failed: {e}") from e

    # ------------------------------------------------------------------
    # Commit path (autopilot and explicit approval)
    # ------------------------------------------------------------------

    async def _commit_locked(self, conversation: Conversation, content: str) -> Message:
        """Append + usage entry + credit debit as one transaction."""
        credits = self.config.ai_message_credits
        # Rollback expires ORM instances; read ids up front
        conversation_id = conversation.id
        business_id = conversation.business_id
        try:
            message = await self.history.append_locked(
                conversation_id,
                MessageRole.AGENT.value,
                content,
                auto_generated=True,
                approved=True,
                commit=False,
            )
            await self.meter.record(
                business_id,
                UsageType.AI_MESSAGE.value,
                quantity=1,
                credits_used=credits,
                commit=False,
            )
            await self.meter.debit_credits(business_id, credits)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            log.error("Commit failed, rolled back", {
                "conversation_id": conversation_id,
                "business_id": business_id,
                "error": str(e),
            })
            raise
        return message

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def generate_response(
        self,
        conversation_id: str,
        pilot_mode: Optional[str] = None,
        voice: bool = False,
    ) -> GenerationResult:
        """
        Generate the agent's next reply.

        Args:
            conversation_id: Conversation to answer
            pilot_mode: Overrides the agent's stored mode when given
            voice: Use the spoken-reply prompt, short history and token ceiling

        Returns:
            GenerationResult with ``sent=True`` and the committed message
            (autopilot) or ``sent=False`` and the held candidate (suggestive)
        """
        conversation = await self.history.get_conversation(conversation_id)
        agent = await self._load_agent(conversation)
        mode = resolve_mode(pilot_mode, agent)
        decision = decide(mode)
        if not decision.generate:
            raise ValidationError(
                "AI generation is turned off for this agent",
                conversation_id=conversation_id,
            )

        if voice:
            history_limit = self.config.voice_history_limit
            max_tokens = self.config.voice_max_tokens
            timeout = self.config.voice_timeout_seconds
        else:
            history_limit = None
            max_tokens = self.config.chat_max_tokens
            timeout = None

        async def generate() -> str:
            system_prompt = await self.build_system_prompt(conversation, agent, voice=voice)
            history = await self.history.recent_history(conversation_id, history_limit)
            return await self._complete(system_prompt, to_model_messages(history), max_tokens, timeout)

        log.info("Generating response", {
            "conversation_id": conversation_id,
            "agent_id": agent.id if agent else None,
            "mode": mode.value,
            "voice": voice,
        })

        try:
            if not decision.commit:
                candidate = await generate()
                return GenerationResult(sent=False, mode=mode, suggested_response=candidate)

            # Autopilot: hold the conversation lock from history read to commit
            async with self.history.lock(conversation_id):
                candidate = await generate()
                message = await self._commit_locked(conversation, candidate)
            return GenerationResult(sent=True, mode=mode, message=message)
        except WorkmateError as e:
            log.error("Response generation failed", {
                "conversation_id": conversation_id,
                "error": str(e),
            })
            raise

    async def approve_response(self, conversation_id: str, content: str) -> Message:
        """Commit a held (possibly edited) candidate as an approved agent message."""
        if content is None or not content.strip():
            raise ValidationError("Approved content is required")
        conversation = await self.history.get_conversation(conversation_id)
        async with self.history.lock(conversation_id):
            message = await self._commit_locked(conversation, content)
        log.info("Response approved", {"conversation_id": conversation_id, "message_id": message.id})
        return message

    async def summarize(self, conversation_id: str) -> str:
        """Summarize the whole conversation and store it on the conversation row."""
        await self.history.get_conversation(conversation_id)
        history = await self.history.recent_history(conversation_id)
        if not history:
            return EMPTY_SUMMARY

        chat_content = "\n".join(f"{m.role}: {m.content}" for m in history)
        summary = await self._complete(
            SUMMARY_PROMPT,
            [{"role": "user", "content": chat_content}],
            self.config.summary_max_tokens,
        )

        await self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(summary=summary)
        )
        await self.db.commit()
        log.info("Conversation summarized", {"conversation_id": conversation_id, "chars": len(summary)})
        return summary


async def summarize_many(
    session_factory: async_sessionmaker,
    language_model: LanguageModel,
    locks: ConversationLocks,
    conversation_ids: List[str],
    concurrency: Optional[int] = None,
    on_progress: Optional[Callable[[int, int, Any], Any]] = None,
    config: Optional[Settings] = None,
    **batch_options: Any,
) -> List[Dict[str, str]]:
    """Summarize many conversations through the bounded-concurrency batch mode."""

    async def summarize_one(conversation_id: str, index: int) -> Dict[str, str]:
        async with session_factory() as session:
            generator = ResponseGenerator(session, language_model, locks, config)
            summary = await generator.summarize(conversation_id)
        return {"conversation_id": conversation_id, "summary": summary}

    return await batch_process(
        conversation_ids,
        summarize_one,
        concurrency=concurrency,
        on_progress=on_progress,
        **batch_options,
    )
