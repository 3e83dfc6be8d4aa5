"""
Conversation History Store - append-only, ordered message log per conversation

Appends are serialized per conversation with an in-process asyncio lock so that
two pipelines handling the same conversation cannot interleave their writes.
Callers that need read-history → generate → append to happen as one unit
hold ``lock(conversation_id)`` themselves and call ``append_locked``.
"""

import asyncio
import weakref
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.db import Conversation, Message, MessageRole
from workmate.errors import NotFound, ValidationError
from workmate.structured_logging import Subsystem, get_subsystem_logger

log = get_subsystem_logger(Subsystem.HISTORY)

_VALID_ROLES = {role.value for role in MessageRole}


class ConversationLocks:
    """Process-wide registry of per-conversation locks."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock


class ConversationHistoryStore:
    """Reads and appends conversation turns."""

    def __init__(self, db: AsyncSession, locks: ConversationLocks):
        self.db = db
        self.locks = locks

    def lock(self, conversation_id: str) -> asyncio.Lock:
        return self.locks.get(conversation_id)

    async def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = await self.db.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found", conversation_id=conversation_id)
        return conversation

    async def append(
        self,
        conversation_id: str,
        role: str,
        content: str,
        auto_generated: bool = False,
        approved: Optional[bool] = None,
        audio_url: Optional[str] = None,
        commit: bool = True,
    ) -> Message:
        """Append one immutable message and touch the conversation's update time."""
        async with self.lock(conversation_id):
            return await self.append_locked(
                conversation_id,
                role,
                content,
                auto_generated=auto_generated,
                approved=approved,
                audio_url=audio_url,
                commit=commit,
            )

    async def append_locked(
        self,
        conversation_id: str,
        role: str,
        content: str,
        auto_generated: bool = False,
        approved: Optional[bool] = None,
        audio_url: Optional[str] = None,
        commit: bool = True,
    ) -> Message:
        """Same as ``append``; the caller must already hold ``lock(conversation_id)``."""
        if role not in _VALID_ROLES:
            raise ValidationError(f"Invalid message role: {role}")
        if content is None or not content.strip():
            raise ValidationError("Message content is required")

        await self.get_conversation(conversation_id)

        result = await self.db.execute(
            select(func.max(Message.seq)).where(Message.conversation_id == conversation_id)
        )
        next_seq = (result.scalar() or 0) + 1

        now = datetime.utcnow()
        message = Message(
            conversation_id=conversation_id,
            seq=next_seq,
            role=role,
            content=content,
            audio_url=audio_url,
            was_auto_generated=auto_generated,
            was_approved=approved,
            created_at=now,
        )
        self.db.add(message)

        # Status is left alone: resolved conversations are never reopened here
        await self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=now)
        )

        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

        log.debug("Appended message", {
            "conversation_id": conversation_id,
            "seq": next_seq,
            "role": role,
            "auto_generated": auto_generated,
        })
        return message

    async def recent_history(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """Up to ``limit`` most recent messages, oldest first. ``None`` reads everything."""
        if limit is not None and limit <= 0:
            return []

        stmt = select(Message).where(Message.conversation_id == conversation_id)
        if limit is None:
            result = await self.db.execute(stmt.order_by(Message.seq.asc()))
            return list(result.scalars().all())

        result = await self.db.execute(stmt.order_by(Message.seq.desc()).limit(limit))
        return list(reversed(result.scalars().all()))
