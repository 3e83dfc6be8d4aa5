"""
Conversation history: append ordering, immutability and per-conversation locking.
"""

import asyncio

import pytest
from sqlalchemy import select

from workmate.db import Conversation, Message
from workmate.errors import NotFound, ValidationError
from workmate.services.history_store import ConversationHistoryStore, ConversationLocks


@pytest.mark.asyncio
async def test_append_assigns_increasing_sequence(db_session, seed, locks):
    business = await seed.business()
    conversation = await seed.conversation(business)
    store = ConversationHistoryStore(db_session, locks)

    first = await store.append(conversation.id, "user", "Hi")
    second = await store.append(conversation.id, "agent", "Hello!")

    assert (first.seq, second.seq) == (1, 2)
    history = await store.recent_history(conversation.id)
    assert [m.content for m in history] == ["Hi", "Hello!"]


@pytest.mark.asyncio
async def test_recent_history_is_oldest_first_and_bounded(db_session, seed, locks):
    business = await seed.business()
    conversation = await seed.conversation(business)
    store = ConversationHistoryStore(db_session, locks)
    for i in range(10):
        await store.append(conversation.id, "user" if i % 2 == 0 else "agent", f"turn {i}")

    recent = await store.recent_history(conversation.id, 6)
    assert [m.content for m in recent] == [f"turn {i}" for i in range(4, 10)]
    assert await store.recent_history(conversation.id, 0) == []


@pytest.mark.asyncio
async def test_append_rejects_bad_input(db_session, seed, locks):
    business = await seed.business()
    conversation = await seed.conversation(business)
    store = ConversationHistoryStore(db_session, locks)

    with pytest.raises(ValidationError):
        await store.append(conversation.id, "assistant", "wrong role")
    with pytest.raises(ValidationError):
        await store.append(conversation.id, "user", "   ")
    with pytest.raises(NotFound):
        await store.append("missing", "user", "Hi")


@pytest.mark.asyncio
async def test_append_does_not_change_earlier_messages(db_session, seed, locks):
    business = await seed.business()
    conversation = await seed.conversation(business)
    store = ConversationHistoryStore(db_session, locks)
    first = await store.append(conversation.id, "user", "Original")
    before = (first.id, first.seq, first.content, first.created_at)

    await store.append(conversation.id, "agent", "Reply")

    result = await db_session.execute(select(Message).where(Message.id == first.id))
    row = result.scalars().one()
    assert (row.id, row.seq, row.content, row.created_at) == before


@pytest.mark.asyncio
async def test_append_touches_update_time_but_not_status(db_session, seed, locks):
    business = await seed.business()
    conversation = await seed.conversation(business, status="resolved")
    created = conversation.updated_at
    store = ConversationHistoryStore(db_session, locks)

    await store.append(conversation.id, "user", "Are you still there?")

    result = await db_session.execute(
        select(Conversation.status, Conversation.updated_at).where(Conversation.id == conversation.id)
    )
    status, updated_at = result.one()
    assert status == "resolved"
    assert updated_at >= created


@pytest.mark.asyncio
async def test_concurrent_appends_get_distinct_sequence_numbers(session_factory, seed, locks):
    business = await seed.business()
    conversation = await seed.conversation(business)

    async def append(content):
        async with session_factory() as session:
            return await ConversationHistoryStore(session, locks).append(conversation.id, "user", content)

    messages = await asyncio.gather(*(append(f"msg {i}") for i in range(5)))
    assert sorted(m.seq for m in messages) == [1, 2, 3, 4, 5]


def test_locks_are_shared_per_conversation():
    locks = ConversationLocks()
    assert locks.get("a") is locks.get("a")
    assert locks.get("a") is not locks.get("b")
