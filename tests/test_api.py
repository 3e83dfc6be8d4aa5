"""
Tests for the WorkMate HTTP API
"""

import json

import pytest
from httpx import AsyncClient


async def create_agent(client: AsyncClient, owner: dict, **fields) -> dict:
    body = {"name": "Front Desk", "type": "chat"}
    body.update(fields)
    response = await client.post(
        f"/api/businesses/{owner['id']}/agents", json=body, headers=owner["headers"]
    )
    assert response.status_code == 201
    return response.json()


async def create_conversation(client: AsyncClient, owner: dict, agent_id=None, **fields) -> dict:
    body = {"agent_id": agent_id, "contact_name": "Jamie"}
    body.update(fields)
    response = await client.post(
        f"/api/businesses/{owner['id']}/conversations", json=body, headers=owner["headers"]
    )
    assert response.status_code == 201
    return response.json()


# ============ Health & Auth ============

@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"


@pytest.mark.asyncio
async def test_signup_and_me(client: AsyncClient, owner: dict):
    assert owner["slug"].startswith("acme-plumbing-")
    assert owner["ai_credits_remaining"] == 100

    response = await client.get("/api/me", headers=owner["headers"])
    assert response.status_code == 200
    assert response.json()["id"] == owner["id"]
    assert "owner_token" not in response.json()


@pytest.mark.asyncio
async def test_missing_or_bad_token(client: AsyncClient, owner: dict):
    assert (await client.get("/api/me")).status_code == 401
    assert (await client.get("/api/me", headers={"X-Owner-Token": "nope"})).status_code == 401


@pytest.mark.asyncio
async def test_other_business_is_forbidden(client: AsyncClient, owner: dict):
    other = (await client.post("/api/businesses", json={"name": "Rival"})).json()
    response = await client.get(f"/api/businesses/{other['id']}", headers=owner["headers"])
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_fields_are_rejected(client: AsyncClient):
    response = await client.post("/api/businesses", json={"name": "Acme", "owner_token": "mine"})
    assert response.status_code == 422


# ============ Agents & Goals ============

@pytest.mark.asyncio
async def test_agent_lifecycle(client: AsyncClient, owner: dict):
    agent = await create_agent(client, owner, personality="Be brief.")
    assert agent["pilot_mode"] == "suggestive"
    assert agent["goals"] == []

    response = await client.patch(
        f"/api/agents/{agent['id']}", json={"pilot_mode": "autopilot"}, headers=owner["headers"]
    )
    assert response.status_code == 200
    assert response.json()["pilot_mode"] == "autopilot"
    assert response.json()["personality"] == "Be brief."

    response = await client.get(f"/api/businesses/{owner['id']}/agents", headers=owner["headers"])
    assert [a["id"] for a in response.json()] == [agent["id"]]

    response = await client.delete(f"/api/agents/{agent['id']}", headers=owner["headers"])
    assert response.status_code == 204
    response = await client.get(f"/api/agents/{agent['id']}", headers=owner["headers"])
    assert response.status_code == 404
    assert response.json() == {"detail": "Agent not found"}


@pytest.mark.asyncio
async def test_agent_rejects_bad_values(client: AsyncClient, owner: dict):
    agent = await create_agent(client, owner)
    response = await client.patch(
        f"/api/agents/{agent['id']}", json={"pilot_mode": "cruise"}, headers=owner["headers"]
    )
    assert response.status_code == 422
    response = await client.patch(
        f"/api/agents/{agent['id']}", json={"name": None}, headers=owner["headers"]
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_goals(client: AsyncClient, owner: dict):
    agent = await create_agent(client, owner)
    headers = owner["headers"]

    response = await client.post(
        f"/api/agents/{agent['id']}/goals",
        json={"goal_type": "collect_info", "fields_to_collect": ["name", "email"], "priority": 2},
        headers=headers,
    )
    assert response.status_code == 201
    goal = response.json()

    response = await client.patch(f"/api/goals/{goal['id']}", json={"priority": 9}, headers=headers)
    assert response.json()["priority"] == 9

    response = await client.get(f"/api/agents/{agent['id']}/goals", headers=headers)
    assert [g["fields_to_collect"] for g in response.json()] == [["name", "email"]]

    assert (await client.delete(f"/api/goals/{goal['id']}", headers=headers)).status_code == 204
    response = await client.get(f"/api/agents/{agent['id']}/goals", headers=headers)
    assert response.json() == []


# ============ Conversations ============

@pytest.mark.asyncio
async def test_conversation_needs_a_contact(client: AsyncClient, owner: dict):
    response = await client.post(
        f"/api/businesses/{owner['id']}/conversations",
        json={"channel": "webchat"},
        headers=owner["headers"],
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_conversation_filters_and_messages(client: AsyncClient, owner: dict):
    headers = owner["headers"]
    chat = await create_conversation(client, owner)
    await create_conversation(client, owner, channel="sms", contact_phone="+1555")

    response = await client.get(f"/api/businesses/{owner['id']}/conversations?channel=sms", headers=headers)
    assert [c["channel"] for c in response.json()] == ["sms"]

    response = await client.post(
        f"/api/conversations/{chat['id']}/messages", json={"content": "How can I help?"}, headers=headers
    )
    assert response.status_code == 201
    assert response.json()["was_auto_generated"] is False

    response = await client.get(f"/api/conversations/{chat['id']}", headers=headers)
    assert [m["content"] for m in response.json()["messages"]] == ["How can I help?"]


@pytest.mark.asyncio
async def test_conversation_status_transitions(client: AsyncClient, owner: dict):
    headers = owner["headers"]
    conversation = await create_conversation(client, owner)
    url = f"/api/conversations/{conversation['id']}"

    response = await client.patch(url, json={"status": "resolved", "sentiment": "positive"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["sentiment"] == "positive"

    response = await client.patch(url, json={"status": "active"}, headers=headers)
    assert response.status_code == 400

    response = await client.patch(url, json={"summary": "hand written"}, headers=headers)
    assert response.status_code == 422

    response = await client.get(
        f"/api/businesses/{owner['id']}/conversations?status=resolved", headers=headers
    )
    assert len(response.json()) == 1


# ============ AI ============

@pytest.mark.asyncio
async def test_generate_suggestive_then_approve(client: AsyncClient, owner: dict, llm):
    headers = owner["headers"]
    llm.default = "We're open 9-5."
    agent = await create_agent(client, owner)
    conversation = await create_conversation(client, owner, agent["id"])
    await client.post(
        f"/api/conversations/{conversation['id']}/messages", json={"content": "Hours?"}, headers=headers
    )

    response = await client.post(
        "/api/ai/generate-response", json={"conversation_id": conversation["id"]}, headers=headers
    )
    assert response.status_code == 200
    assert response.json() == {"sent": False, "suggested_response": "We're open 9-5."}

    response = await client.post(
        "/api/ai/approve-response",
        json={"conversation_id": conversation["id"], "content": "Our hours are 9-5."},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["was_approved"] is True

    usage = (await client.get(f"/api/businesses/{owner['id']}/usage", headers=headers)).json()
    assert [u["type"] for u in usage] == ["ai_message"]
    stats = (await client.get(f"/api/businesses/{owner['id']}/stats", headers=headers)).json()
    assert stats["ai_credits_remaining"] == 99
    assert stats["agent_count"] == 1
    assert stats["active_conversation_count"] == 1


@pytest.mark.asyncio
async def test_generate_autopilot(client: AsyncClient, owner: dict):
    headers = owner["headers"]
    agent = await create_agent(client, owner, pilot_mode="autopilot")
    conversation = await create_conversation(client, owner, agent["id"])

    response = await client.post(
        "/api/ai/generate-response", json={"conversation_id": conversation["id"]}, headers=headers
    )
    body = response.json()
    assert body["sent"] is True
    assert body["message"]["was_auto_generated"] is True
    assert "suggested_response" not in body


@pytest.mark.asyncio
async def test_generate_off_and_failures(client: AsyncClient, owner: dict, llm):
    from workmate.errors import RateLimitError

    headers = owner["headers"]
    agent = await create_agent(client, owner, pilot_mode="off")
    conversation = await create_conversation(client, owner, agent["id"])

    response = await client.post(
        "/api/ai/generate-response", json={"conversation_id": conversation["id"]}, headers=headers
    )
    assert response.status_code == 400

    llm.replies = [RateLimitError("Rate limit reached")]
    response = await client.post(
        "/api/ai/generate-response",
        json={"conversation_id": conversation["id"], "pilot_mode": "suggestive"},
        headers=headers,
    )
    assert response.status_code == 429

    response = await client.post(
        "/api/ai/generate-response", json={"conversation_id": "missing"}, headers=headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_summaries(client: AsyncClient, owner: dict, llm):
    headers = owner["headers"]
    llm.default = "Short summary."
    first = await create_conversation(client, owner)
    second = await create_conversation(client, owner)
    await client.post(f"/api/conversations/{first['id']}/messages", json={"content": "Hi"}, headers=headers)

    response = await client.post("/api/ai/summarize", json={"conversation_id": second["id"]}, headers=headers)
    assert response.json() == {"summary": "No messages in this conversation yet."}

    response = await client.post(
        "/api/ai/summarize/batch",
        json={"conversation_ids": [first["id"], second["id"]], "concurrency": 1},
        headers=headers,
    )
    assert response.status_code == 200
    assert [r["summary"] for r in response.json()["results"]] == [
        "Short summary.",
        "No messages in this conversation yet.",
    ]


# ============ Training ============

@pytest.mark.asyncio
async def test_training_qa_crawl_and_delete(client: AsyncClient, owner: dict, pages):
    headers = owner["headers"]
    agent = await create_agent(client, owner)
    pages["https://acme.test/"] = "<title>Acme</title><p>We fix leaks.</p>"

    response = await client.post(
        f"/api/agents/{agent['id']}/training/qa",
        json={"question": "Hours?", "answer": "9 to 5"},
        headers=headers,
    )
    assert response.status_code == 201

    response = await client.post(
        f"/api/agents/{agent['id']}/training/crawl", json={"url": "https://acme.test/"}, headers=headers
    )
    assert response.status_code == 201
    crawl = response.json()
    assert crawl["training"]["title"] == "Acme"
    assert crawl["preview"] == "Acme We fix leaks."
    assert crawl["content_length"] == len("Acme We fix leaks.")

    response = await client.post(
        f"/api/businesses/{owner['id']}/training/qa",
        json={"question": "Parking?", "answer": "Yes"},
        headers=headers,
    )
    assert response.json()["agent_id"] is None

    agent_rows = (await client.get(f"/api/agents/{agent['id']}/training", headers=headers)).json()
    business_rows = (await client.get(f"/api/businesses/{owner['id']}/training", headers=headers)).json()
    assert len(agent_rows) == 2
    assert len(business_rows) == 3

    response = await client.delete(f"/api/training/{crawl['training']['id']}", headers=headers)
    assert response.status_code == 204
    response = await client.delete(f"/api/training/{crawl['training']['id']}", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_crawl_upstream_failure(client: AsyncClient, owner: dict, pages):
    agent = await create_agent(client, owner)
    pages["https://acme.test/down"] = 500

    response = await client.post(
        f"/api/agents/{agent['id']}/training/crawl",
        json={"url": "https://acme.test/down"},
        headers=owner["headers"],
    )
    assert response.status_code == 502
    assert response.json() == {"detail": "Failed to fetch website: 500", "upstream_status": 500}


@pytest.mark.asyncio
async def test_batch_crawl_streams_events(client: AsyncClient, owner: dict, pages):
    agent = await create_agent(client, owner)
    urls = [f"https://acme.test/{i}" for i in range(1, 6)]
    for url in urls:
        pages[url] = f"<p>{url}</p>"
    pages[urls[2]] = 500

    response = await client.post(
        f"/api/agents/{agent['id']}/training/crawl/batch", json={"urls": urls}, headers=owner["headers"]
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    events = [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]
    assert events[0] == {"type": "started", "total": 5}
    assert events[-1] == {"type": "complete", "processed": 5, "errors": 1}
    assert len([e for e in events if e["type"] == "progress"]) == 5

    rows = (await client.get(f"/api/agents/{agent['id']}/training", headers=owner["headers"])).json()
    assert len(rows) == 4


# ============ Usage ============

@pytest.mark.asyncio
async def test_usage_limit(client: AsyncClient, owner: dict):
    headers = owner["headers"]
    response = await client.post(
        f"/api/businesses/{owner['id']}/usage/limit", json={"limit": 500}, headers=headers
    )
    assert response.json() == {"success": True, "new_limit": 500}
    assert (await client.get("/api/me", headers=headers)).json()["ai_credits_remaining"] == 500

    response = await client.post(
        f"/api/businesses/{owner['id']}/usage/limit", json={"limit": -5}, headers=headers
    )
    assert response.status_code == 422


# ============ Channel webhooks ============

@pytest.mark.asyncio
async def test_inbound_webhook(client: AsyncClient, owner: dict, notifier, llm):
    agent = await create_agent(client, owner, type="sms", pilot_mode="autopilot")
    llm.default = "Thanks for your message!"

    response = await client.post("/api/inbound/messages", json={
        "agent_id": agent["id"],
        "contact": "+15550001",
        "body": "Are you open?",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["created"] is True
    assert body["sent"] is True
    assert body["reply"] == "Thanks for your message!"
    assert notifier.sent[0]["to"] == "owner@acme.test"


@pytest.mark.asyncio
async def test_voice_webhooks(client: AsyncClient, owner: dict, llm):
    agent = await create_agent(client, owner, type="voice", pilot_mode="autopilot")
    llm.default = "We open at nine."

    response = await client.post("/api/voice/calls", json={"agent_id": agent["id"], "caller_phone": "+1555"})
    call = response.json()
    assert call["say"] == "Hello, how can I help you?"
    assert call["reprompt"] is True

    response = await client.post(
        f"/api/voice/calls/{call['conversation_id']}/turns", json={"speech": "When do you open?"}
    )
    assert response.json() == {
        "conversation_id": call["conversation_id"],
        "say": "We open at nine.",
        "reprompt": True,
        "hangup": False,
    }

    response = await client.post(f"/api/voice/calls/{call['conversation_id']}/turns", json={})
    assert response.json()["say"] == "Sorry, I didn't catch that. Could you please repeat?"
