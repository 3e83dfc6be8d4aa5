"""
Training data endpoints - Q&A pairs and website crawls

The batch crawl endpoint streams its progress as Server-Sent Events, one
``data: {json}`` frame per batch event, ending with a ``complete`` event.
"""

import json
from typing import List

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.api.deps import (
    ensure_owner, get_current_business, get_db, get_owned_agent, get_owned_training,
    get_web_fetcher,
)
from workmate.db import Business
from workmate.schemas import (
    BatchCrawlRequest, BusinessQACreate, CrawlRequest, CrawlResponse, QACreate, TrainingResponse,
)
from workmate.services.training_service import TrainingService
from workmate.services.web_fetch import WebFetcher

router = APIRouter(tags=["Training"])


@router.get("/agents/{agent_id}/training", response_model=List[TrainingResponse])
async def list_agent_training(
    agent_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_agent(db, business, agent_id)
    return await TrainingService(db).list_for_agent(agent_id)


@router.get("/businesses/{business_id}/training", response_model=List[TrainingResponse])
async def list_business_training(
    business_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    ensure_owner(business, business_id)
    return await TrainingService(db).list_for_business(business_id)


@router.post(
    "/agents/{agent_id}/training/qa",
    response_model=TrainingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_agent_qa(
    agent_id: str,
    body: QACreate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    agent = await get_owned_agent(db, business, agent_id)
    return await TrainingService(db).add_qa(agent.business_id, body.question, body.answer, agent_id=agent.id)


@router.post(
    "/businesses/{business_id}/training/qa",
    response_model=TrainingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_business_qa(
    business_id: str,
    body: BusinessQACreate,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    ensure_owner(business, business_id)
    if body.agent_id is not None:
        await get_owned_agent(db, business, body.agent_id)
    return await TrainingService(db).add_qa(business_id, body.question, body.answer, agent_id=body.agent_id)


@router.post(
    "/agents/{agent_id}/training/crawl",
    response_model=CrawlResponse,
    status_code=status.HTTP_201_CREATED,
)
async def crawl_website(
    agent_id: str,
    body: CrawlRequest,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    fetcher: WebFetcher = Depends(get_web_fetcher),
):
    """Fetch one page and store its text as agent knowledge."""
    await get_owned_agent(db, business, agent_id)
    result = await TrainingService(db, fetcher).crawl(agent_id, body.url)
    return CrawlResponse(
        training=TrainingResponse.model_validate(result.training),
        content_length=result.content_length,
        preview=result.preview,
    )


@router.post("/agents/{agent_id}/training/crawl/batch")
async def crawl_websites(
    agent_id: str,
    body: BatchCrawlRequest,
    request: Request,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    fetcher: WebFetcher = Depends(get_web_fetcher),
):
    """Crawl several pages one after another, streaming progress as SSE."""
    await get_owned_agent(db, business, agent_id)
    urls = TrainingService.clean_urls(body.urls)
    session_factory = request.app.state.session_factory

    async def event_stream():
        # The stream outlives the request-scoped session
        async with session_factory() as session:
            service = TrainingService(session, fetcher)
            async for event in service.crawl_events(agent_id, urls):
                yield f"data: {json.dumps(event.to_dict())}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.delete("/training/{training_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_training(
    training_id: str,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_training(db, business, training_id)
    await TrainingService(db).delete(training_id)
