"""
AI endpoints - reply generation, approval and summaries

Generation follows the agent's pilot mode unless the request names one:
suggestive hands back ``suggested_response`` with ``sent: false``; autopilot
commits the reply and returns the stored ``message`` with ``sent: true``.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.api.deps import (
    get_current_business, get_db, get_language_model, get_locks, get_owned_conversation,
)
from workmate.db import Business
from workmate.schemas import (
    ApproveRequest, BatchSummarizeRequest, BatchSummarizeResponse, GenerateRequest,
    GenerateResponse, MessageResponse, SummarizeRequest, SummaryResponse,
)
from workmate.services.history_store import ConversationLocks
from workmate.services.llm_service import LanguageModel
from workmate.services.response_generator import ResponseGenerator, summarize_many

router = APIRouter(prefix="/ai", tags=["AI"])


@router.post("/generate-response", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate_response(
    body: GenerateRequest,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    language_model: LanguageModel = Depends(get_language_model),
    locks: ConversationLocks = Depends(get_locks),
):
    await get_owned_conversation(db, business, body.conversation_id)
    generator = ResponseGenerator(db, language_model, locks)
    result = await generator.generate_response(
        body.conversation_id,
        pilot_mode=body.pilot_mode.value if body.pilot_mode else None,
    )
    if result.sent:
        return GenerateResponse(sent=True, message=MessageResponse.model_validate(result.message))
    return GenerateResponse(sent=False, suggested_response=result.suggested_response)


@router.post("/approve-response", response_model=MessageResponse)
async def approve_response(
    body: ApproveRequest,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    language_model: LanguageModel = Depends(get_language_model),
    locks: ConversationLocks = Depends(get_locks),
):
    """Commit a suggested reply, as generated or after editing."""
    await get_owned_conversation(db, business, body.conversation_id)
    generator = ResponseGenerator(db, language_model, locks)
    return await generator.approve_response(body.conversation_id, body.content)


@router.post("/summarize", response_model=SummaryResponse)
async def summarize(
    body: SummarizeRequest,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    language_model: LanguageModel = Depends(get_language_model),
    locks: ConversationLocks = Depends(get_locks),
):
    await get_owned_conversation(db, business, body.conversation_id)
    generator = ResponseGenerator(db, language_model, locks)
    return SummaryResponse(summary=await generator.summarize(body.conversation_id))


@router.post("/summarize/batch", response_model=BatchSummarizeResponse)
async def summarize_batch(
    body: BatchSummarizeRequest,
    request: Request,
    business: Business = Depends(get_current_business),
    db: AsyncSession = Depends(get_db),
    language_model: LanguageModel = Depends(get_language_model),
    locks: ConversationLocks = Depends(get_locks),
):
    """Summarize many conversations with bounded concurrency. Fails if any item fails."""
    for conversation_id in body.conversation_ids:
        await get_owned_conversation(db, business, conversation_id)
    results = await summarize_many(
        request.app.state.session_factory,
        language_model,
        locks,
        body.conversation_ids,
        concurrency=body.concurrency,
    )
    return BatchSummarizeResponse(results=results)
