"""
Knowledge Base Assembler - merges an agent's training data into prompt text

The assembled block is appended to the agent's system prompt. It is bounded:
at most ``row_limit`` training rows (most recent first) and at most
``item_chars`` characters from any single crawled page.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.config import settings
from workmate.db import TrainingData, TrainingType
from workmate.structured_logging import Subsystem, get_subsystem_logger

log = get_subsystem_logger(Subsystem.KNOWLEDGE)

KNOWLEDGE_BASE_HEADER = (
    "\n\n## Knowledge Base\n"
    "Use the following information to answer questions accurately:\n\n"
)
FAQ_HEADER = "### FAQ:\n"
WEBSITE_HEADER = "### Website Content:\n"
SOURCE_SEPARATOR = "\n\n---\n\n"


def render_knowledge_base(rows: List[TrainingData], item_chars: int) -> str:
    """Render already-loaded training rows. Returns "" when nothing is usable."""
    qa_content = "\n\n".join(
        f"Q: {row.question}\nA: {row.answer}"
        for row in rows
        if row.type == TrainingType.QA_PAIR.value and row.question and row.answer
    )
    website_content = SOURCE_SEPARATOR.join(
        f"[Source: {row.title or row.source_url}]\n{row.content[:item_chars]}"
        for row in rows
        if row.type == TrainingType.WEBSITE_CRAWL.value and row.content
    )

    if not qa_content and not website_content:
        return ""

    knowledge_base = KNOWLEDGE_BASE_HEADER
    if qa_content:
        knowledge_base += FAQ_HEADER + qa_content + "\n\n"
    if website_content:
        knowledge_base += WEBSITE_HEADER + website_content + "\n"
    return knowledge_base


class KnowledgeBaseAssembler:
    """Builds the bounded knowledge-base block for one agent."""

    def __init__(
        self,
        db: AsyncSession,
        row_limit: Optional[int] = None,
        item_chars: Optional[int] = None,
    ):
        self.db = db
        self.row_limit = row_limit or settings.knowledge_base_row_limit
        self.item_chars = item_chars or settings.knowledge_base_item_chars

    async def load_rows(self, agent_id: str) -> List[TrainingData]:
        result = await self.db.execute(
            select(TrainingData)
            .where(TrainingData.agent_id == agent_id)
            .order_by(TrainingData.created_at.desc())
            .limit(self.row_limit)
        )
        return list(result.scalars().all())

    async def assemble(self, agent_id: Optional[str]) -> str:
        """Return the knowledge-base text for ``agent_id``; never raises."""
        if not agent_id:
            return ""

        try:
            rows = await self.load_rows(agent_id)
        except SQLAlchemyError as e:
            log.error("Failed to load training data", {"agent_id": agent_id, "error": str(e)})
            return ""

        text = render_knowledge_base(rows, self.item_chars)
        log.debug("Assembled knowledge base", {
            "agent_id": agent_id,
            "rows": len(rows),
            "chars": len(text),
        })
        return text
