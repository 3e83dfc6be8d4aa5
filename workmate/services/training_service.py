"""
Training Service - manages the knowledge an agent answers from

Q&A pairs are stored as given. Website crawls fetch a page, keep its text
(capped at 50,000 characters) and store it as a ``website_crawl`` row. Many
URLs can be crawled in one streaming batch; a failing URL never stops the
others.
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.config import Settings, settings as default_settings
from workmate.db import Agent, TrainingData, TrainingStatus, TrainingType
from workmate.errors import NotFound, ValidationError
from workmate.services.batch_orchestrator import (
    BatchEvent, batch_process_streaming, iter_batch_events,
)
from workmate.services.web_fetch import WebFetcher

logger = logging.getLogger(__name__)


@dataclass
class CrawlResult:
    training: TrainingData
    content_length: int
    preview: str

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.training.id,
            "title": self.training.title,
            "source_url": self.training.source_url,
            "content_length": self.content_length,
        }


class TrainingService:

    def __init__(
        self,
        db: AsyncSession,
        fetcher: Optional[WebFetcher] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.fetcher = fetcher or WebFetcher(self.config)

    async def get_agent(self, agent_id: str) -> Agent:
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            raise NotFound("Agent not found", agent_id=agent_id)
        return agent

    async def get(self, training_id: str) -> TrainingData:
        row = await self.db.get(TrainingData, training_id)
        if row is None:
            raise NotFound("Training data not found", training_id=training_id)
        return row

    async def list_for_agent(self, agent_id: str) -> List[TrainingData]:
        result = await self.db.execute(
            select(TrainingData)
            .where(TrainingData.agent_id == agent_id)
            .order_by(TrainingData.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_business(self, business_id: str) -> List[TrainingData]:
        result = await self.db.execute(
            select(TrainingData)
            .where(TrainingData.business_id == business_id)
            .order_by(TrainingData.created_at.desc())
        )
        return list(result.scalars().all())

    async def add_qa(
        self,
        business_id: str,
        question: str,
        answer: str,
        agent_id: Optional[str] = None,
    ) -> TrainingData:
        if not question or not question.strip() or not answer or not answer.strip():
            raise ValidationError("Question and answer are required")

        row = TrainingData(
            business_id=business_id,
            agent_id=agent_id,
            type=TrainingType.QA_PAIR.value,
            question=question.strip(),
            answer=answer.strip(),
            status=TrainingStatus.ACTIVE.value,
        )
        self.db.add(row)
        await self.db.commit()
        return row

    async def crawl(self, agent_id: str, url: str) -> CrawlResult:
        """Fetch ``url`` once and store its text for ``agent_id``."""
        if not url or not url.strip():
            raise ValidationError("URL is required")
        url = url.strip()
        agent = await self.get_agent(agent_id)

        logger.info(f"Crawling website: {url}")
        page = await self.fetcher.crawl(url)

        row = TrainingData(
            business_id=agent.business_id,
            agent_id=agent.id,
            type=TrainingType.WEBSITE_CRAWL.value,
            title=page.title,
            content=page.content,
            source_url=url,
            status=TrainingStatus.ACTIVE.value,
        )
        self.db.add(row)
        await self.db.commit()

        return CrawlResult(
            training=row,
            content_length=len(page.content),
            preview=page.content[:self.config.crawl_preview_chars],
        )

    @staticmethod
    def clean_urls(urls: List[str]) -> List[str]:
        cleaned = [u.strip() for u in urls if u and u.strip()]
        if not cleaned:
            raise ValidationError("At least one URL is required")
        return cleaned

    async def _crawl_item(self, agent_id: str, url: str) -> Dict[str, Any]:
        result = await self.crawl(agent_id, url)
        return result.summary()

    async def crawl_many(
        self,
        agent_id: str,
        urls: List[str],
        send_event: Callable[[BatchEvent], Any],
        **batch_options: Any,
    ) -> List[Optional[Dict[str, Any]]]:
        """Crawl ``urls`` sequentially, reporting progress through ``send_event``."""
        urls = self.clean_urls(urls)
        await self.get_agent(agent_id)
        return await batch_process_streaming(
            urls,
            lambda url, index: self._crawl_item(agent_id, url),
            send_event,
            **batch_options,
        )

    async def crawl_events(
        self,
        agent_id: str,
        urls: List[str],
        **batch_options: Any,
    ) -> AsyncIterator[BatchEvent]:
        """Same as ``crawl_many`` but yields the events for streaming to a client."""
        urls = self.clean_urls(urls)
        await self.get_agent(agent_id)
        async for event in iter_batch_events(
            urls,
            lambda url, index: self._crawl_item(agent_id, url),
            **batch_options,
        ):
            yield event

    async def delete(self, training_id: str) -> None:
        row = await self.get(training_id)
        await self.db.delete(row)
        await self.db.commit()
        logger.info(f"Deleted training data {training_id}")
