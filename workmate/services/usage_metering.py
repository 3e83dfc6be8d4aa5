"""
Usage Metering - append-only accounting of billable AI actions

Only records and reads. Whether a tenant may keep spending is decided by the
caller; the remaining-credit counter is a plain column on the business row.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workmate.db import Business, UsageLog, UsageType
from workmate.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


class UsageMeter:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        tenant_id: str,
        usage_type: str,
        quantity: int = 1,
        credits_used: Optional[int] = None,
        commit: bool = True,
    ) -> UsageLog:
        try:
            usage_type = UsageType(usage_type).value
        except ValueError:
            raise ValidationError(f"Invalid usage type: {usage_type}")
        if quantity < 1:
            raise ValidationError("Usage quantity must be at least 1")

        entry = UsageLog(
            business_id=tenant_id,
            type=usage_type,
            quantity=quantity,
            credits_used=credits_used,
        )
        self.db.add(entry)
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

        logger.info(f"Usage recorded: business={tenant_id} type={usage_type} qty={quantity} credits={credits_used}")
        return entry

    async def debit_credits(self, tenant_id: str, credits: int) -> None:
        """Decrement the running balance in one UPDATE statement. Not committed here."""
        await self.db.execute(
            update(Business)
            .where(Business.id == tenant_id)
            .values(ai_credits_remaining=Business.ai_credits_remaining - credits)
        )

    async def remaining_credits(self, tenant_id: str) -> int:
        result = await self.db.execute(
            select(Business.ai_credits_remaining).where(Business.id == tenant_id)
        )
        remaining = result.scalar_one_or_none()
        if remaining is None:
            raise NotFound("Business not found", business_id=tenant_id)
        return remaining

    async def set_credit_limit(self, tenant_id: str, limit: int) -> int:
        if limit < 0:
            raise ValidationError("Credit limit cannot be negative")
        result = await self.db.execute(
            update(Business)
            .where(Business.id == tenant_id)
            .values(ai_credits_remaining=limit)
        )
        if result.rowcount == 0:
            raise NotFound("Business not found", business_id=tenant_id)
        await self.db.commit()
        return limit

    async def recent(self, tenant_id: str, limit: int = 50) -> List[UsageLog]:
        result = await self.db.execute(
            select(UsageLog)
            .where(UsageLog.business_id == tenant_id)
            .order_by(UsageLog.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
