"""Generation recorder for completed coloring-page requests."""

from __future__ import annotations

import logging
from typing import List, Optional
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.generation import GenerationRecord
from services.errors import store_errors

logger = logging.getLogger(__name__)


async def record_generation(
    db: AsyncSession,
    *,
    user_id: str,
    image_filename: str,
    prompt_type: str,
    prompt_text: str,
    name_message: Optional[str] = None,
    background_type: Optional[str] = None,
    activity_interest: Optional[str] = None,
    credits_used: int = 1,
) -> GenerationRecord:
    record = GenerationRecord(
        id=str(uuid.uuid4()),
        user_id=user_id,
        image_filename=image_filename,
        prompt_type=prompt_type,
        prompt_text=prompt_text,
        name_message=name_message,
        background_type=background_type,
        activity_interest=activity_interest,
        credits_used=max(int(credits_used), 0),
    )
    async with store_errors("record_generation"):
        db.add(record)
        await db.commit()
        await db.refresh(record)
    logger.info("Recorded generation %s for %s (%s)", record.id, user_id, prompt_type)
    return record


async def list_generations(db: AsyncSession, user_id: str, limit: int = 30) -> List[GenerationRecord]:
    async with store_errors("list_generations"):
        result = await db.execute(
            select(GenerationRecord)
            .where(GenerationRecord.user_id == user_id)
            .order_by(GenerationRecord.created_at.desc())
            .limit(max(1, min(int(limit), 100)))
        )
        return list(result.scalars().all())
