"""Credit guard and credit RPC helpers for paid operations."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.account import Account
from services.errors import store_errors
from services.ledger import adjust_account, ensure_account
from services.transactions import list_transactions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsumeResult:
    granted: bool
    available_after: int


async def _available(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(Account.total_credits - Account.used_credits).where(Account.id == user_id)
    )
    return int(result.scalar() or 0)


async def try_consume(db: AsyncSession, user_id: str, amount: int = 1) -> ConsumeResult:
    """Debit `amount` credits if, and only if, the account can cover them.

    The balance check and the increment are the same conditional UPDATE, so
    concurrent callers cannot both pass the check. Commits on return.
    """
    debit = int(amount)
    if debit <= 0:
        raise ValueError("amount must be greater than 0")

    async with store_errors("try_consume"):
        result = await db.execute(
            update(Account)
            .where(
                Account.id == user_id,
                Account.total_credits - Account.used_credits >= debit,
            )
            .values(used_credits=Account.used_credits + debit, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        granted = result.rowcount == 1
        available_after = await _available(db, user_id)
        await db.commit()

    if granted:
        logger.info("Debited %s credit(s) from %s, %s left", debit, user_id, available_after)
    else:
        logger.info("Insufficient credits for %s: required=%s available=%s", user_id, debit, available_after)
    return ConsumeResult(granted=granted, available_after=available_after)


async def release_credits(db: AsyncSession, user_id: str, amount: int) -> None:
    """Reverse a debit whose paid operation failed before producing anything."""
    credit_back = int(amount)
    if credit_back <= 0:
        return
    async with store_errors("release_credits"):
        await adjust_account(db, user_id, used_delta=-credit_back)
        await db.commit()
    logger.info("Released %s credit(s) back to %s", credit_back, user_id)


async def get_available_credits(db: AsyncSession, user_id: str) -> int:
    async with store_errors("get_available_credits"):
        return await _available(db, user_id)


async def use_credits(db: AsyncSession, user_id: str, credits: int = 1) -> bool:
    result = await try_consume(db, user_id, credits)
    return result.granted


async def add_credits(db: AsyncSession, user_id: str, credits: int) -> bool:
    """Grant credits outside the webhook flow; False when the account is unknown."""
    grant = int(credits)
    if grant <= 0:
        raise ValueError("credits must be greater than 0")
    async with store_errors("add_credits"):
        account = await adjust_account(db, user_id, total_delta=grant)
        await db.commit()
    return account is not None


async def get_credit_summary(db: AsyncSession, user_id: str, email: str | None = None) -> Dict[str, Any]:
    async with store_errors("get_credit_summary"):
        account = await ensure_account(db, user_id, email)
        await db.commit()
        entries = await list_transactions(db, user_id, limit=30)
    return {
        "user_id": account.id,
        "total_credits": int(account.total_credits or 0),
        "used_credits": int(account.used_credits or 0),
        "available_credits": account.available_credits,
        "subscription_status": account.subscription_status,
        "subscription_type": account.subscription_type,
        "costs": {
            "coloring_page": max(int(settings.CREDITS_PER_GENERATION), 1),
        },
        "credits_per_purchase": max(int(settings.CREDITS_PER_PURCHASE), 0),
        "recent_transactions": [
            {
                "id": entry.id,
                "order_id": entry.external_order_id,
                "transaction_type": entry.transaction_type,
                "credits_added": entry.credits_added,
                "status": entry.status,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }
