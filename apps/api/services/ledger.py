"""Ledger store: per-account credit totals with atomic adjustments."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.account import SUBSCRIPTION_STATUSES, SUBSCRIPTION_TYPES, Account

logger = logging.getLogger(__name__)


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


async def get_account(db: AsyncSession, user_id: str) -> Optional[Account]:
    """Load an account, bypassing any stale copy in the session identity map."""
    result = await db.execute(
        select(Account).where(Account.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_account_by_email(db: AsyncSession, email: Optional[str]) -> Optional[Account]:
    normalized = normalize_email(email)
    if not normalized:
        return None
    result = await db.execute(
        select(Account)
        .where(func.lower(Account.email) == normalized)
        .order_by(Account.created_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def ensure_account(db: AsyncSession, user_id: str, email: Optional[str] = None) -> Account:
    """Return the account for user_id, creating it with signup credits on first sight.

    Does not commit; the caller owns the surrounding transaction.
    """
    account = await get_account(db, user_id)
    if account:
        if email and account.email.endswith("@local.invalid"):
            account.email = normalize_email(email)
            await db.flush()
        return account

    account = Account(
        id=user_id,
        email=normalize_email(email) or f"{user_id}@local.invalid",
        total_credits=max(int(settings.SIGNUP_CREDITS), 0),
        used_credits=0,
        subscription_status="inactive",
    )
    try:
        async with db.begin_nested():
            db.add(account)
    except IntegrityError:
        # Another request created the same identity first.
        account = await get_account(db, user_id)
        if account is None:
            raise
        return account

    logger.info("Created account %s with %s signup credits", user_id, account.total_credits)
    return account


async def adjust_account(
    db: AsyncSession,
    user_id: str,
    *,
    total_delta: int = 0,
    used_delta: int = 0,
    subscription_status: Optional[str] = None,
    subscription_type: Optional[str] = None,
    groovesell_customer_id: Optional[str] = None,
) -> Optional[Account]:
    """Apply credit deltas in one UPDATE statement and return the refreshed account.

    total_credits is clamped at 0. used_credits is not clamped against the
    total; callers pick deltas that keep used <= total. Returns None when the
    account does not exist. Does not commit.
    """
    if subscription_status is not None and subscription_status not in SUBSCRIPTION_STATUSES:
        raise ValueError(f"Unknown subscription status: {subscription_status}")
    if subscription_type is not None and subscription_type not in SUBSCRIPTION_TYPES:
        raise ValueError(f"Unknown subscription type: {subscription_type}")

    next_total = Account.total_credits + int(total_delta)
    values = {
        "total_credits": case((next_total < 0, 0), else_=next_total),
        "used_credits": Account.used_credits + int(used_delta),
        "updated_at": func.now(),
    }
    if subscription_status is not None:
        values["subscription_status"] = subscription_status
    if subscription_type is not None:
        values["subscription_type"] = subscription_type
    if groovesell_customer_id is not None:
        values["groovesell_customer_id"] = groovesell_customer_id

    result = await db.execute(
        update(Account)
        .where(Account.id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return await get_account(db, user_id)
