"""Billing and credits router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import require_session, scoped_user_id
from routers.rate_limit import rate_limit
from services.credits import get_credit_summary
from services.errors import store_errors
from services.generations import list_generations
from services.identity import SessionIdentity
from services.transactions import list_transactions

router = APIRouter()


@router.get("/credits")
async def credits_summary(
    user_id: Optional[str] = Query(default=None),
    session: SessionIdentity = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    """Return the caller's ledger, creating the account with signup credits on first visit."""
    owner_id = scoped_user_id(session, user_id)
    return await get_credit_summary(db, owner_id, session.email)


@router.get("/transactions")
async def transaction_history(
    user_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    _rate_limit: None = Depends(rate_limit("billing_transactions", limit=120, window_seconds=3600)),
    session: SessionIdentity = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    owner_id = scoped_user_id(session, user_id)
    async with store_errors("list_transactions"):
        rows = await list_transactions(db, owner_id, limit=limit)
    return [
        {
            "id": row.id,
            "order_id": row.external_order_id,
            "transaction_type": row.transaction_type,
            "credits_added": row.credits_added,
            "amount": float(row.amount) if row.amount is not None else None,
            "currency": row.currency,
            "subscription_type": row.subscription_type,
            "status": row.status,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in rows
    ]


@router.get("/generations")
async def generation_history(
    user_id: Optional[str] = Query(default=None),
    limit: int = Query(default=30, ge=1, le=100),
    session: SessionIdentity = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    owner_id = scoped_user_id(session, user_id)
    rows = await list_generations(db, owner_id, limit=limit)
    return [
        {
            "id": row.id,
            "image_filename": row.image_filename,
            "prompt_type": row.prompt_type,
            "name_message": row.name_message,
            "background_type": row.background_type,
            "activity_interest": row.activity_interest,
            "credits_used": row.credits_used,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in rows
    ]
