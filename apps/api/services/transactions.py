"""Append-only transaction log keyed by the payment processor's order id."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Union
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.transaction import TRANSACTION_STATUSES, TRANSACTION_TYPES, Transaction


def refund_order_id(order_id: str) -> str:
    return f"{order_id}-refund"


async def append_transaction(
    db: AsyncSession,
    *,
    external_order_id: str,
    user_id: str,
    transaction_type: str,
    credits_added: int,
    amount: Optional[Union[Decimal, float, int]] = None,
    currency: Optional[str] = "USD",
    subscription_type: Optional[str] = None,
    status: str = "completed",
) -> bool:
    """Insert a transaction inside a savepoint.

    Returns False when external_order_id is already recorded; the enclosing
    transaction stays usable either way. Does not commit.
    """
    if not external_order_id:
        raise ValueError("external_order_id is required")
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown transaction type: {transaction_type}")
    if status not in TRANSACTION_STATUSES:
        raise ValueError(f"Unknown transaction status: {status}")

    entry = Transaction(
        id=str(uuid.uuid4()),
        external_order_id=external_order_id,
        user_id=user_id,
        transaction_type=transaction_type,
        credits_added=int(credits_added),
        amount=Decimal(str(amount)) if amount is not None else None,
        currency=currency or "USD",
        subscription_type=subscription_type,
        status=status,
    )
    try:
        async with db.begin_nested():
            db.add(entry)
    except IntegrityError:
        return False
    return True


async def find_by_order_id(db: AsyncSession, order_id: str) -> Optional[Transaction]:
    if not order_id:
        return None
    result = await db.execute(select(Transaction).where(Transaction.external_order_id == order_id))
    return result.scalar_one_or_none()


async def list_transactions(db: AsyncSession, user_id: str, limit: int = 50) -> List[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.user_id == user_id)
        .order_by(Transaction.created_at.desc())
        .limit(max(1, min(int(limit), 200)))
    )
    return list(result.scalars().all())
