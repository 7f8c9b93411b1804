"""GrooveSell webhook reconciliation into the credit ledger."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
import hashlib
import hmac
import json
import logging
from typing import Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.account import SUBSCRIPTION_TYPES
from services.errors import (
    AuthenticationFailure,
    MalformedEvent,
    StoreUnavailable,
    WebhookNotConfigured,
    store_errors,
)
from services.ledger import adjust_account, find_account_by_email
from services.transactions import append_transaction, find_by_order_id, refund_order_id

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-groovesell-signature"
SIGNATURE_PREFIX = "sha256="


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNRESOLVED_ACCOUNT = "unresolved_account"
    UNKNOWN_ORDER = "unknown_order"


class GrooveSellEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_type: str
    order_id: str = ""
    customer_email: str = ""
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    currency: Optional[str] = "USD"
    status: Optional[str] = None
    subscription_type: Optional[str] = None
    created_at: Optional[str] = None


def sign_payload(payload: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """Constant-time check of a hex HMAC-SHA256 signature, with or without the sha256= prefix."""
    if not signature or not secret:
        return False
    provided = signature.strip()
    if provided.lower().startswith(SIGNATURE_PREFIX):
        provided = provided[len(SIGNATURE_PREFIX):]
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("ascii"), provided.lower().encode("utf-8"))


def parse_event(payload: bytes) -> GrooveSellEvent:
    try:
        data = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedEvent("Webhook body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise MalformedEvent("Webhook body must be a JSON object")
    try:
        return GrooveSellEvent.model_validate(data)
    except ValidationError as exc:
        raise MalformedEvent(f"Webhook body failed validation: {exc.error_count()} error(s)") from exc


Handler = Callable[[AsyncSession, GrooveSellEvent], Awaitable[WebhookOutcome]]


class WebhookReconciler:
    """Verify GrooveSell events and apply them to the ledger exactly once.

    Each handler inserts its transaction row before touching the ledger, in
    the same database transaction, so a redelivered event hits the unique
    order id and is acknowledged without being applied again.
    """

    def __init__(self, secret: Optional[str] = None, credits_per_purchase: Optional[int] = None):
        self.secret = settings.GROOVESELL_WEBHOOK_SECRET if secret is None else secret
        self.credits_per_purchase = max(
            int(settings.CREDITS_PER_PURCHASE if credits_per_purchase is None else credits_per_purchase),
            0,
        )
        self._handlers: Dict[str, Handler] = {
            "purchase.completed": self._handle_purchase,
            "subscription.created": self._handle_purchase,
            "subscription.renewed": self._handle_renewal,
            "subscription.cancelled": self._handle_cancellation,
            "refund.processed": self._handle_refund,
        }

    def authenticate(self, payload: bytes, signature: Optional[str]) -> None:
        secret = (self.secret or "").strip()
        if not secret:
            logger.error("GROOVESELL_WEBHOOK_SECRET not configured; rejecting webhook")
            raise WebhookNotConfigured("Webhook secret not configured")
        if not signature:
            raise AuthenticationFailure("Missing signature")
        if not verify_signature(payload, signature, secret):
            raise AuthenticationFailure("Invalid signature")

    async def handle_event(
        self,
        db: AsyncSession,
        payload: bytes,
        signature: Optional[str],
    ) -> WebhookOutcome:
        self.authenticate(payload, signature)
        event = parse_event(payload)

        handler = self._handlers.get(event.event_type)
        if handler is None:
            logger.info("Unhandled GrooveSell event type %s (order %s)", event.event_type, event.order_id)
            return WebhookOutcome.IGNORED

        try:
            async with store_errors(f"webhook {event.event_type}"):
                outcome = await handler(db, event)
                if outcome is not WebhookOutcome.PROCESSED:
                    await db.rollback()
        except StoreUnavailable:
            await db.rollback()
            logger.warning(
                "Store unavailable for event_type=%s order_id=%s email=%s",
                event.event_type,
                event.order_id,
                event.customer_email,
            )
            raise
        except MalformedEvent:
            await db.rollback()
            raise
        except Exception:
            await db.rollback()
            logger.exception(
                "Webhook processing failed for event_type=%s order_id=%s email=%s",
                event.event_type,
                event.order_id,
                event.customer_email,
            )
            raise

        logger.info(
            "GrooveSell %s for order %s (%s): %s",
            event.event_type,
            event.order_id,
            event.customer_email,
            outcome.value,
        )
        return outcome

    async def _record_then_apply(
        self,
        db: AsyncSession,
        transaction_fields: dict,
        apply: Callable[[], Awaitable[object]],
    ) -> WebhookOutcome:
        inserted = await append_transaction(db, **transaction_fields)
        if not inserted:
            await db.rollback()
            return WebhookOutcome.DUPLICATE
        await apply()
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            return WebhookOutcome.DUPLICATE
        return WebhookOutcome.PROCESSED

    @staticmethod
    def _require_order_id(event: GrooveSellEvent) -> str:
        order_id = (event.order_id or "").strip()
        if not order_id:
            raise MalformedEvent(f"order_id is required for {event.event_type}")
        return order_id

    @staticmethod
    def _subscription_type(event: GrooveSellEvent) -> str:
        value = (event.subscription_type or "").strip().lower()
        return value if value in SUBSCRIPTION_TYPES else "monthly"

    async def _handle_purchase(self, db: AsyncSession, event: GrooveSellEvent) -> WebhookOutcome:
        order_id = self._require_order_id(event)
        account = await find_account_by_email(db, event.customer_email)
        if account is None:
            logger.warning("No account for purchase email %s (order %s)", event.customer_email, order_id)
            return WebhookOutcome.UNRESOLVED_ACCOUNT

        credits = self.credits_per_purchase
        subscription_type = self._subscription_type(event)
        return await self._record_then_apply(
            db,
            {
                "external_order_id": order_id,
                "user_id": account.id,
                "transaction_type": "purchase",
                "credits_added": credits,
                "amount": event.amount,
                "currency": event.currency,
                "subscription_type": subscription_type,
                "status": "completed",
            },
            lambda: adjust_account(
                db,
                account.id,
                total_delta=credits,
                subscription_status="active",
                subscription_type=subscription_type,
                groovesell_customer_id=order_id,
            ),
        )

    async def _handle_renewal(self, db: AsyncSession, event: GrooveSellEvent) -> WebhookOutcome:
        order_id = self._require_order_id(event)
        account = await find_account_by_email(db, event.customer_email)
        if account is None:
            logger.warning("No account for renewal email %s (order %s)", event.customer_email, order_id)
            return WebhookOutcome.UNRESOLVED_ACCOUNT

        credits = self.credits_per_purchase
        return await self._record_then_apply(
            db,
            {
                "external_order_id": order_id,
                "user_id": account.id,
                "transaction_type": "purchase",
                "credits_added": credits,
                "amount": event.amount,
                "currency": event.currency,
                "subscription_type": self._subscription_type(event),
                "status": "completed",
            },
            lambda: adjust_account(db, account.id, total_delta=credits),
        )

    async def _handle_cancellation(self, db: AsyncSession, event: GrooveSellEvent) -> WebhookOutcome:
        account = await find_account_by_email(db, event.customer_email)
        if account is None:
            logger.warning("No account for cancellation email %s", event.customer_email)
            return WebhookOutcome.UNRESOLVED_ACCOUNT

        await adjust_account(db, account.id, subscription_status="cancelled")
        await db.commit()
        return WebhookOutcome.PROCESSED

    async def _handle_refund(self, db: AsyncSession, event: GrooveSellEvent) -> WebhookOutcome:
        order_id = self._require_order_id(event)
        original = await find_by_order_id(db, order_id)
        if original is None or original.transaction_type != "purchase":
            logger.warning("No purchase to refund for order %s", order_id)
            return WebhookOutcome.UNKNOWN_ORDER

        granted = int(original.credits_added or 0)
        user_id = original.user_id
        return await self._record_then_apply(
            db,
            {
                "external_order_id": refund_order_id(order_id),
                "user_id": user_id,
                "transaction_type": "refund",
                "credits_added": -granted,
                "amount": -event.amount if event.amount is not None else None,
                "currency": event.currency,
                "status": "completed",
            },
            # The clamp at zero removes min(granted, total_credits).
            lambda: adjust_account(
                db,
                user_id,
                total_delta=-max(granted, 0),
                subscription_status="cancelled",
            ),
        )
