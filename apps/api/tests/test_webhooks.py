import asyncio
import json

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func
from sqlalchemy.future import select

from database import get_db
from main import app
from models.transaction import Transaction
from routers.webhooks import get_webhook_reconciler
from services.errors import AuthenticationFailure, MalformedEvent, WebhookNotConfigured
from services.ledger import adjust_account, ensure_account, get_account
from services.transactions import find_by_order_id
from services.webhooks import (
    SIGNATURE_HEADER,
    WebhookOutcome,
    WebhookReconciler,
    sign_payload,
    verify_signature,
)

SECRET = "groovesell-test-secret"


def _event(event_type: str, **fields) -> bytes:
    body = {"event_type": event_type, **fields}
    return json.dumps(body).encode("utf-8")


async def _seed_buyer(session_maker, user_id: str = "buyer-1", email: str = "buyer@example.com"):
    async with session_maker() as db:
        await ensure_account(db, user_id, email)
        await db.commit()


async def _order_count(db, order_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Transaction).where(Transaction.external_order_id == order_id)
    )
    return int(result.scalar() or 0)


def test_verify_signature_accepts_prefixed_and_bare_hex():
    payload = b'{"event_type":"purchase.completed"}'
    signed = sign_payload(payload, SECRET)

    assert signed.startswith("sha256=")
    assert verify_signature(payload, signed, SECRET)
    assert verify_signature(payload, signed[len("sha256="):], SECRET)
    assert verify_signature(payload, signed.upper().replace("SHA256=", "sha256="), SECRET)
    assert not verify_signature(payload + b" ", signed, SECRET)
    assert not verify_signature(payload, signed, "other-secret")
    assert not verify_signature(payload, None, SECRET)


@pytest.mark.asyncio
async def test_purchase_grants_credits_and_activates_subscription(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET, credits_per_purchase=5)
    payload = _event(
        "purchase.completed",
        order_id="O1",
        customer_email="Buyer@Example.com",
        amount="9.95",
        subscription_type="yearly",
    )

    async with session_maker() as db:
        outcome = await reconciler.handle_event(db, payload, sign_payload(payload, SECRET))
        account = await get_account(db, "buyer-1")
        entry = await find_by_order_id(db, "O1")

    assert outcome is WebhookOutcome.PROCESSED
    assert account.total_credits == 8
    assert account.subscription_status == "active"
    assert account.subscription_type == "yearly"
    assert account.groovesell_customer_id == "O1"
    assert entry.credits_added == 5
    assert entry.transaction_type == "purchase"
    assert entry.user_id == "buyer-1"


@pytest.mark.asyncio
async def test_redelivered_purchase_is_applied_once(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET, credits_per_purchase=5)
    payload = _event("purchase.completed", order_id="O1", customer_email="buyer@example.com")
    signature = sign_payload(payload, SECRET)

    async with session_maker() as db:
        first = await reconciler.handle_event(db, payload, signature)
    async with session_maker() as db:
        second = await reconciler.handle_event(db, payload, signature)
        account = await get_account(db, "buyer-1")
        count = await _order_count(db, "O1")

    assert first is WebhookOutcome.PROCESSED
    assert second is WebhookOutcome.DUPLICATE
    assert account.total_credits == 8
    assert count == 1


@pytest.mark.asyncio
async def test_simultaneous_redeliveries_are_applied_once(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET, credits_per_purchase=5)
    payload = _event("purchase.completed", order_id="O1", customer_email="buyer@example.com")
    signature = sign_payload(payload, SECRET)

    async def deliver():
        async with session_maker() as db:
            return await reconciler.handle_event(db, payload, signature)

    outcomes = await asyncio.gather(*(deliver() for _ in range(5)))

    assert outcomes.count(WebhookOutcome.PROCESSED) == 1
    assert outcomes.count(WebhookOutcome.DUPLICATE) == 4
    async with session_maker() as db:
        account = await get_account(db, "buyer-1")
        count = await _order_count(db, "O1")
    assert account.total_credits == 8
    assert count == 1


@pytest.mark.asyncio
async def test_signature_mismatch_leaves_ledger_untouched(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET)
    payload = _event("purchase.completed", order_id="O1", customer_email="buyer@example.com")

    async with session_maker() as db:
        with pytest.raises(AuthenticationFailure):
            await reconciler.handle_event(db, payload, sign_payload(payload, "wrong-secret"))
        with pytest.raises(AuthenticationFailure):
            await reconciler.handle_event(db, payload, None)
        account = await get_account(db, "buyer-1")
        count = await _order_count(db, "O1")

    assert account.total_credits == 3
    assert count == 0


@pytest.mark.asyncio
async def test_missing_secret_rejects_every_event(session_maker):
    reconciler = WebhookReconciler(secret="")
    payload = _event("purchase.completed", order_id="O1", customer_email="buyer@example.com")

    async with session_maker() as db:
        with pytest.raises(WebhookNotConfigured):
            await reconciler.handle_event(db, payload, sign_payload(payload, SECRET))


@pytest.mark.asyncio
async def test_malformed_body_is_rejected_after_authentication(session_maker):
    reconciler = WebhookReconciler(secret=SECRET)
    not_json = b"order=O1"
    no_order = _event("purchase.completed", customer_email="buyer@example.com")
    await _seed_buyer(session_maker)

    async with session_maker() as db:
        with pytest.raises(MalformedEvent):
            await reconciler.handle_event(db, not_json, sign_payload(not_json, SECRET))
        with pytest.raises(MalformedEvent):
            await reconciler.handle_event(db, no_order, sign_payload(no_order, SECRET))


@pytest.mark.asyncio
async def test_purchase_for_unknown_email_is_unresolved(session_maker):
    reconciler = WebhookReconciler(secret=SECRET)
    payload = _event("purchase.completed", order_id="O9", customer_email="stranger@example.com")

    async with session_maker() as db:
        outcome = await reconciler.handle_event(db, payload, sign_payload(payload, SECRET))
        count = await _order_count(db, "O9")

    assert outcome is WebhookOutcome.UNRESOLVED_ACCOUNT
    assert count == 0


@pytest.mark.asyncio
async def test_refund_reverses_purchase_and_cancels(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET, credits_per_purchase=5)
    purchase = _event("purchase.completed", order_id="O1", customer_email="buyer@example.com", amount=9.95)
    refund = _event("refund.processed", order_id="O1", customer_email="buyer@example.com", amount=9.95)

    async with session_maker() as db:
        await reconciler.handle_event(db, purchase, sign_payload(purchase, SECRET))
    async with session_maker() as db:
        outcome = await reconciler.handle_event(db, refund, sign_payload(refund, SECRET))
        repeat = await reconciler.handle_event(db, refund, sign_payload(refund, SECRET))
        account = await get_account(db, "buyer-1")
        entry = await find_by_order_id(db, "O1-refund")

    assert outcome is WebhookOutcome.PROCESSED
    assert repeat is WebhookOutcome.DUPLICATE
    assert account.total_credits == 3
    assert account.subscription_status == "cancelled"
    assert entry.credits_added == -5
    assert entry.transaction_type == "refund"
    assert entry.user_id == "buyer-1"


@pytest.mark.asyncio
async def test_refund_clamps_total_at_zero_and_keeps_used(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET, credits_per_purchase=5)
    purchase = _event("purchase.completed", order_id="O2", customer_email="buyer@example.com")
    refund = _event("refund.processed", order_id="O2")

    async with session_maker() as db:
        await reconciler.handle_event(db, purchase, sign_payload(purchase, SECRET))
    async with session_maker() as db:
        await adjust_account(db, "buyer-1", total_delta=-6, used_delta=1)
        await db.commit()
        outcome = await reconciler.handle_event(db, refund, sign_payload(refund, SECRET))
        account = await get_account(db, "buyer-1")

    assert outcome is WebhookOutcome.PROCESSED
    assert account.total_credits == 0
    assert account.used_credits == 1


@pytest.mark.asyncio
async def test_refund_of_unknown_order_changes_nothing(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET)
    payload = _event("refund.processed", order_id="missing", customer_email="buyer@example.com")

    async with session_maker() as db:
        outcome = await reconciler.handle_event(db, payload, sign_payload(payload, SECRET))
        account = await get_account(db, "buyer-1")
        count = await _order_count(db, "missing-refund")

    assert outcome is WebhookOutcome.UNKNOWN_ORDER
    assert account.total_credits == 3
    assert account.subscription_status == "inactive"
    assert count == 0


@pytest.mark.asyncio
async def test_refund_of_a_refund_row_is_not_applied(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET, credits_per_purchase=5)
    purchase = _event("purchase.completed", order_id="O1", customer_email="buyer@example.com")
    refund = _event("refund.processed", order_id="O1")
    refund_of_refund = _event("refund.processed", order_id="O1-refund")

    async with session_maker() as db:
        await reconciler.handle_event(db, purchase, sign_payload(purchase, SECRET))
        await reconciler.handle_event(db, refund, sign_payload(refund, SECRET))
        outcome = await reconciler.handle_event(db, refund_of_refund, sign_payload(refund_of_refund, SECRET))
        account = await get_account(db, "buyer-1")
        count = await _order_count(db, "O1-refund-refund")

    assert outcome is WebhookOutcome.UNKNOWN_ORDER
    assert account.total_credits == 3
    assert count == 0


@pytest.mark.asyncio
async def test_amount_outside_ledger_precision_is_malformed(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET)
    too_large = _event(
        "purchase.completed", order_id="O5", customer_email="buyer@example.com", amount="123456789012.50"
    )
    too_precise = _event("purchase.completed", order_id="O6", customer_email="buyer@example.com", amount="9.999")

    async with session_maker() as db:
        for payload in (too_large, too_precise):
            with pytest.raises(MalformedEvent):
                await reconciler.handle_event(db, payload, sign_payload(payload, SECRET))
        account = await get_account(db, "buyer-1")

    assert account.total_credits == 3


@pytest.mark.asyncio
async def test_renewal_adds_credits_without_touching_status(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET, credits_per_purchase=5)
    payload = _event("subscription.renewed", order_id="R1", customer_email="buyer@example.com")

    async with session_maker() as db:
        outcome = await reconciler.handle_event(db, payload, sign_payload(payload, SECRET))
        account = await get_account(db, "buyer-1")

    assert outcome is WebhookOutcome.PROCESSED
    assert account.total_credits == 8
    assert account.subscription_status == "inactive"


@pytest.mark.asyncio
async def test_cancellation_changes_status_only(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET)
    payload = _event("subscription.cancelled", customer_email="buyer@example.com")

    async with session_maker() as db:
        outcome = await reconciler.handle_event(db, payload, sign_payload(payload, SECRET))
        account = await get_account(db, "buyer-1")

    assert outcome is WebhookOutcome.PROCESSED
    assert account.subscription_status == "cancelled"
    assert account.total_credits == 3


@pytest.mark.asyncio
async def test_unknown_event_type_is_ignored(session_maker):
    await _seed_buyer(session_maker)
    reconciler = WebhookReconciler(secret=SECRET)
    payload = _event("customer.updated", order_id="X1", customer_email="buyer@example.com")

    async with session_maker() as db:
        outcome = await reconciler.handle_event(db, payload, sign_payload(payload, SECRET))
        account = await get_account(db, "buyer-1")

    assert outcome is WebhookOutcome.IGNORED
    assert account.total_credits == 3


@pytest.fixture
def webhook_client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    def build(secret: str):
        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_webhook_reconciler] = lambda: WebhookReconciler(
            secret=secret, credits_per_purchase=5
        )
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    yield build
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_webhook_endpoint_status_codes(session_maker, webhook_client):
    await _seed_buyer(session_maker)
    payload = _event("purchase.completed", order_id="O1", customer_email="buyer@example.com")

    async with webhook_client(SECRET) as client:
        ok = await client.post(
            "/webhooks/groovesell",
            content=payload,
            headers={SIGNATURE_HEADER: sign_payload(payload, SECRET), "content-type": "application/json"},
        )
        duplicate = await client.post(
            "/webhooks/groovesell",
            content=payload,
            headers={SIGNATURE_HEADER: sign_payload(payload, SECRET)[len("sha256="):]},
        )
        bad_signature = await client.post(
            "/webhooks/groovesell",
            content=payload,
            headers={SIGNATURE_HEADER: "sha256=" + "0" * 64},
        )
        unsigned = await client.post("/webhooks/groovesell", content=payload)
        garbage = b"not json"
        malformed = await client.post(
            "/webhooks/groovesell",
            content=garbage,
            headers={SIGNATURE_HEADER: sign_payload(garbage, SECRET)},
        )

    assert ok.status_code == 200
    assert ok.json() == {"success": True, "outcome": "processed"}
    assert duplicate.status_code == 200
    assert duplicate.json()["outcome"] == "duplicate"
    assert bad_signature.status_code == 401
    assert unsigned.status_code == 401
    assert malformed.status_code == 400

    async with session_maker() as db:
        account = await get_account(db, "buyer-1")
        count = await _order_count(db, "O1")
    assert account.total_credits == 8
    assert count == 1


@pytest.mark.asyncio
async def test_webhook_endpoint_without_secret_returns_503(session_maker, webhook_client):
    payload = _event("purchase.completed", order_id="O1", customer_email="buyer@example.com")

    async with webhook_client("") as client:
        response = await client.post(
            "/webhooks/groovesell",
            content=payload,
            headers={SIGNATURE_HEADER: sign_payload(payload, SECRET)},
        )

    assert response.status_code == 503
