"""Payment processor webhook endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from services.errors import AuthenticationFailure, MalformedEvent, WebhookNotConfigured
from services.webhooks import SIGNATURE_HEADER, WebhookReconciler

router = APIRouter()


def get_webhook_reconciler() -> WebhookReconciler:
    return WebhookReconciler()


@router.post("/groovesell")
async def groovesell_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """Apply a signed GrooveSell event.

    Signature failures answer 401 and malformed bodies 400; neither will
    succeed on redelivery. Missing configuration and store outages answer 503
    so GrooveSell retries later.
    """
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    try:
        outcome = await reconciler.handle_event(db, payload, signature)
    except AuthenticationFailure as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except MalformedEvent as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except WebhookNotConfigured as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return {"success": True, "outcome": outcome.value}
