"""Billing-layer exceptions mapped to HTTP responses in main.py."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError


class BillingError(RuntimeError):
    """Base class for credit and webhook failures."""


class AuthenticationFailure(BillingError):
    """Raised when a webhook signature is missing or does not match."""


class WebhookNotConfigured(BillingError):
    """Raised when no webhook secret is configured; every event is rejected."""


class MalformedEvent(BillingError):
    """Raised when a signed webhook body cannot be parsed into an event."""


class StoreUnavailable(BillingError):
    """Raised on transient database failures; callers may retry after backoff."""


@asynccontextmanager
async def store_errors(operation: str) -> AsyncIterator[None]:
    """Translate transient SQLAlchemy failures into StoreUnavailable."""
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
        raise StoreUnavailable(f"{operation} failed: store unavailable") from exc
