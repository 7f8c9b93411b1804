"""Verification of session tokens minted by the identity provider.

This service never issues credentials. The identity provider signs a JWT
with the shared ``JWT_SECRET``; each request carries it as a Bearer token and
we only read back who the caller is. The email claim is mandatory because
GrooveSell events reach an account through its email address.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from jose import JWTError, jwt

from config import settings
from services.ledger import normalize_email


SESSION_TOKEN_TYPE = "coloring_session"
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class InvalidSession(ValueError):
    """Raised when a Bearer token cannot identify a caller."""


@dataclass(frozen=True)
class SessionIdentity:
    user_id: str
    email: str


def verify_session_token(token: str) -> SessionIdentity:
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_exp": True, "require_sub": True},
        )
    except JWTError as exc:
        raise InvalidSession("Invalid or expired session token.") from exc

    if str(claims.get("type", "")).strip() != SESSION_TOKEN_TYPE:
        raise InvalidSession("Invalid session token type.")

    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        raise InvalidSession("Session token missing subject.")

    email = normalize_email(claims.get("email"))
    if not email:
        raise InvalidSession("Session token missing email.")
    if not EMAIL_PATTERN.match(email):
        raise InvalidSession("Session token email is malformed.")

    return SessionIdentity(user_id=user_id, email=email)
