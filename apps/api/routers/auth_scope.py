"""Bearer-session dependencies shared by the billing and image routers."""

from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.identity import InvalidSession, SessionIdentity, verify_session_token


bearer_scheme = HTTPBearer(auto_error=False)


async def require_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> SessionIdentity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        return verify_session_token(credentials.credentials)
    except InvalidSession as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def scoped_user_id(session: SessionIdentity, requested_user_id: Optional[str] = None) -> str:
    """Ledger reads are limited to the caller's own account."""
    if requested_user_id and requested_user_id != session.user_id:
        raise HTTPException(status_code=403, detail="user_id does not match authenticated session.")
    return session.user_id
