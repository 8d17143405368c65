from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from carbon_ledger.core.security import decode_access_token_subject
from carbon_ledger.database import get_db
from carbon_ledger.models import User
from carbon_ledger.services.results import LedgerOutcome
from carbon_ledger.services.statements import StatementRenderer, get_statement_renderer

bearer_scheme = HTTPBearer(auto_error=False)

_DB_DEP = Depends(get_db)
_BEARER_DEP = Depends(bearer_scheme)

# Typed ledger failures -> HTTP status.
ERROR_STATUS: dict[str, int] = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INSUFFICIENT_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "INVALID_STATE_TRANSITION": status.HTTP_409_CONFLICT,
    "NO_ACTIVE_PARTNERSHIP": status.HTTP_403_FORBIDDEN,
    "DEPENDENCY_FAILURE": status.HTTP_502_BAD_GATEWAY,
    "PARTNERSHIP_EXISTS": status.HTTP_409_CONFLICT,
    "INVALID_REQUEST": status.HTTP_400_BAD_REQUEST,
}


def raise_for_outcome(outcome: LedgerOutcome) -> None:
    """Turn a failed ledger outcome into an HTTPException with a structured detail."""

    if outcome.ok:
        return
    err = outcome.error
    raise HTTPException(
        status_code=ERROR_STATUS.get(err.code, status.HTTP_400_BAD_REQUEST),
        detail={"code": err.code, "message": err.message, **err.details},
    )


def _extract_bearer_from_headers(request: Request) -> Optional[str]:
    # Some proxies forward the token under a custom header.
    raw = request.headers.get("authorization") or request.headers.get("x-auth-token")
    if not raw:
        return None
    s = str(raw).strip()
    if not s:
        return None
    if s.lower().startswith("bearer "):
        return s.split(" ", 1)[1].strip()
    return s


def get_current_user(
    request: Request,
    db: Session = _DB_DEP,
    credentials: Optional[HTTPAuthorizationCredentials] = _BEARER_DEP,
) -> User:
    token = credentials.credentials if credentials else _extract_bearer_from_headers(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    subject = decode_access_token_subject(token)
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    user = db.query(User).filter(User.email == subject, User.active.is_(True)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


_CURRENT_USER_DEP = Depends(get_current_user)


def require_admin(user: User = _CURRENT_USER_DEP) -> User:
    if not getattr(user, "is_admin", False):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return user


def get_renderer() -> StatementRenderer:
    return get_statement_renderer()
