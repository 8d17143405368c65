"""Bearer token handling.

Tokens are issued by the external identity service; this API only verifies
them and reads the ``sub`` claim (the user's email).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from carbon_ledger.config import settings


def create_access_token_for_subject(subject: str, expires_minutes: int = 60) -> str:
    """Create a signed token with a ``sub`` claim (used by scripts and tests)."""

    expire = datetime.now(timezone.utc) + timedelta(minutes=int(expires_minutes))
    return jwt.encode(
        {"sub": str(subject), "exp": expire},
        settings.secret_key,
        algorithm=settings.algorithm,
    )


def decode_access_token_subject(token: str) -> Optional[str]:
    """Return the token subject, or None when the token is invalid or expired."""

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None
