import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from carbon_ledger.models.domain import utc_now

logger = logging.getLogger("carbon_ledger.audit")


def audit_event(
    action: str,
    user_id: Optional[int],
    payload: Dict[str, Any],
    *,
    db: Session | None = None,
    domain_id: int | None = None,
    idempotency_key: str | None = None,
    request_id: str | None = None,
) -> Optional[int]:
    """
    Persist an audit event; if the DB write fails, fall back to the log.

    Call after the ledger mutation has committed: this commits the session it
    is given. Returns the created audit log id when available.
    """
    event = {
        "action": action,
        "user_id": user_id,
        "domain_id": domain_id,
        "payload": payload,
        "timestamp": utc_now().isoformat(),
    }

    created_session = False
    session: Session | None = db
    try:
        from carbon_ledger import models

        if session is None:
            from carbon_ledger.database import SessionLocal

            session = SessionLocal()
            created_session = True

        if idempotency_key:
            existing = (
                session.query(models.AuditLog.id)
                .filter(models.AuditLog.idempotency_key == idempotency_key)
                .first()
            )
            if existing is not None:
                return existing[0]

        log = models.AuditLog(
            action=action,
            user_id=user_id,
            domain_id=domain_id,
            payload_json=json.dumps(payload or {}, default=str),
            idempotency_key=idempotency_key,
            request_id=request_id,
        )
        session.add(log)
        session.commit()
        return log.id
    except SQLAlchemyError:
        if session is not None:
            session.rollback()
        logger.warning("audit_write_failed", extra={"audit_event": event})
        print(f"[AUDIT-FAIL-DB] {event}")
        return None
    finally:
        if created_session and session is not None:
            session.close()
