from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from carbon_ledger import models

logger = logging.getLogger("carbon_ledger.notifications")


def notify(
    db: Session,
    *,
    domain_id: int,
    type: models.NotificationType,
    message: str,
    metadata: dict[str, Any] | None = None,
    idempotency_key: str | None = None,
) -> models.Notification | None:
    """Stage an in-app notification inside the caller's transaction.

    Returns None when ``idempotency_key`` was already used, so re-running a
    sweep never produces a second notification for the same event.
    """

    if idempotency_key:
        existing = (
            db.query(models.Notification.id)
            .filter(models.Notification.idempotency_key == idempotency_key)
            .first()
        )
        if existing is not None:
            return None

    notification = models.Notification(
        domain_id=int(domain_id),
        type=type,
        message=message,
        metadata_json=metadata or {},
        idempotency_key=idempotency_key,
        read=False,
    )
    db.add(notification)
    db.flush()
    logger.info(
        "notification_staged",
        extra={"domain_id": int(domain_id), "notification_type": type.value},
    )
    return notification


def list_notifications(
    db: Session, *, domain_id: int, unread_only: bool = False, limit: int = 100
) -> list[models.Notification]:
    q = db.query(models.Notification).filter(models.Notification.domain_id == int(domain_id))
    if unread_only:
        q = q.filter(models.Notification.read.is_(False))
    return (
        q.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .limit(int(limit))
        .all()
    )


def mark_read(db: Session, *, notification_id: int, domain_id: int) -> models.Notification | None:
    notification = (
        db.query(models.Notification)
        .filter(models.Notification.id == int(notification_id))
        .filter(models.Notification.domain_id == int(domain_id))
        .first()
    )
    if notification is None:
        return None
    if not notification.read:
        notification.read = True
        db.commit()
        db.refresh(notification)
    return notification
