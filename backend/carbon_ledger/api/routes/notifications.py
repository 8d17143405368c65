from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.api.deps import get_current_user
from carbon_ledger.database import get_db
from carbon_ledger.schemas import NotificationRead
from carbon_ledger.services.notifications import list_notifications, mark_read

router = APIRouter(prefix="/notifications", tags=["notifications"])

_DB_DEP = Depends(get_db)
_USER_DEP = Depends(get_current_user)


def to_notification_read(n: models.Notification) -> NotificationRead:
    return NotificationRead(
        id=n.id,
        type=n.type,
        message=n.message,
        metadata=n.metadata_json,
        read=n.read,
        created_at=n.created_at,
    )


@router.get("", response_model=list[NotificationRead])
def get_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    items = list_notifications(
        db, domain_id=current_user.domain_id, unread_only=unread_only, limit=limit
    )
    return [to_notification_read(n) for n in items]


@router.post("/{notification_id}/read", response_model=NotificationRead)
def post_notification_read(
    notification_id: int,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    notification = mark_read(db, notification_id=notification_id, domain_id=current_user.domain_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "NOT_FOUND", "message": "Notification not found"},
        )
    return to_notification_read(notification)
