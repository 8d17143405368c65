from __future__ import annotations

import logging
from html import escape

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.services.email_sender import (
    EmailMessage,
    EmailSender,
    get_email_sender,
    send_email_safely,
)
from carbon_ledger.services.notifications import notify
from carbon_ledger.services.results import (
    INVALID_REQUEST,
    PARTNERSHIP_EXISTS,
    LedgerOutcome,
    forbidden,
    invalid_transition,
    not_found,
)

logger = logging.getLogger("carbon_ledger.partnerships")

PS = models.PartnershipStatus

# Receiver-driven transitions. Reactivation (inactive -> pending) goes through request_partnership.
_ALLOWED_STATUS_CHANGES: dict[PS, set[PS]] = {
    PS.pending: {PS.active, PS.inactive},
    PS.active: {PS.inactive},
    PS.inactive: set(),
}


def _pair(a: int, b: int) -> tuple[int, int]:
    a, b = int(a), int(b)
    return (a, b) if a <= b else (b, a)


def find_partnership(db: Session, a: int, b: int) -> models.Partnership | None:
    low, high = _pair(a, b)
    return (
        db.query(models.Partnership)
        .filter(models.Partnership.domain_low_id == low)
        .filter(models.Partnership.domain_high_id == high)
        .first()
    )


def is_partnership_active(db: Session, a: int, b: int) -> bool:
    """Order-independent check for an active partnership between two domains."""

    low, high = _pair(a, b)
    found = (
        db.query(models.Partnership.id)
        .filter(models.Partnership.domain_low_id == low)
        .filter(models.Partnership.domain_high_id == high)
        .filter(models.Partnership.status == PS.active)
        .first()
    )
    return found is not None


def request_partnership(
    db: Session,
    *,
    initiator_domain_id: int,
    target_domain_id: int,
    message: str | None = None,
    email_sender: EmailSender | None = None,
) -> LedgerOutcome[models.Partnership]:
    """Create a pending partnership, or re-open an inactive one as pending.

    The requester becomes ``domain1`` (initiator) either way, so the other
    side is the one that may accept.
    """

    initiator_id = int(initiator_domain_id)
    target_id = int(target_domain_id)
    if initiator_id == target_id:
        return LedgerOutcome.failure(INVALID_REQUEST, "A domain cannot partner with itself")

    initiator = db.get(models.Domain, initiator_id)
    target = db.get(models.Domain, target_id)
    if initiator is None:
        return not_found("Domain", initiator_id)
    if target is None:
        return not_found("Domain", target_id)

    existing = find_partnership(db, initiator_id, target_id)
    if existing is not None and existing.status != PS.inactive:
        return LedgerOutcome.failure(
            PARTNERSHIP_EXISTS,
            "A partnership between these domains already exists",
            partnership_id=existing.id,
            status=existing.status.value,
        )

    low, high = _pair(initiator_id, target_id)
    if existing is not None:
        rowcount = (
            db.query(models.Partnership)
            .filter(models.Partnership.id == existing.id)
            .filter(models.Partnership.status == PS.inactive)
            .update(
                {
                    "status": PS.pending,
                    "domain1_id": initiator_id,
                    "domain2_id": target_id,
                    "message": message,
                    "updated_at": models.utc_now(),
                },
                synchronize_session=False,
            )
        )
        if not rowcount:
            db.rollback()
            return LedgerOutcome.failure(
                PARTNERSHIP_EXISTS,
                "A partnership between these domains already exists",
                partnership_id=existing.id,
            )
        partnership_id = existing.id
        reactivated = True
    else:
        partnership = models.Partnership(
            domain1_id=initiator_id,
            domain2_id=target_id,
            domain_low_id=low,
            domain_high_id=high,
            status=PS.pending,
            message=message,
        )
        db.add(partnership)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            return LedgerOutcome.failure(
                PARTNERSHIP_EXISTS, "A partnership between these domains already exists"
            )
        partnership_id = partnership.id
        reactivated = False

    text = f"New partnership request from {initiator.company_name}"
    if message:
        text = f"{text}: {message}"
    notify(
        db,
        domain_id=target_id,
        type=models.NotificationType.PARTNERSHIP_REQUEST,
        message=text,
        metadata={"partnership_id": partnership_id, "source_company": initiator.company_name},
    )
    db.commit()

    partnership = db.get(models.Partnership, partnership_id, populate_existing=True)
    logger.info(
        "partnership_requested",
        extra={
            "partnership_id": partnership_id,
            "initiator_domain_id": initiator_id,
            "target_domain_id": target_id,
            "reactivated": reactivated,
        },
    )

    send_email_safely(
        email_sender or get_email_sender(),
        EmailMessage(
            to=target.company_email or "",
            subject="New partnership request",
            html=(
                "<h1>New Partnership Request</h1>"
                f"<p>{escape(initiator.company_name)} ({escape(initiator.name)}) would like to "
                f"partner with {escape(target.company_name)}.</p>"
                + (f"<p>Message: {escape(message)}</p>" if message else "")
            ),
        ),
        partnership_id=partnership_id,
    )
    return LedgerOutcome.success(partnership)


def set_partnership_status(
    db: Session,
    *,
    partnership_id: int,
    caller_domain_id: int,
    new_status: PS,
) -> LedgerOutcome[models.Partnership]:
    partnership = db.get(models.Partnership, int(partnership_id))
    if partnership is None:
        return not_found("Partnership", partnership_id)

    caller_id = int(caller_domain_id)
    if caller_id not in {partnership.domain1_id, partnership.domain2_id}:
        return not_found("Partnership", partnership_id)
    if caller_id != partnership.domain2_id:
        if new_status == PS.active:
            return forbidden("A domain cannot accept its own partnership request")
        return forbidden("Only the receiving domain can change the partnership status")

    current = partnership.status
    if new_status not in _ALLOWED_STATUS_CHANGES.get(current, set()):
        return invalid_transition(current.value, new_status.value)

    rowcount = (
        db.query(models.Partnership)
        .filter(models.Partnership.id == partnership.id)
        .filter(models.Partnership.status == current)
        .update(
            {"status": new_status, "updated_at": models.utc_now()},
            synchronize_session=False,
        )
    )
    if not rowcount:
        db.rollback()
        fresh = db.get(models.Partnership, int(partnership_id), populate_existing=True)
        return invalid_transition(
            fresh.status.value if fresh is not None else current.value, new_status.value
        )

    receiver = partnership.domain2
    notify(
        db,
        domain_id=partnership.domain1_id,
        type=models.NotificationType.PARTNERSHIP_STATUS_CHANGED,
        message=f"Partnership with {receiver.company_name} is now {new_status.value}",
        metadata={
            "partnership_id": partnership.id,
            "from_status": current.value,
            "to_status": new_status.value,
        },
    )
    db.commit()

    logger.info(
        "partnership_status_changed",
        extra={
            "partnership_id": partnership.id,
            "from_status": current.value,
            "to_status": new_status.value,
            "caller_domain_id": caller_id,
        },
    )
    return LedgerOutcome.success(
        db.get(models.Partnership, int(partnership_id), populate_existing=True)
    )


def list_partnerships(db: Session, *, domain_id: int) -> list[models.Partnership]:
    d = int(domain_id)
    return (
        db.query(models.Partnership)
        .filter(or_(models.Partnership.domain1_id == d, models.Partnership.domain2_id == d))
        .order_by(models.Partnership.created_at.desc(), models.Partnership.id.desc())
        .all()
    )


def trading_partners(db: Session, *, domain_id: int) -> list[models.Domain]:
    """Domains with an active partnership with ``domain_id``."""

    d = int(domain_id)
    active = (
        db.query(models.Partnership)
        .filter(models.Partnership.status == PS.active)
        .filter(or_(models.Partnership.domain1_id == d, models.Partnership.domain2_id == d))
        .all()
    )
    partner_ids = {p.domain2_id if p.domain1_id == d else p.domain1_id for p in active}
    if not partner_ids:
        return []
    return (
        db.query(models.Domain)
        .filter(models.Domain.id.in_(partner_ids))
        .order_by(models.Domain.company_name.asc())
        .all()
    )


def available_domains(db: Session, *, domain_id: int) -> list[models.Domain]:
    """Domains the caller could send a partnership request to."""

    d = int(domain_id)
    taken = (
        db.query(models.Partnership.domain1_id, models.Partnership.domain2_id)
        .filter(models.Partnership.status != PS.inactive)
        .filter(or_(models.Partnership.domain1_id == d, models.Partnership.domain2_id == d))
        .all()
    )
    excluded = {d}
    for a, b in taken:
        excluded.add(int(a))
        excluded.add(int(b))
    return (
        db.query(models.Domain)
        .filter(models.Domain.id.notin_(excluded))
        .order_by(models.Domain.company_name.asc())
        .all()
    )
