from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.config import settings
from carbon_ledger.services import balance_store
from carbon_ledger.services.audit import audit_event
from carbon_ledger.services.interventions_service import resolve_intervention
from carbon_ledger.services.notifications import notify
from carbon_ledger.services.results import (
    DEPENDENCY_FAILURE,
    INVALID_REQUEST,
    LedgerOutcome,
    insufficient_amount,
    not_found,
)
from carbon_ledger.services.statements import StatementRenderer, attach_statement

logger = logging.getLogger("carbon_ledger.claims")


def claim_validity() -> timedelta:
    return timedelta(days=int(settings.claim_validity_days))


def _promote_to_active(db: Session, claim_id: int) -> bool:
    rowcount = (
        db.query(models.Claim)
        .filter(models.Claim.id == int(claim_id))
        .filter(models.Claim.status == models.ClaimStatus.pending_pdf)
        .update({"status": models.ClaimStatus.active}, synchronize_session=False)
    )
    return bool(rowcount)


def finalize_statement(db: Session, *, claim: models.Claim, renderer: StatementRenderer) -> bool:
    """Produce the statement of a ``pending_pdf`` claim and promote it to active.

    On any rendering or storage failure the transaction is rolled back and the
    claim stays ``pending_pdf`` (balance still reserved) for the retry pass.
    """

    claim_id = claim.id
    try:
        attach_statement(db, claim=claim, renderer=renderer)
        promoted = _promote_to_active(db, claim_id)
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception(
            "claim_statement_failed",
            extra={"claim_id": claim_id, "error": str(exc)},
        )
        return False

    db.refresh(claim)
    if promoted:
        logger.info("claim_statement_attached", extra={"claim_id": claim_id})
    return True


def create_claim(
    db: Session,
    *,
    intervention_ref: int | str,
    claiming_domain_id: int,
    amount: Decimal,
    renderer: StatementRenderer,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> LedgerOutcome[models.Claim]:
    """Claim ``amount`` of an intervention's abated emissions.

    The balance reservation and the ``pending_pdf`` claim commit together;
    the statement is produced afterwards. A successful outcome whose claim is
    still ``pending_pdf`` means the statement will be retried by the sweeper.
    """

    amt = balance_store.as_amount(amount)
    if amt <= 0:
        return LedgerOutcome.failure(INVALID_REQUEST, "amount must be positive")

    intervention = resolve_intervention(db, intervention_ref)
    if intervention is None:
        return not_found("Intervention", intervention_ref)
    if intervention.status != models.InterventionStatus.verified:
        return LedgerOutcome.failure(
            INVALID_REQUEST,
            "Only verified interventions can be claimed",
            status=intervention.status.value,
        )

    available = balance_store.get_available(db, intervention.id) or Decimal("0")
    if amt > available:
        return insufficient_amount(amt, available)

    reservation = balance_store.reserve(db, intervention_id=intervention.id, amount=amt)
    if not reservation.reserved:
        db.rollback()
        logger.info(
            "claim_reservation_lost",
            extra={"intervention_id": intervention.id, "requested": str(amt)},
        )
        return insufficient_amount(amt, reservation.available)

    if now is None:
        now = models.utc_now()
    claim = models.Claim(
        intervention_id=intervention.id,
        domain_id=int(claiming_domain_id),
        amount=amt,
        vintage=intervention.vintage,
        status=models.ClaimStatus.pending_pdf,
        expiry_date=now + claim_validity(),
        created_at=now,
    )
    db.add(claim)
    db.flush()

    notify(
        db,
        domain_id=claim.domain_id,
        type=models.NotificationType.CLAIM_CREATED,
        message=f"Carbon claim for {amt.normalize():f} tCO2e created",
        metadata={
            "claim_id": claim.id,
            "intervention_id": intervention.intervention_id,
            "amount": float(amt),
            "expiry_date": claim.expiry_date.isoformat(),
        },
    )
    db.commit()
    db.refresh(claim)

    logger.info(
        "claim_created",
        extra={
            "claim_id": claim.id,
            "intervention_id": intervention.id,
            "domain_id": claim.domain_id,
            "amount": str(amt),
            "remaining": str(reservation.available),
        },
    )
    audit_event(
        "claim.created",
        actor_user_id,
        {"claim_id": claim.id, "intervention_id": intervention.id, "amount": str(amt)},
        db=db,
        domain_id=claim.domain_id,
    )

    finalize_statement(db, claim=claim, renderer=renderer)
    return LedgerOutcome.success(claim)


def list_claims(
    db: Session,
    *,
    domain_id: int,
    status: models.ClaimStatus | None = None,
) -> list[models.Claim]:
    q = db.query(models.Claim).filter(models.Claim.domain_id == int(domain_id))
    if status is not None:
        q = q.filter(models.Claim.status == status)
    return q.order_by(models.Claim.created_at.desc(), models.Claim.id.desc()).all()


def get_claim(db: Session, *, claim_id: int, domain_id: int) -> models.Claim | None:
    return (
        db.query(models.Claim)
        .filter(models.Claim.id == int(claim_id))
        .filter(models.Claim.domain_id == int(domain_id))
        .first()
    )


def ensure_statement(
    db: Session,
    *,
    claim_id: int,
    domain_id: int,
    renderer: StatementRenderer,
) -> LedgerOutcome[models.ClaimStatement]:
    """Return the claim's statement, regenerating it for a ``pending_pdf`` claim."""

    claim = get_claim(db, claim_id=claim_id, domain_id=domain_id)
    if claim is None:
        return not_found("Claim", claim_id)

    if claim.statement is None:
        if not finalize_statement(db, claim=claim, renderer=renderer):
            return LedgerOutcome.failure(
                DEPENDENCY_FAILURE,
                "The claim statement could not be generated; it will be retried",
                claim_id=claim.id,
            )
        db.refresh(claim)
    if claim.statement is None:
        return not_found("Statement", claim_id)
    return LedgerOutcome.success(claim.statement)
