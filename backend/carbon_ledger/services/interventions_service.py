from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.services.balance_store import as_amount
from carbon_ledger.services.results import INVALID_REQUEST, LedgerOutcome, not_found

logger = logging.getLogger("carbon_ledger.interventions")


def resolve_intervention(db: Session, ref: int | str) -> models.Intervention | None:
    """Look an intervention up by internal id or by its external identifier.

    The external ``intervention_id`` wins; a purely numeric reference that
    matches no external identifier falls back to the internal id.
    """

    if ref is None:
        return None
    s = str(ref).strip()
    if not s:
        return None

    found = (
        db.query(models.Intervention).filter(models.Intervention.intervention_id == s).first()
    )
    if found is None and s.isdigit():
        found = db.get(models.Intervention, int(s))
    return found


def list_interventions(
    db: Session,
    *,
    domain_id: int | None = None,
    status: models.InterventionStatus | None = None,
) -> list[models.Intervention]:
    q = db.query(models.Intervention)
    if domain_id is not None:
        q = q.filter(models.Intervention.domain_id == int(domain_id))
    if status is not None:
        q = q.filter(models.Intervention.status == status)
    return q.order_by(models.Intervention.created_at.desc(), models.Intervention.id.desc()).all()


def register_intervention(
    db: Session,
    *,
    intervention_id: str,
    domain_id: int,
    total_amount: Decimal,
    vintage: str,
    status: models.InterventionStatus = models.InterventionStatus.verified,
    **attrs: Any,
) -> LedgerOutcome[models.Intervention]:
    """Create an intervention with its full amount available."""

    total = as_amount(total_amount)
    if total <= 0:
        return LedgerOutcome.failure(INVALID_REQUEST, "total_amount must be positive")

    if db.get(models.Domain, int(domain_id)) is None:
        return not_found("Domain", domain_id)

    intervention = models.Intervention(
        intervention_id=str(intervention_id).strip(),
        domain_id=int(domain_id),
        total_amount=total,
        remaining_amount=total,
        vintage=str(vintage),
        status=status,
        **attrs,
    )
    db.add(intervention)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return LedgerOutcome.failure(
            INVALID_REQUEST,
            "An intervention with this identifier already exists",
            intervention_id=str(intervention_id),
        )
    db.refresh(intervention)

    logger.info(
        "intervention_registered",
        extra={
            "intervention_id": intervention.id,
            "external_id": intervention.intervention_id,
            "domain_id": intervention.domain_id,
            "total_amount": str(total),
        },
    )
    return LedgerOutcome.success(intervention)


def transfer_history(
    db: Session, *, intervention: models.Intervention, viewer_domain_id: int
) -> list[models.Transfer]:
    """Transfers drawn from ``intervention`` that the viewer is a party to, newest first."""

    q = db.query(models.Transfer).filter(
        models.Transfer.source_intervention_id == intervention.id
    )
    if int(viewer_domain_id) != int(intervention.domain_id):
        q = q.filter(models.Transfer.target_domain_id == int(viewer_domain_id))
    return q.order_by(models.Transfer.created_at.desc(), models.Transfer.id.desc()).all()
