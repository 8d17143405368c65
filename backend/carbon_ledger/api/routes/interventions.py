from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.api.deps import get_current_user, raise_for_outcome, require_admin
from carbon_ledger.api.routes.transfers import to_transfer_read
from carbon_ledger.database import get_db
from carbon_ledger.schemas import (
    InterventionCreate,
    InterventionRead,
    LedgerReconciliationRead,
    TransferRead,
)
from carbon_ledger.services.audit import audit_event
from carbon_ledger.services.balance_store import as_amount, ledger_snapshot
from carbon_ledger.services.interventions_service import (
    list_interventions,
    register_intervention,
    resolve_intervention,
    transfer_history,
)

router = APIRouter(prefix="/interventions", tags=["interventions"])

_DB_DEP = Depends(get_db)
_USER_DEP = Depends(get_current_user)
_ADMIN_DEP = Depends(require_admin)


def to_intervention_read(i: models.Intervention) -> InterventionRead:
    return InterventionRead(
        id=i.id,
        intervention_id=i.intervention_id,
        domain_id=i.domain_id,
        modality=i.modality,
        geography=i.geography,
        vintage=i.vintage,
        low_carbon_fuel=i.low_carbon_fuel,
        feedstock=i.feedstock,
        certification_scheme=i.certification_scheme,
        total_amount=float(i.total_amount),
        remaining_amount=float(i.remaining_amount),
        status=i.status,
        created_at=i.created_at,
    )


def _visible_intervention(db: Session, ref: str, user) -> models.Intervention:
    intervention = resolve_intervention(db, ref)
    if intervention is None or (
        not getattr(user, "is_admin", False) and intervention.domain_id != user.domain_id
    ):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "NOT_FOUND", "message": "Intervention not found", "ref": ref},
        )
    return intervention


@router.post("", response_model=InterventionRead, status_code=status.HTTP_201_CREATED)
def create_intervention(
    payload: InterventionCreate,
    db: Session = _DB_DEP,
    current_user: models.User = _ADMIN_DEP,
):
    outcome = register_intervention(
        db,
        intervention_id=payload.intervention_id,
        domain_id=payload.domain_id,
        total_amount=as_amount(payload.total_amount),
        vintage=payload.vintage,
        status=payload.status,
        modality=payload.modality,
        geography=payload.geography,
        low_carbon_fuel=payload.low_carbon_fuel,
        feedstock=payload.feedstock,
        certification_scheme=payload.certification_scheme,
    )
    raise_for_outcome(outcome)
    intervention = outcome.value
    audit_event(
        "intervention.registered",
        getattr(current_user, "id", None),
        {"intervention_id": intervention.id, "external_id": intervention.intervention_id},
        db=db,
        domain_id=intervention.domain_id,
    )
    return to_intervention_read(intervention)


@router.get("", response_model=list[InterventionRead])
def get_interventions(
    status_filter: Optional[models.InterventionStatus] = Query(None, alias="status"),
    domain_id: Optional[int] = Query(None),
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    # Admins may look across domains; everyone else sees their own.
    scope = domain_id if getattr(current_user, "is_admin", False) else current_user.domain_id
    return [
        to_intervention_read(i)
        for i in list_interventions(db, domain_id=scope, status=status_filter)
    ]


@router.get("/{ref}", response_model=InterventionRead)
def get_intervention(ref: str, db: Session = _DB_DEP, current_user: models.User = _USER_DEP):
    return to_intervention_read(_visible_intervention(db, ref, current_user))


@router.get("/{ref}/ledger", response_model=LedgerReconciliationRead)
def get_intervention_ledger(
    ref: str, db: Session = _DB_DEP, current_user: models.User = _USER_DEP
):
    snapshot = ledger_snapshot(db, _visible_intervention(db, ref, current_user))
    return LedgerReconciliationRead(
        **{k: (float(v) if k.endswith("_amount") else v) for k, v in snapshot.items()}
    )


@router.get("/{ref}/transfers", response_model=list[TransferRead])
def get_intervention_transfers(
    ref: str, db: Session = _DB_DEP, current_user: models.User = _USER_DEP
):
    intervention = resolve_intervention(db, ref)
    not_found = HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": "NOT_FOUND", "message": "Intervention not found", "ref": ref},
    )
    if intervention is None:
        raise not_found

    viewer = intervention.domain_id if current_user.is_admin else current_user.domain_id
    transfers = transfer_history(db, intervention=intervention, viewer_domain_id=viewer)
    # Non-owners only learn about the intervention through their own incoming transfers.
    if viewer != intervention.domain_id and not transfers:
        raise not_found
    return [to_transfer_read(t) for t in transfers]
