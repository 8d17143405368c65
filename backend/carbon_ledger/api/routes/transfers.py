from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.api.deps import get_current_user, raise_for_outcome
from carbon_ledger.database import get_db
from carbon_ledger.schemas import TransferCreate, TransferListRead, TransferRead, TransferReject
from carbon_ledger.services.balance_store import as_amount
from carbon_ledger.services.transfers_service import (
    approve_transfer,
    create_transfer,
    list_transfers,
    reject_transfer,
)

router = APIRouter(prefix="/transfers", tags=["transfers"])

_DB_DEP = Depends(get_db)
_USER_DEP = Depends(get_current_user)


def to_transfer_read(t: models.Transfer) -> TransferRead:
    return TransferRead(
        id=t.id,
        source_intervention_id=t.source_intervention_id,
        source_intervention_ref=t.source_intervention.intervention_id,
        source_domain_id=t.source_domain_id,
        source_company=getattr(t.source_domain, "company_name", None),
        target_domain_id=t.target_domain_id,
        target_company=getattr(t.target_domain, "company_name", None),
        target_intervention_id=t.target_intervention_id,
        target_intervention_ref=getattr(t.target_intervention, "intervention_id", None),
        amount=float(t.amount),
        status=t.status,
        notes=t.notes,
        rejection_reason=t.rejection_reason,
        created_by_id=t.created_by_id,
        created_at=t.created_at,
        completed_at=t.completed_at,
        cancelled_at=t.cancelled_at,
    )


@router.post("", response_model=TransferRead, status_code=status.HTTP_201_CREATED)
def post_transfer(
    payload: TransferCreate,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    outcome = create_transfer(
        db,
        source_intervention_ref=payload.intervention_id,
        source_domain_id=current_user.domain_id,
        target_domain_id=payload.target_domain_id,
        amount=as_amount(payload.amount),
        notes=payload.notes,
        created_by_id=getattr(current_user, "id", None),
    )
    raise_for_outcome(outcome)
    return to_transfer_read(outcome.value)


@router.get("", response_model=TransferListRead)
def get_transfers(
    status_filter: Optional[models.TransferStatus] = Query(None, alias="status"),
    direction: Optional[Literal["incoming", "outgoing"]] = Query(None),
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    items = list_transfers(
        db, domain_id=current_user.domain_id, status=status_filter, direction=direction
    )
    return TransferListRead(items=[to_transfer_read(t) for t in items])


@router.post("/{transfer_id}/approve", response_model=TransferRead)
def post_approve_transfer(
    transfer_id: int,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    outcome = approve_transfer(
        db,
        transfer_id=transfer_id,
        approver_domain_id=current_user.domain_id,
        actor_user_id=getattr(current_user, "id", None),
    )
    raise_for_outcome(outcome)
    return to_transfer_read(outcome.value)


@router.post("/{transfer_id}/reject", response_model=TransferRead)
def post_reject_transfer(
    transfer_id: int,
    payload: Optional[TransferReject] = None,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    outcome = reject_transfer(
        db,
        transfer_id=transfer_id,
        approver_domain_id=current_user.domain_id,
        reason=payload.reason if payload else None,
        actor_user_id=getattr(current_user, "id", None),
    )
    raise_for_outcome(outcome)
    return to_transfer_read(outcome.value)
