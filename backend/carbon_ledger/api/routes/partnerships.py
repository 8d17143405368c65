from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.api.deps import get_current_user, raise_for_outcome
from carbon_ledger.database import get_db
from carbon_ledger.schemas import (
    DomainRead,
    PartnershipActiveRead,
    PartnershipCreate,
    PartnershipRead,
    PartnershipStatusUpdate,
)
from carbon_ledger.services.audit import audit_event
from carbon_ledger.services.partnership_registry import (
    available_domains,
    is_partnership_active,
    list_partnerships,
    request_partnership,
    set_partnership_status,
    trading_partners,
)

router = APIRouter(prefix="/partnerships", tags=["partnerships"])

_DB_DEP = Depends(get_db)
_USER_DEP = Depends(get_current_user)


def to_partnership_read(p: models.Partnership, viewer_domain_id: int) -> PartnershipRead:
    return PartnershipRead(
        id=p.id,
        domain1=DomainRead.model_validate(p.domain1),
        domain2=DomainRead.model_validate(p.domain2),
        status=p.status,
        message=p.message,
        initiated_by_me=p.domain1_id == viewer_domain_id,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


@router.post("", response_model=PartnershipRead, status_code=status.HTTP_201_CREATED)
def post_partnership(
    payload: PartnershipCreate,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    outcome = request_partnership(
        db,
        initiator_domain_id=current_user.domain_id,
        target_domain_id=payload.target_domain_id,
        message=payload.message,
    )
    raise_for_outcome(outcome)
    partnership = outcome.value
    audit_event(
        "partnership.requested",
        getattr(current_user, "id", None),
        {"partnership_id": partnership.id, "target_domain_id": payload.target_domain_id},
        db=db,
        domain_id=current_user.domain_id,
    )
    return to_partnership_read(partnership, current_user.domain_id)


@router.get("", response_model=list[PartnershipRead])
def get_partnerships(db: Session = _DB_DEP, current_user: models.User = _USER_DEP):
    return [
        to_partnership_read(p, current_user.domain_id)
        for p in list_partnerships(db, domain_id=current_user.domain_id)
    ]


@router.get("/active", response_model=PartnershipActiveRead)
def get_partnership_active(
    domain_id: int = Query(...),
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    return PartnershipActiveRead(
        domain_id=domain_id,
        active=is_partnership_active(db, current_user.domain_id, domain_id),
    )


@router.get("/trading-partners", response_model=list[DomainRead])
def get_trading_partners(db: Session = _DB_DEP, current_user: models.User = _USER_DEP):
    return [DomainRead.model_validate(d) for d in trading_partners(db, domain_id=current_user.domain_id)]


@router.get("/available-domains", response_model=list[DomainRead])
def get_available_domains(db: Session = _DB_DEP, current_user: models.User = _USER_DEP):
    return [
        DomainRead.model_validate(d) for d in available_domains(db, domain_id=current_user.domain_id)
    ]


@router.patch("/{partnership_id}", response_model=PartnershipRead)
def patch_partnership(
    partnership_id: int,
    payload: PartnershipStatusUpdate,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    outcome = set_partnership_status(
        db,
        partnership_id=partnership_id,
        caller_domain_id=current_user.domain_id,
        new_status=payload.status,
    )
    raise_for_outcome(outcome)
    partnership = outcome.value
    audit_event(
        "partnership.status_changed",
        getattr(current_user, "id", None),
        {"partnership_id": partnership.id, "status": partnership.status.value},
        db=db,
        domain_id=current_user.domain_id,
    )
    return to_partnership_read(partnership, current_user.domain_id)
