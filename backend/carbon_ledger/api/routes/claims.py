from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.api.deps import get_current_user, get_renderer, raise_for_outcome
from carbon_ledger.config import settings
from carbon_ledger.database import get_db
from carbon_ledger.schemas import ClaimCreate, ClaimListRead, ClaimRead, ClaimStatementRead
from carbon_ledger.services.balance_store import as_amount
from carbon_ledger.services.claims_service import (
    create_claim,
    ensure_statement,
    get_claim,
    list_claims,
)
from carbon_ledger.services.statement_storage import resolve_storage_uri
from carbon_ledger.services.statements import StatementRenderer

router = APIRouter(prefix="/claims", tags=["claims"])

_DB_DEP = Depends(get_db)
_USER_DEP = Depends(get_current_user)
_RENDERER_DEP = Depends(get_renderer)


def _statement_url(claim_id: int) -> str:
    return f"{settings.api_prefix}/claims/{claim_id}/statement"


def to_claim_read(c: models.Claim) -> ClaimRead:
    statement = None
    if c.statement is not None:
        s = c.statement
        statement = ClaimStatementRead(
            id=s.id,
            filename=s.filename,
            content_type=s.content_type,
            checksum_sha256=s.checksum_sha256,
            size_bytes=s.size_bytes,
            template_version=s.template_version,
            created_at=s.created_at,
            download_url=_statement_url(c.id),
        )
    return ClaimRead(
        id=c.id,
        intervention_id=c.intervention_id,
        intervention_ref=c.intervention.intervention_id,
        domain_id=c.domain_id,
        amount=float(c.amount),
        vintage=c.vintage,
        status=c.status,
        expiry_date=c.expiry_date,
        created_at=c.created_at,
        statement=statement,
    )


@router.post(
    "",
    response_model=ClaimRead,
    status_code=status.HTTP_201_CREATED,
    responses={202: {"model": ClaimRead, "description": "Claim recorded; statement pending"}},
)
def post_claim(
    payload: ClaimCreate,
    response: Response,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
    renderer: StatementRenderer = _RENDERER_DEP,
):
    outcome = create_claim(
        db,
        intervention_ref=payload.intervention_id,
        claiming_domain_id=current_user.domain_id,
        amount=as_amount(payload.amount),
        renderer=renderer,
        actor_user_id=getattr(current_user, "id", None),
    )
    raise_for_outcome(outcome)
    claim = outcome.value
    db.refresh(claim)
    if claim.status == models.ClaimStatus.pending_pdf:
        response.status_code = status.HTTP_202_ACCEPTED
    return to_claim_read(claim)


@router.get("", response_model=ClaimListRead)
def get_claims(
    status_filter: Optional[models.ClaimStatus] = Query(None, alias="status"),
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    items = list_claims(db, domain_id=current_user.domain_id, status=status_filter)
    return ClaimListRead(items=[to_claim_read(c) for c in items])


@router.get("/{claim_id}", response_model=ClaimRead)
def get_claim_by_id(
    claim_id: int,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
):
    claim = get_claim(db, claim_id=claim_id, domain_id=current_user.domain_id)
    if claim is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "NOT_FOUND", "message": "Claim not found", "ref": str(claim_id)},
        )
    return to_claim_read(claim)


@router.get("/{claim_id}/statement")
def download_claim_statement(
    claim_id: int,
    db: Session = _DB_DEP,
    current_user: models.User = _USER_DEP,
    renderer: StatementRenderer = _RENDERER_DEP,
):
    outcome = ensure_statement(
        db, claim_id=claim_id, domain_id=current_user.domain_id, renderer=renderer
    )
    raise_for_outcome(outcome)
    statement = outcome.value

    path = resolve_storage_uri(statement.storage_uri)
    if path is None or not path.exists():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "NOT_FOUND", "message": "Statement file is missing"},
        )
    return FileResponse(
        path,
        media_type=statement.content_type,
        filename=f"claim-{claim_id}-statement.pdf",
    )
