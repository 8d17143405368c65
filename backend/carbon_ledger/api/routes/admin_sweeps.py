from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.api.deps import get_renderer, require_admin
from carbon_ledger.database import get_db
from carbon_ledger.schemas import SweepResultRead
from carbon_ledger.services.expiration_sweeper import (
    run_expire_pass,
    run_statement_retry_pass,
    run_warn_pass,
)
from carbon_ledger.services.statements import StatementRenderer

router = APIRouter(prefix="/admin/sweeps", tags=["admin"])

_DB_DEP = Depends(get_db)
_ADMIN_DEP = Depends(require_admin)
_RENDERER_DEP = Depends(get_renderer)


@router.post("/{sweep}", response_model=SweepResultRead)
def post_run_sweep(
    sweep: str,
    db: Session = _DB_DEP,
    current_user: models.User = _ADMIN_DEP,
    renderer: StatementRenderer = _RENDERER_DEP,
):
    """Run one sweep pass now, in-request (operators and tests)."""

    if sweep == "expire":
        result = run_expire_pass(db)
    elif sweep == "warn":
        result = run_warn_pass(db)
    elif sweep == "statements":
        result = run_statement_retry_pass(db, renderer=renderer)
    else:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "NOT_FOUND", "message": f"Unknown sweep '{sweep}'"},
        )
    return SweepResultRead(**result.as_dict())
