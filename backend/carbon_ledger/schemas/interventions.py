from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from carbon_ledger import models


class InterventionCreate(BaseModel):
    intervention_id: str = Field(..., min_length=1, max_length=64)
    domain_id: int
    total_amount: float = Field(..., gt=0)
    vintage: str = Field(..., min_length=1, max_length=16)
    modality: Optional[str] = None
    geography: Optional[str] = None
    low_carbon_fuel: Optional[str] = None
    feedstock: Optional[str] = None
    certification_scheme: Optional[str] = None
    status: models.InterventionStatus = models.InterventionStatus.verified


class InterventionRead(BaseModel):
    id: int
    intervention_id: str
    domain_id: int
    modality: Optional[str] = None
    geography: Optional[str] = None
    vintage: str
    low_carbon_fuel: Optional[str] = None
    feedstock: Optional[str] = None
    certification_scheme: Optional[str] = None
    total_amount: float
    remaining_amount: float
    status: models.InterventionStatus
    created_at: datetime


class LedgerReconciliationRead(BaseModel):
    intervention_id: int
    total_amount: float
    remaining_amount: float
    claimed_amount: float
    transferred_amount: float
    pending_transfer_amount: float
    # total - remaining; equals claimed + transferred when the ledger is consistent.
    consumed_amount: float
    balanced: bool
