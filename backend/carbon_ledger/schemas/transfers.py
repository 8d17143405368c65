from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from carbon_ledger import models


class TransferCreate(BaseModel):
    intervention_id: Union[int, str]
    target_domain_id: int
    amount: float = Field(..., gt=0)
    notes: Optional[str] = Field(default=None, max_length=2000)


class TransferReject(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class TransferRead(BaseModel):
    id: int
    source_intervention_id: int
    source_intervention_ref: str
    source_domain_id: int
    source_company: Optional[str] = None
    target_domain_id: int
    target_company: Optional[str] = None
    target_intervention_id: Optional[int] = None
    target_intervention_ref: Optional[str] = None
    amount: float
    status: models.TransferStatus
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_by_id: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class TransferListRead(BaseModel):
    items: list[TransferRead]
