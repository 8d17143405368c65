from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from carbon_ledger import models


class ClaimCreate(BaseModel):
    # Internal id or external intervention identifier.
    intervention_id: Union[int, str]
    amount: float = Field(..., gt=0)


class ClaimStatementRead(BaseModel):
    id: int
    filename: str
    content_type: str
    checksum_sha256: str
    size_bytes: int
    template_version: str
    created_at: datetime
    download_url: str


class ClaimRead(BaseModel):
    id: int
    intervention_id: int
    intervention_ref: str
    domain_id: int
    amount: float
    vintage: str
    status: models.ClaimStatus
    expiry_date: datetime
    created_at: datetime
    statement: Optional[ClaimStatementRead] = None


class ClaimListRead(BaseModel):
    items: list[ClaimRead]
