from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from carbon_ledger import models


class DomainRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    company_name: str
    supply_chain_level: Optional[int] = None


class PartnershipCreate(BaseModel):
    target_domain_id: int
    message: Optional[str] = Field(default=None, max_length=1000)


class PartnershipStatusUpdate(BaseModel):
    status: models.PartnershipStatus


class PartnershipRead(BaseModel):
    id: int
    domain1: DomainRead
    domain2: DomainRead
    status: models.PartnershipStatus
    message: Optional[str] = None
    # True when the caller's domain sent the request (domain1).
    initiated_by_me: bool
    created_at: datetime
    updated_at: datetime


class PartnershipActiveRead(BaseModel):
    domain_id: int
    active: bool
