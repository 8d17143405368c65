from carbon_ledger.schemas.claims import ClaimCreate, ClaimListRead, ClaimRead, ClaimStatementRead
from carbon_ledger.schemas.interventions import (
    InterventionCreate,
    InterventionRead,
    LedgerReconciliationRead,
)
from carbon_ledger.schemas.notifications import NotificationRead
from carbon_ledger.schemas.partnerships import (
    DomainRead,
    PartnershipActiveRead,
    PartnershipCreate,
    PartnershipRead,
    PartnershipStatusUpdate,
)
from carbon_ledger.schemas.sweeps import SweepResultRead
from carbon_ledger.schemas.transfers import (
    TransferCreate,
    TransferListRead,
    TransferRead,
    TransferReject,
)

__all__ = [
    "ClaimCreate",
    "ClaimListRead",
    "ClaimRead",
    "ClaimStatementRead",
    "DomainRead",
    "InterventionCreate",
    "InterventionRead",
    "LedgerReconciliationRead",
    "NotificationRead",
    "PartnershipActiveRead",
    "PartnershipCreate",
    "PartnershipRead",
    "PartnershipStatusUpdate",
    "SweepResultRead",
    "TransferCreate",
    "TransferListRead",
    "TransferRead",
    "TransferReject",
]
