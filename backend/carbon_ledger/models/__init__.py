from carbon_ledger.models.domain import (
    AuditLog,
    Claim,
    ClaimStatement,
    ClaimStatus,
    Domain,
    Intervention,
    InterventionStatus,
    Notification,
    NotificationType,
    Partnership,
    PartnershipStatus,
    Transfer,
    TransferStatus,
    User,
    utc_now,
)

__all__ = [
    "AuditLog",
    "Claim",
    "ClaimStatement",
    "ClaimStatus",
    "Domain",
    "Intervention",
    "InterventionStatus",
    "Notification",
    "NotificationType",
    "Partnership",
    "PartnershipStatus",
    "Transfer",
    "TransferStatus",
    "User",
    "utc_now",
]
