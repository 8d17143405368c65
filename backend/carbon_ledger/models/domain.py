# ruff: noqa: E501
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carbon_ledger.database import Base

# tCO2e with four decimals; enough headroom for fleet-scale interventions.
Amount = Numeric(18, 4)


def utc_now() -> datetime:
    """Naive UTC timestamp; every DateTime column in this schema is stored naive UTC."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class InterventionStatus(PyEnum):
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class ClaimStatus(PyEnum):
    active = "active"
    expired = "expired"
    pending_pdf = "pending_pdf"


class PartnershipStatus(PyEnum):
    pending = "pending"
    active = "active"
    inactive = "inactive"


class TransferStatus(PyEnum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"


class NotificationType(PyEnum):
    CLAIM_CREATED = "CLAIM_CREATED"
    CLAIM_EXPIRED = "CLAIM_EXPIRED"
    CLAIM_EXPIRING_SOON = "CLAIM_EXPIRING_SOON"
    TRANSFER_REQUEST = "TRANSFER_REQUEST"
    TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
    TRANSFER_REJECTED = "TRANSFER_REJECTED"
    PARTNERSHIP_REQUEST = "PARTNERSHIP_REQUEST"
    PARTNERSHIP_STATUS_CHANGED = "PARTNERSHIP_STATUS_CHANGED"


class Domain(Base):
    __tablename__ = "domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supply_chain_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    users = relationship("User", back_populates="domain")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain_id: Mapped[int] = mapped_column(ForeignKey("domains.id"), nullable=False, index=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    domain = relationship("Domain", back_populates="users", lazy="joined")


class Intervention(Base):
    __tablename__ = "interventions"
    __table_args__ = (
        CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= total_amount",
            name="ck_interventions_remaining_within_total",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # External identifier issued at submission time (e.g. "INT-2024-0001").
    intervention_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    domain_id: Mapped[int] = mapped_column(ForeignKey("domains.id"), nullable=False, index=True)
    modality: Mapped[str | None] = mapped_column(String(64))
    geography: Mapped[str | None] = mapped_column(String(128))
    vintage: Mapped[str] = mapped_column(String(16), nullable=False)
    low_carbon_fuel: Mapped[str | None] = mapped_column(String(128))
    feedstock: Mapped[str | None] = mapped_column(String(128))
    certification_scheme: Mapped[str | None] = mapped_column(String(128))
    total_amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    # Only services.balance_store writes this column.
    remaining_amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    status: Mapped[InterventionStatus] = mapped_column(
        Enum(InterventionStatus, native_enum=False),
        default=InterventionStatus.verified,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    domain = relationship("Domain", lazy="joined")


class Claim(Base):
    __tablename__ = "claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    intervention_id: Mapped[int] = mapped_column(
        ForeignKey("interventions.id"), nullable=False, index=True
    )
    domain_id: Mapped[int] = mapped_column(ForeignKey("domains.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    vintage: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus, native_enum=False),
        default=ClaimStatus.pending_pdf,
        nullable=False,
        index=True,
    )
    expiry_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    last_warned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    intervention = relationship("Intervention", lazy="joined")
    domain = relationship("Domain", lazy="joined")
    statement = relationship("ClaimStatement", back_populates="claim", uselist=False)


class ClaimStatement(Base):
    __tablename__ = "claim_statements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    claim_id: Mapped[int] = mapped_column(
        ForeignKey("claims.id"), unique=True, nullable=False, index=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(64), nullable=False)
    storage_uri: Mapped[str] = mapped_column(Text, nullable=False)
    checksum_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    template_version: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    claim = relationship("Claim", back_populates="statement")


class Partnership(Base):
    __tablename__ = "partnerships"
    # One record per unordered pair, whichever side initiated it.
    __table_args__ = (
        UniqueConstraint("domain_low_id", "domain_high_id", name="uq_partnerships_domain_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain1_id: Mapped[int] = mapped_column(ForeignKey("domains.id"), nullable=False, index=True)
    domain2_id: Mapped[int] = mapped_column(ForeignKey("domains.id"), nullable=False, index=True)
    domain_low_id: Mapped[int] = mapped_column(Integer, nullable=False)
    domain_high_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[PartnershipStatus] = mapped_column(
        Enum(PartnershipStatus, native_enum=False),
        default=PartnershipStatus.pending,
        nullable=False,
    )
    message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    domain1 = relationship("Domain", foreign_keys=[domain1_id], lazy="joined")
    domain2 = relationship("Domain", foreign_keys=[domain2_id], lazy="joined")


class Transfer(Base):
    __tablename__ = "transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_intervention_id: Mapped[int] = mapped_column(
        ForeignKey("interventions.id"), nullable=False, index=True
    )
    source_domain_id: Mapped[int] = mapped_column(ForeignKey("domains.id"), nullable=False, index=True)
    target_domain_id: Mapped[int] = mapped_column(ForeignKey("domains.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    status: Mapped[TransferStatus] = mapped_column(
        Enum(TransferStatus, native_enum=False),
        default=TransferStatus.pending,
        nullable=False,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # Set on approval to the verified intervention created for the receiving domain.
    target_intervention_id: Mapped[int | None] = mapped_column(
        ForeignKey("interventions.id"), nullable=True, index=True
    )

    source_intervention = relationship(
        "Intervention", foreign_keys=[source_intervention_id], lazy="joined"
    )
    target_intervention = relationship("Intervention", foreign_keys=[target_intervention_id])
    source_domain = relationship("Domain", foreign_keys=[source_domain_id], lazy="joined")
    target_domain = relationship("Domain", foreign_keys=[target_domain_id], lazy="joined")


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain_id: Mapped[int] = mapped_column(ForeignKey("domains.id"), nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, native_enum=False), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[dict | None] = mapped_column(JSON)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Set by the sweeper so a re-run never produces a second notification for the same event.
    idempotency_key: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    domain_id: Mapped[int | None] = mapped_column(ForeignKey("domains.id"), nullable=True, index=True)
    payload_json: Mapped[str | None] = mapped_column(Text)

    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    idempotency_key: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        unique=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
