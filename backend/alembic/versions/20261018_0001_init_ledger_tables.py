"""init ledger tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0001_init_ledger_tables"
down_revision = None
branch_labels = None
depends_on = None

AMOUNT = sa.Numeric(18, 4)


def upgrade() -> None:
    op.create_table(
        "domains",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("company_email", sa.String(length=255), nullable=True),
        sa.Column("supply_chain_level", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_domains_name", "domains", ["name"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("domain_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_domain_id", "users", ["domain_id"])

    op.create_table(
        "interventions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("intervention_id", sa.String(length=64), nullable=False),
        sa.Column("domain_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("modality", sa.String(length=64), nullable=True),
        sa.Column("geography", sa.String(length=128), nullable=True),
        sa.Column("vintage", sa.String(length=16), nullable=False),
        sa.Column("low_carbon_fuel", sa.String(length=128), nullable=True),
        sa.Column("feedstock", sa.String(length=128), nullable=True),
        sa.Column("certification_scheme", sa.String(length=128), nullable=True),
        sa.Column("total_amount", AMOUNT, nullable=False),
        sa.Column("remaining_amount", AMOUNT, nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= total_amount",
            name="ck_interventions_remaining_within_total",
        ),
    )
    op.create_index(
        "ix_interventions_intervention_id", "interventions", ["intervention_id"], unique=True
    )
    op.create_index("ix_interventions_domain_id", "interventions", ["domain_id"])

    op.create_table(
        "claims",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "intervention_id", sa.Integer(), sa.ForeignKey("interventions.id"), nullable=False
        ),
        sa.Column("domain_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.Column("vintage", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=11), nullable=False),
        sa.Column("expiry_date", sa.DateTime(), nullable=False),
        sa.Column("last_warned_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_claims_intervention_id", "claims", ["intervention_id"])
    op.create_index("ix_claims_domain_id", "claims", ["domain_id"])
    op.create_index("ix_claims_status", "claims", ["status"])
    op.create_index("ix_claims_expiry_date", "claims", ["expiry_date"])

    op.create_table(
        "claim_statements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("claim_id", sa.Integer(), sa.ForeignKey("claims.id"), nullable=False),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("content_type", sa.String(length=64), nullable=False),
        sa.Column("storage_uri", sa.Text(), nullable=False),
        sa.Column("checksum_sha256", sa.String(length=64), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("template_version", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_claim_statements_claim_id", "claim_statements", ["claim_id"], unique=True)

    op.create_table(
        "partnerships",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("domain1_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("domain2_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("domain_low_id", sa.Integer(), nullable=False),
        sa.Column("domain_high_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("domain_low_id", "domain_high_id", name="uq_partnerships_domain_pair"),
    )
    op.create_index("ix_partnerships_domain1_id", "partnerships", ["domain1_id"])
    op.create_index("ix_partnerships_domain2_id", "partnerships", ["domain2_id"])

    op.create_table(
        "transfers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "source_intervention_id",
            sa.Integer(),
            sa.ForeignKey("interventions.id"),
            nullable=False,
        ),
        sa.Column("source_domain_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("target_domain_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_transfers_source_intervention_id", "transfers", ["source_intervention_id"])
    op.create_index("ix_transfers_source_domain_id", "transfers", ["source_domain_id"])
    op.create_index("ix_transfers_target_domain_id", "transfers", ["target_domain_id"])
    op.create_index("ix_transfers_status", "transfers", ["status"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("domain_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("type", sa.String(length=26), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notifications_domain_id", "notifications", ["domain_id"])
    op.create_index("ix_notifications_type", "notifications", ["type"])
    op.create_index(
        "ix_notifications_idempotency_key", "notifications", ["idempotency_key"], unique=True
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("domain_id", sa.Integer(), sa.ForeignKey("domains.id"), nullable=True),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_domain_id", "audit_logs", ["domain_id"])
    op.create_index("ix_audit_logs_request_id", "audit_logs", ["request_id"])
    op.create_index("ix_audit_logs_idempotency_key", "audit_logs", ["idempotency_key"], unique=True)


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("notifications")
    op.drop_table("transfers")
    op.drop_table("partnerships")
    op.drop_table("claim_statements")
    op.drop_table("claims")
    op.drop_table("interventions")
    op.drop_table("users")
    op.drop_table("domains")
