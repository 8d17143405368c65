"""add transfer target intervention

Revision ID: 20261018_0002_add_transfer_target_intervention
Revises: 20261018_0001_init_ledger_tables
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0002_add_transfer_target_intervention"
down_revision = "20261018_0001_init_ledger_tables"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # batch mode so SQLite dev DBs can take the new foreign key.
    with op.batch_alter_table("transfers") as batch:
        batch.add_column(sa.Column("target_intervention_id", sa.Integer(), nullable=True))
        batch.create_foreign_key(
            "fk_transfers_target_intervention_id",
            "interventions",
            ["target_intervention_id"],
            ["id"],
        )
    op.create_index(
        "ix_transfers_target_intervention_id", "transfers", ["target_intervention_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_transfers_target_intervention_id", table_name="transfers")
    with op.batch_alter_table("transfers") as batch:
        batch.drop_constraint("fk_transfers_target_intervention_id", type_="foreignkey")
        batch.drop_column("target_intervention_id")
