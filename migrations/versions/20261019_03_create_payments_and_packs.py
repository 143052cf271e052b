"""create payments and member packs

Revision ID: 20261019_03
Revises: 20261019_02
Create Date: 2026-10-19 09:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_03"
down_revision: Union[str, None] = "20261019_02"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("method", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("provider_ref", sa.String(length=255), nullable=True),
        sa.Column("grants_pack", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pack_credits", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["client_id"], ["users.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_payments_id", "payments", ["id"], unique=False)
    op.create_index("ix_payments_client_id", "payments", ["client_id"], unique=False)
    op.create_index("ix_payments_provider_ref", "payments", ["provider_ref"], unique=False)

    op.create_table(
        "member_packs",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("label", sa.String(length=120), nullable=True),
        sa.Column("total_credits", sa.Integer(), nullable=True),
        sa.Column("credits_remaining", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["client_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("payment_id", name="uq_member_packs_payment_id"),
        sa.CheckConstraint(
            "credits_remaining IS NULL OR credits_remaining >= 0",
            name="ck_member_packs_non_negative",
        ),
        sa.CheckConstraint(
            "total_credits IS NULL OR credits_remaining <= total_credits",
            name="ck_member_packs_within_total",
        ),
    )
    op.create_index("ix_member_packs_id", "member_packs", ["id"], unique=False)
    op.create_index("ix_member_packs_client_id", "member_packs", ["client_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_member_packs_client_id", table_name="member_packs")
    op.drop_index("ix_member_packs_id", table_name="member_packs")
    op.drop_table("member_packs")
    op.drop_index("ix_payments_provider_ref", table_name="payments")
    op.drop_index("ix_payments_client_id", table_name="payments")
    op.drop_index("ix_payments_id", table_name="payments")
    op.drop_table("payments")
