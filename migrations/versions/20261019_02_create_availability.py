"""create availability rules and slots

Revision ID: 20261019_02
Revises: 20261019_01
Create Date: 2026-10-19 09:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_02"
down_revision: Union[str, None] = "20261019_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "availability_rules",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("provider_id", sa.Integer(), nullable=False),
        sa.Column("weekday", sa.SmallInteger(), nullable=False),
        sa.Column("start_minutes", sa.SmallInteger(), nullable=False),
        sa.Column("end_minutes", sa.SmallInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["provider_id"], ["provider_profiles.id"], ondelete="CASCADE"),
        sa.CheckConstraint("weekday BETWEEN 0 AND 6", name="ck_availability_rules_weekday"),
        sa.CheckConstraint("start_minutes >= 0 AND end_minutes <= 1439", name="ck_availability_rules_bounds"),
        sa.CheckConstraint("start_minutes < end_minutes", name="ck_availability_rules_window"),
    )
    op.create_index("ix_availability_rules_id", "availability_rules", ["id"], unique=False)
    op.create_index("ix_availability_rules_provider_id", "availability_rules", ["provider_id"], unique=False)

    op.create_table(
        "availability_slots",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("provider_id", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False, server_default="manual"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["provider_id"], ["provider_profiles.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("provider_id", "start_at", "end_at", name="uq_availability_slots_provider_range"),
    )
    op.create_index("ix_availability_slots_id", "availability_slots", ["id"], unique=False)
    op.create_index("ix_availability_slots_provider_id", "availability_slots", ["provider_id"], unique=False)
    op.create_index("ix_availability_slots_start_at", "availability_slots", ["start_at"], unique=False)
    op.create_index("ix_availability_slots_end_at", "availability_slots", ["end_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_availability_slots_end_at", table_name="availability_slots")
    op.drop_index("ix_availability_slots_start_at", table_name="availability_slots")
    op.drop_index("ix_availability_slots_provider_id", table_name="availability_slots")
    op.drop_index("ix_availability_slots_id", table_name="availability_slots")
    op.drop_table("availability_slots")
    op.drop_index("ix_availability_rules_provider_id", table_name="availability_rules")
    op.drop_index("ix_availability_rules_id", table_name="availability_rules")
    op.drop_table("availability_rules")
