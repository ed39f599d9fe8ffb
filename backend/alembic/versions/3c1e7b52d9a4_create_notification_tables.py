"""create notification tables

Revision ID: 3c1e7b52d9a4
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1e7b52d9a4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "stores",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("created_at", sa.String(length=26), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "notification_inbox",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("topic", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("dedupe_key", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("due_status", sa.String(length=20), nullable=True),
        sa.Column("due_date", sa.String(length=10), nullable=True),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("first_detected_at", sa.String(length=26), nullable=False),
        sa.Column("last_detected_at", sa.String(length=26), nullable=False),
        sa.Column("read_at", sa.String(length=26), nullable=True),
        sa.Column("resolved_at", sa.String(length=26), nullable=True),
        sa.Column("created_at", sa.String(length=26), nullable=True),
        sa.Column("updated_at", sa.String(length=26), nullable=True),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "dedupe_key", name="uq_notification_inbox_dedupe"),
    )
    with op.batch_alter_table("notification_inbox", schema=None) as batch_op:
        batch_op.create_index("ix_notification_inbox_store_status", ["store_id", "status"], unique=False)
        batch_op.create_index(
            "ix_notification_inbox_entity",
            ["store_id", "topic", "entity_type", "entity_id"],
            unique=False,
        )
        batch_op.create_index("ix_notification_inbox_last_detected", ["store_id", "last_detected_at"], unique=False)

    op.create_table(
        "notification_rules",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("topic", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("muted_forever", sa.Integer(), nullable=True),
        sa.Column("muted_until", sa.String(length=26), nullable=True),
        sa.Column("snoozed_until", sa.String(length=26), nullable=True),
        sa.Column("note", sa.String(length=240), nullable=True),
        sa.Column("updated_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.String(length=26), nullable=True),
        sa.Column("updated_at", sa.String(length=26), nullable=True),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "store_id", "topic", "entity_type", "entity_id", name="uq_notification_rule_entity"
        ),
    )

    op.create_table(
        "ap_payables",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("po_id", sa.String(length=64), nullable=False),
        sa.Column("po_number", sa.String(length=50), nullable=False),
        sa.Column("supplier_name", sa.String(length=255), nullable=True),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        sa.Column("due_date", sa.String(length=10), nullable=True),
        sa.Column("outstanding_base", sa.Float(), nullable=False),
        sa.Column("updated_at", sa.String(length=26), nullable=True),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "po_id", name="uq_ap_payable_po"),
    )
    with op.batch_alter_table("ap_payables", schema=None) as batch_op:
        batch_op.create_index("ix_ap_payables_store_due", ["store_id", "due_date"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table("ap_payables", schema=None) as batch_op:
        batch_op.drop_index("ix_ap_payables_store_due")
    op.drop_table("ap_payables")

    op.drop_table("notification_rules")

    with op.batch_alter_table("notification_inbox", schema=None) as batch_op:
        batch_op.drop_index("ix_notification_inbox_last_detected")
        batch_op.drop_index("ix_notification_inbox_entity")
        batch_op.drop_index("ix_notification_inbox_store_status")
    op.drop_table("notification_inbox")

    op.drop_table("stores")
