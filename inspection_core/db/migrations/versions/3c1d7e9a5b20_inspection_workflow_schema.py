"""Inspection workflow and voice annotation schema.

- inspections (optimistic version column, state/urgency checks)
- inspection_items
- inspection_state_history
- voice_annotations (insert-only)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c1d7e9a5b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

STATES = (
    "'draft', 'in_progress', 'pending_review', 'approved', 'rejected', "
    "'sent_to_customer', 'completed', 'archived'"
)
URGENCIES = "'low', 'normal', 'high', 'critical'"
CONDITIONS = "'good', 'fair', 'poor', 'needs_immediate'"


def upgrade() -> None:
    op.create_table(
        "inspections",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("vehicle_ref", sa.Text(), nullable=False),
        sa.Column("concerns", JSON_TYPE, nullable=False),
        sa.Column("state", sa.Text(), nullable=False),
        sa.Column("previous_state", sa.Text(), nullable=True),
        sa.Column("urgency", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("assigned_actor_id", sa.Text(), nullable=True),
        sa.Column("created_by_actor_id", sa.Text(), nullable=False),
        sa.Column("state_changed_by", sa.Text(), nullable=True),
        sa.Column("state_changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_inspections"),
        sa.CheckConstraint(f"state IN ({STATES})", name="ck_inspections_state"),
        sa.CheckConstraint(f"urgency IN ({URGENCIES})", name="ck_inspections_urgency"),
    )
    op.create_index("ix_inspections_tenant_id", "inspections", ["tenant_id"])
    op.create_index("ix_inspections_tenant_state", "inspections", ["tenant_id", "state"])

    op.create_table(
        "inspection_items",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("inspection_id", sa.Uuid(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("component", sa.Text(), nullable=False),
        sa.Column("condition", sa.Text(), nullable=False),
        sa.Column("condition_source", sa.Text(), nullable=False),
        sa.Column("condition_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_inspection_items"),
        sa.ForeignKeyConstraint(
            ["inspection_id"], ["inspections.id"],
            name="fk_inspection_items_inspection_id_inspections", ondelete="CASCADE",
        ),
        sa.CheckConstraint(f"condition IN ({CONDITIONS})", name="ck_inspection_items_condition"),
        sa.CheckConstraint(
            "condition_source IN ('manual', 'voice')", name="ck_inspection_items_condition_source"
        ),
    )
    op.create_index("ix_inspection_items_tenant_id", "inspection_items", ["tenant_id"])
    op.create_index("ix_inspection_items_inspection_id", "inspection_items", ["inspection_id"])

    op.create_table(
        "inspection_state_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("inspection_id", sa.Uuid(), nullable=False),
        sa.Column("from_state", sa.Text(), nullable=False),
        sa.Column("to_state", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Text(), nullable=False),
        sa.Column("actor_role", sa.Text(), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_inspection_state_history"),
        sa.ForeignKeyConstraint(
            ["inspection_id"], ["inspections.id"],
            name="fk_inspection_state_history_inspection_id_inspections", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_inspection_state_history_tenant_id", "inspection_state_history", ["tenant_id"])
    op.create_index(
        "ix_inspection_state_history_inspection_id", "inspection_state_history", ["inspection_id"]
    )

    op.create_table(
        "voice_annotations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("inspection_id", sa.Uuid(), nullable=False),
        sa.Column("item_id", sa.Uuid(), nullable=True),
        sa.Column("actor_id", sa.Text(), nullable=False),
        sa.Column("raw_text", sa.Text(), nullable=False),
        sa.Column("audio_ref", sa.Text(), nullable=True),
        sa.Column("audio_duration_seconds", sa.Float(), nullable=True),
        sa.Column("component", sa.Text(), nullable=True),
        sa.Column("condition_candidate", sa.Text(), nullable=True),
        sa.Column("measurement_value", sa.Float(), nullable=True),
        sa.Column("measurement_unit", sa.Text(), nullable=True),
        sa.Column("action", sa.Text(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("needs_attention", sa.Boolean(), nullable=False),
        sa.Column("warnings", JSON_TYPE, nullable=False),
        sa.Column("suggestions", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_voice_annotations"),
        sa.ForeignKeyConstraint(
            ["inspection_id"], ["inspections.id"],
            name="fk_voice_annotations_inspection_id_inspections", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["item_id"], ["inspection_items.id"],
            name="fk_voice_annotations_item_id_inspection_items", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_voice_annotations_tenant_id", "voice_annotations", ["tenant_id"])
    op.create_index("ix_voice_annotations_inspection_id", "voice_annotations", ["inspection_id"])
    op.create_index("ix_voice_annotations_item_id", "voice_annotations", ["item_id"])


def downgrade() -> None:
    op.drop_table("voice_annotations")
    op.drop_table("inspection_state_history")
    op.drop_table("inspection_items")
    op.drop_table("inspections")
