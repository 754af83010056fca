"""Transition reason on state history.

- inspection_state_history.reason (nullable; required by the engine for rejections)
- ix_inspection_state_history_tenant_changed_at for workflow statistics windows
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "8e2b4f61c7d3"
down_revision: Union[str, None] = "3c1d7e9a5b20"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("inspection_state_history") as batch_op:
        batch_op.add_column(sa.Column("reason", sa.Text(), nullable=True))
    op.create_index(
        "ix_inspection_state_history_tenant_changed_at",
        "inspection_state_history",
        ["tenant_id", "changed_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_inspection_state_history_tenant_changed_at", table_name="inspection_state_history")
    with op.batch_alter_table("inspection_state_history") as batch_op:
        batch_op.drop_column("reason")
