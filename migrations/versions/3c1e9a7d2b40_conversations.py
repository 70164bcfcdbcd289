"""conversations and embedded messages

Revision ID: 3c1e9a7d2b40
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1e9a7d2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create user, conversation and message tables."""
    op.create_table(
        "user_account",
        sa.Column("id", sa.String(length=24), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("package_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "conversation",
        sa.Column("id", sa.String(length=24), nullable=False),
        sa.Column("participant_low", sa.String(length=24), nullable=False),
        sa.Column("participant_high", sa.String(length=24), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("participant_low < participant_high", name="ck_conversation_sorted"),
        sa.ForeignKeyConstraint(["participant_low"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["participant_high"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("participant_low", "participant_high", name="uq_conversation_pair"),
    )
    op.create_index("ix_conversation_participant_low", "conversation", ["participant_low"])
    op.create_index("ix_conversation_participant_high", "conversation", ["participant_high"])
    op.create_index("ix_conversation_last_updated", "conversation", ["last_updated"])
    op.create_table(
        "conversation_message",
        sa.Column("id", sa.String(length=24), nullable=False),
        sa.Column("conversation_id", sa.String(length=24), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.String(length=24), nullable=False),
        sa.Column("ciphertext", sa.LargeBinary(), nullable=False),
        sa.Column("iv", sa.LargeBinary(length=12), nullable=False),
        sa.Column("read_by_sender", sa.Boolean(), nullable=False),
        sa.Column("read_by_recipient", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversation.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("conversation_id", "position", name="uq_message_position"),
    )


def downgrade() -> None:
    """Drop messaging tables."""
    op.drop_table("conversation_message")
    op.drop_index("ix_conversation_last_updated", table_name="conversation")
    op.drop_index("ix_conversation_participant_high", table_name="conversation")
    op.drop_index("ix_conversation_participant_low", table_name="conversation")
    op.drop_table("conversation")
    op.drop_table("user_account")
