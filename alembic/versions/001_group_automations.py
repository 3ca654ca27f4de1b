"""Create group automation rules and collected data tables.

group_automation_data.once_key is unique so a reply_only_once rule stores at
most one submission per participant, even when two messages race.

Revision ID: 001_group_automations
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_group_automations"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "group_automation_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("group_remote_jid", sa.String(), nullable=True),
        sa.Column("group_name_match", sa.String(), nullable=True),
        sa.Column("capture_pattern", sa.String(), nullable=True),
        sa.Column("action_type", sa.String(), nullable=False),
        sa.Column("action_config", sa.JSON(), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("should_reply", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("reply_only_once", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("skip_ai_after", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_group_automation_rules_id", "group_automation_rules", ["id"])
    op.create_index("ix_group_automation_rules_company_id", "group_automation_rules", ["company_id"])
    op.create_index(
        "ix_group_automation_rules_company_active_priority",
        "group_automation_rules",
        ["company_id", "is_active", "priority"],
    )

    op.create_table(
        "group_automation_data",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "rule_id",
            sa.Integer(),
            sa.ForeignKey("group_automation_rules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("group_remote_jid", sa.String(), nullable=False),
        sa.Column("participant_jid", sa.String(), nullable=False),
        sa.Column("participant_name", sa.String(), nullable=True),
        sa.Column("message_id", sa.String(), nullable=True),
        sa.Column("captured_data", sa.JSON(), nullable=False),
        sa.Column("once_key", sa.String(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_group_automation_data_id", "group_automation_data", ["id"])
    op.create_index("ix_group_automation_data_rule_id", "group_automation_data", ["rule_id"])
    op.create_index("ix_group_automation_data_participant_jid", "group_automation_data", ["participant_jid"])
    op.create_index("ix_group_automation_data_created_at", "group_automation_data", ["created_at"])


def downgrade() -> None:
    op.drop_table("group_automation_data")
    op.drop_table("group_automation_rules")
