"""Initial audit log table.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "warden_audit_log",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("decision_id", sa.String(36), index=True, nullable=False),
        sa.Column("session_id", sa.String(64), index=True, nullable=False),
        # What was requested
        sa.Column("tool_name", sa.String(256), index=True, nullable=False),
        sa.Column("canonical_key", sa.Text(), nullable=False),
        sa.Column("parameters_snapshot", sa.JSON(), nullable=False),
        # What was decided
        sa.Column("behavior", sa.String(16), index=True, nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("reason", sa.Text(), server_default="", nullable=False),
        sa.Column("matched_pattern", sa.Text(), nullable=True),
        sa.Column("automatic", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("temporary", sa.Boolean(), server_default="false", nullable=False),
        # Risk
        sa.Column("risk_score", sa.Integer(), nullable=True),
        sa.Column("risk_level", sa.String(16), nullable=True),
        sa.Column("risk_factors", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("warden_audit_log")
