# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Add MEBBIS transfer columns to counseling_sessions.

Tracks whether a session reached MEBBIS, when, the last failure reason
and how many attempts failed since the last success.

Revision ID: 001_add_mebbis_transfer_columns
Revises:
Create Date: 2025-11-03
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_add_mebbis_transfer_columns"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "counseling_sessions",
        sa.Column(
            "mebbis_transferred",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
    )
    op.add_column(
        "counseling_sessions",
        sa.Column("mebbis_transfer_date", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column(
        "counseling_sessions",
        sa.Column("mebbis_transfer_error", sa.Text(), nullable=True),
    )
    op.add_column(
        "counseling_sessions",
        sa.Column(
            "mebbis_retry_count",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
    )
    op.create_index(
        "ix_counseling_sessions_school_transferred",
        "counseling_sessions",
        ["school_id", "mebbis_transferred"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_counseling_sessions_school_transferred",
        table_name="counseling_sessions",
    )
    op.drop_column("counseling_sessions", "mebbis_retry_count")
    op.drop_column("counseling_sessions", "mebbis_transfer_error")
    op.drop_column("counseling_sessions", "mebbis_transfer_date")
    op.drop_column("counseling_sessions", "mebbis_transferred")
