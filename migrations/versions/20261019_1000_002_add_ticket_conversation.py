"""Add conversation to helpdesk_tickets table.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 10:00:00.000000

New fields:
- conversation: Requester/specialist messages, oldest first
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Add conversation column to helpdesk_tickets table."""
    op.add_column(
        'helpdesk_tickets',
        sa.Column(
            'conversation',
            JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment='Requester/specialist messages'
        )
    )


def downgrade() -> None:
    """Remove conversation column from helpdesk_tickets table."""
    op.drop_column('helpdesk_tickets', 'conversation')
