"""Create helpdesk tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates the following tables:
- helpdesk_tickets: Tickets with status and optimistic-lock version
- ticket_approval_steps: Approval chain per ticket (levels 1-3)
- ticket_history: Append-only action history
- ticket_counters: Named counters for ticket numbers
- audit_logs: Audit trail of ticket transitions
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ========================================
    # 1. helpdesk_tickets table
    # ========================================
    op.create_table(
        "helpdesk_tickets",
        # Primary key
        sa.Column("id", sa.String(50), nullable=False),
        sa.Column("ticket_number", sa.String(20), nullable=False),
        # Classification
        sa.Column("high_level_category", sa.String(20), nullable=False),
        sa.Column("sub_category", sa.String(100), nullable=False),
        sa.Column("urgency", sa.String(10), nullable=False),
        sa.Column("specialist_queue", sa.String(100), nullable=True),
        # Content
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        # Status
        sa.Column("status", sa.String(40), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        # People
        sa.Column("requester_id", sa.String(50), nullable=False),
        sa.Column("requester_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("requester_department", sa.String(100), nullable=True),
        sa.Column("requester_manager_id", sa.String(50), nullable=True),
        sa.Column("assigned_to", sa.String(50), nullable=True),
        sa.Column("assigned_to_name", sa.String(200), nullable=True),
        # Resolution
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("closing_reason", sa.Text(), nullable=True),
        # Lifecycle timestamps
        sa.Column("routed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("awaiting_confirmation_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        # Timestamps
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        # Constraints
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ticket_number"),
        sa.CheckConstraint(
            "high_level_category IN ('IT', 'Facilities', 'Finance')",
            name="ck_helpdesk_ticket_category"
        ),
        sa.CheckConstraint(
            "urgency IN ('Low', 'Medium', 'High', 'Critical')",
            name="ck_helpdesk_ticket_urgency"
        ),
        sa.CheckConstraint("version >= 1", name="ck_helpdesk_ticket_version"),
    )
    # Indexes for helpdesk_tickets
    op.create_index("ix_helpdesk_tickets_status", "helpdesk_tickets", ["status"])
    op.create_index("ix_helpdesk_tickets_high_level_category", "helpdesk_tickets", ["high_level_category"])
    op.create_index("ix_helpdesk_tickets_requester_id", "helpdesk_tickets", ["requester_id"])
    op.create_index("ix_helpdesk_tickets_requester_manager_id", "helpdesk_tickets", ["requester_manager_id"])
    op.create_index("ix_helpdesk_tickets_assigned_to", "helpdesk_tickets", ["assigned_to"])
    op.create_index("ix_helpdesk_tickets_created_at", "helpdesk_tickets", ["created_at"])
    op.create_index("idx_ticket_status_category", "helpdesk_tickets", ["status", "high_level_category"])

    # ========================================
    # 2. ticket_approval_steps table
    # ========================================
    op.create_table(
        "ticket_approval_steps",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("ticket_id", sa.String(50), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("manager_id", sa.String(50), nullable=True),
        sa.Column("manager_name", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="Pending"),
        sa.Column("approver_id", sa.String(50), nullable=True),
        sa.Column("approver_name", sa.String(200), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        # Constraints
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["ticket_id"], ["helpdesk_tickets.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("ticket_id", "level", name="uq_ticket_approval_level"),
        sa.CheckConstraint("level BETWEEN 1 AND 3", name="ck_approval_step_level"),
        sa.CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected')",
            name="ck_approval_step_status"
        ),
    )
    op.create_index("ix_ticket_approval_steps_ticket_id", "ticket_approval_steps", ["ticket_id"])

    # ========================================
    # 3. ticket_history table
    # ========================================
    op.create_table(
        "ticket_history",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("ticket_id", sa.String(50), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("actor_id", sa.String(50), nullable=False),
        sa.Column("actor_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("previous_status", sa.String(40), nullable=True),
        sa.Column("new_status", sa.String(40), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        # Constraints
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["ticket_id"], ["helpdesk_tickets.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_ticket_history_ticket_id", "ticket_history", ["ticket_id"])

    # ========================================
    # 4. ticket_counters table
    # ========================================
    op.create_table(
        "ticket_counters",
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("value", sa.BigInteger(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("name"),
    )

    # ========================================
    # 5. audit_logs table
    # ========================================
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("entry_id", sa.String(36), nullable=False),
        # Operation info
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False, server_default="INFO"),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        # Actor info
        sa.Column("actor_id", sa.String(50), nullable=True),
        sa.Column("actor_type", sa.String(20), nullable=False, server_default="user"),
        # Change content
        sa.Column("old_status", sa.String(40), nullable=True),
        sa.Column("new_status", sa.String(40), nullable=True),
        sa.Column("details", JSONB, nullable=True),
        sa.Column("correlation_id", sa.String(120), nullable=True),
        # Metadata
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        # Constraints
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entry_id"),
    )
    op.create_index("ix_audit_logs_category", "audit_logs", ["category"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_resource_type", "audit_logs", ["resource_type"])
    op.create_index("ix_audit_logs_resource_id", "audit_logs", ["resource_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_correlation_id", "audit_logs", ["correlation_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key dependencies)
    op.drop_table("audit_logs")
    op.drop_table("ticket_counters")
    op.drop_table("ticket_history")
    op.drop_table("ticket_approval_steps")
    op.drop_table("helpdesk_tickets")
