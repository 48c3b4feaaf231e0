"""Helpdesk ticket, approval step and history models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.models.base import Base, TimestampMixin


class HelpdeskTicket(Base, TimestampMixin):
    """Helpdesk ticket table."""

    __tablename__ = "helpdesk_tickets"

    # Primary key
    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    # Classification
    high_level_category: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )
    sub_category: Mapped[str] = mapped_column(String(100), nullable=False)
    urgency: Mapped[str] = mapped_column(String(10), nullable=False)
    specialist_queue: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Content
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Status
    status: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # People
    requester_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    requester_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    requester_department: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    requester_manager_id: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True, index=True
    )
    assigned_to: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True, index=True
    )
    assigned_to_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Resolution
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    closing_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lifecycle timestamps
    routed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    awaiting_confirmation_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Requester/specialist messages, oldest first
    conversation: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list, server_default=text("'[]'::jsonb")
    )

    # Relationships
    approval_steps: Mapped[list["TicketApprovalStep"]] = relationship(
        "TicketApprovalStep",
        back_populates="ticket",
        lazy="selectin",
        order_by="TicketApprovalStep.level",
        cascade="all, delete-orphan",
    )
    history: Mapped[list["TicketHistory"]] = relationship(
        "TicketHistory",
        back_populates="ticket",
        lazy="selectin",
        order_by="TicketHistory.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_ticket_status_category", "status", "high_level_category"),
        CheckConstraint(
            "high_level_category IN ('IT', 'Facilities', 'Finance')",
            name="helpdesk_ticket_category",
        ),
        CheckConstraint(
            "urgency IN ('Low', 'Medium', 'High', 'Critical')",
            name="helpdesk_ticket_urgency",
        ),
        CheckConstraint("version >= 1", name="helpdesk_ticket_version"),
    )


class TicketApprovalStep(Base):
    """One level of a ticket's approval chain."""

    __tablename__ = "ticket_approval_steps"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("helpdesk_tickets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False)
    manager_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    manager_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")
    approver_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    approver_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    ticket: Mapped["HelpdeskTicket"] = relationship(
        "HelpdeskTicket", back_populates="approval_steps"
    )

    __table_args__ = (
        UniqueConstraint("ticket_id", "level", name="uq_ticket_approval_level"),
        CheckConstraint("level BETWEEN 1 AND 3", name="approval_step_level"),
        CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected')",
            name="approval_step_status",
        ),
    )


class TicketHistory(Base):
    """Append-only ticket history."""

    __tablename__ = "ticket_history"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("helpdesk_tickets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    action: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    previous_status: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    new_status: Mapped[str] = mapped_column(String(40), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    ticket: Mapped["HelpdeskTicket"] = relationship(
        "HelpdeskTicket", back_populates="history"
    )


class TicketCounter(Base):
    """Named monotonic counters (ticket numbers)."""

    __tablename__ = "ticket_counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
