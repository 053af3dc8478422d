"""
Escalation Infrastructure Models
=================================

SQLAlchemy ORM models for the escalation module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from grievance_sla.infrastructure.database import Base
from grievance_sla.config import Priority, TicketStatus, SYSTEM_ACTOR


class TicketModel(Base):
    """
    Database model for the Ticket snapshot.

    Maps to the 'grievance_tickets' table. `version` is bumped on every
    save and compared on update for optimistic locking.
    """
    __tablename__ = "grievance_tickets"

    # Primary key (business ticket id)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Classification attributes
    type_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.OPEN, index=True)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.LOW)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Escalation state
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Optimistic lock
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class EscalationRecordModel(Base):
    """
    Database model for EscalationRecord audit events.

    Maps to the 'escalation_records' table. Rows are inserted, never updated.
    """
    __tablename__ = "escalation_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    ticket_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("grievance_tickets.id"), nullable=False
    )
    escalated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Level after the transition and before it
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_level: Mapped[int] = mapped_column(Integer, nullable=False)

    escalated_by: Mapped[str] = mapped_column(String(255), nullable=False, default=SYSTEM_ACTOR)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    escalated_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_escalation_records_ticket_time", "ticket_id", "escalated_at"),
    )
