"""
SQLAlchemy table definitions.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reliability.database.engine import Base


class IncidentRecord(Base):
    """Row form of an incident. `version` backs compare-and-swap updates."""
    __tablename__ = "incidents"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    severity: Mapped[str] = mapped_column(String(16))
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source_type: Mapped[str] = mapped_column(String(16))
    source_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    retryable: Mapped[bool] = mapped_column(Boolean, default=True)

    status: Mapped[str] = mapped_column(String(16), default="open")
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_kind: Mapped[str] = mapped_column(String(32), default="none")

    repair_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_repair_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    linked_ticket_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("ix_incidents_status_detected", "status", "detected_at"),
        Index("ix_incidents_resolved_at", "resolved_at"),
        Index("ix_incidents_escalated_at", "escalated_at"),
    )
