# /assignx/models/project.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from assignx.core.clock import utcnow
from assignx.core.status_graph import parse_status
from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime
from assignx.models.enums import ProjectStatus

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in ProjectStatus)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)
    project_number: Mapped[str] = mapped_column(String(16), nullable=False)  # AX-00042

    client_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    intermediary_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    worker_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    title: Mapped[str] = mapped_column(String(256), nullable=False)
    service_type: Mapped[str] = mapped_column(String(32), nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    word_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    urgency: Mapped[str] = mapped_column(String(16), nullable=False, default="standard")
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=ProjectStatus.draft.value)
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ─────────── MONEY (integer paise) ───────────
    client_quote: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    worker_payout: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    intermediary_commission: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    platform_fee: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    is_paid: Mapped[bool] = mapped_column(nullable=False, default=False, server_default=false())

    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    qc_rejection_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cancelled_from_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # ─────────── LIFECYCLE TIMESTAMPS ───────────
    status_updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    quoted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    # Optimistic concurrency: every UPDATE checks and bumps this.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    history = relationship(
        "ProjectStatusHistory",
        back_populates="project",
        order_by="ProjectStatusHistory.seq",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("project_number", name="uq_projects_number"),
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_projects_status_enum"),
        CheckConstraint("progress_percentage BETWEEN 0 AND 100", name="ck_projects_progress_range"),
        Index("ix_projects_status", "status"),
    )

    @validates("status")
    def _validate_status(self, key, value):
        return parse_status(value).value

    @property
    def status_enum(self) -> ProjectStatus:
        return ProjectStatus(self.status)
