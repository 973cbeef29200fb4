# assignx/models/assignment.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime
from assignx.models.enums import AssignmentState


class Assignment(Base):
    """
    Worker ↔ project binding. Rows are never overwritten: a decline or
    reassignment closes the row and a new one is inserted, so the table is
    the full audit trail of who held the project.
    """

    __tablename__ = "project_assignments"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    worker_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="RESTRICT"), nullable=False
    )
    assigned_by: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="RESTRICT"), nullable=False
    )

    state: Mapped[str] = mapped_column(String(16), nullable=False, default=AssignmentState.active.value)
    end_reason: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    replaced_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    assigned_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    ended_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_assignment_one_active_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("state = 'active'"),
            sqlite_where=text("state = 'active'"),
        ),
        Index("ix_assignments_worker_state", "worker_id", "state"),
    )
