# assignx/models/worker_profile.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, UniqueConstraint, func, true
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime


class WorkerProfile(Base):
    """
    Worker aggregate holding the only contended mutable state in the system:
    availability and the live assignment count.

    Written exclusively by AssignmentService (conditional UPDATEs).
    """

    __tablename__ = "worker_profiles"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    participant_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )

    is_available: Mapped[bool] = mapped_column(nullable=False, default=True, server_default=true())
    max_concurrent_projects: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    active_assignment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    availability_updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("participant_id", name="uq_worker_profile_participant"),
        CheckConstraint("active_assignment_count >= 0", name="ck_worker_active_nonnegative"),
        CheckConstraint("max_concurrent_projects >= 0", name="ck_worker_max_nonnegative"),
    )
