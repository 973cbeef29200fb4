# assignx/models/auto_approval_timer.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime
from assignx.models.enums import TimerState


class AutoApprovalTimer(Base):
    """
    One row per armed timer instance. Re-delivery arms a fresh row; the old
    row is left disarmed or fired so a late fire of it can be recognised.
    """

    __tablename__ = "auto_approval_timers"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )

    armed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    fire_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)

    state: Mapped[str] = mapped_column(String(16), nullable=False, default=TimerState.armed.value)
    disarm_reason: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_timer_one_armed_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("state = 'armed'"),
            sqlite_where=text("state = 'armed'"),
        ),
        Index("ix_timers_state_fire_at", "state", "fire_at"),
    )
