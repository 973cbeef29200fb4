# assignx/models/participant.py
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import String, Index, UniqueConstraint, func, true
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime


class Participant(Base):
    """
    Any account on the platform: client, worker (doer), intermediary
    (supervisor) or admin.
    """

    __tablename__ = "participants"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    role: Mapped[str] = mapped_column(String(32), nullable=False)
    display_name: Mapped[str] = mapped_column(String(256), nullable=False)

    # 🔐 AUTH
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True, server_default=true())

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("username", name="uq_participant_username"),
        Index("ix_participants_role", "role"),
    )
