from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime


class BlacklistEntry(Base):
    """An intermediary refusing to route work to a given worker."""

    __tablename__ = "intermediary_blacklisted_workers"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    intermediary_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    worker_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("intermediary_id", "worker_id", name="uq_blacklist_pair"),
    )
