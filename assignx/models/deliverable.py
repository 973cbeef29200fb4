from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, func, true
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime


class Deliverable(Base):
    """
    Reference to an output artifact (file URL / storage key).

    kind=submission: worker → QC.  kind=delivery: intermediary → client.
    `cycle` counts submissions (or deliveries) per project; older cycles stay
    with is_current=False.
    """

    __tablename__ = "project_deliverables"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    uploaded_by: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="RESTRICT"), nullable=False
    )

    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    ref: Mapped[str] = mapped_column(String(1024), nullable=False)
    cycle: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_current: Mapped[bool] = mapped_column(nullable=False, default=True, server_default=true())

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_deliverables_project_kind", "project_id", "kind", "cycle"),
    )
