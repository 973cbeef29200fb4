from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import ForeignKey, Index, String, false, func
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, JSONType, UTCDateTime


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    recipient_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. project.delivered
    payload_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(nullable=False, default=False, server_default=false())

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (Index("ix_notifications_recipient", "recipient_id", "is_read"),)
