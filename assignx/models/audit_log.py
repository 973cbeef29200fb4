from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, JSONType, UTCDateTime


class AuditLogRecord(Base):
    """
    Comprehensive audit trail record.
    - Append-only (never UPDATE)
    - Stores request-id, actor, project, action, payload hash, and safe payload summary.
    """
    __tablename__ = "audit_log_records"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    # Correlation
    request_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    route: Mapped[str] = mapped_column(String(256), nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)

    # Actor / auth context (store participant_id + role as string)
    actor_participant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(64), nullable=False)

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    # What happened
    action: Mapped[str] = mapped_column(String(96), nullable=False)  # e.g., PAYMENT_CAPTURED
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ok")

    # Payload traceability (hash + safe summary)
    payload_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    payload_summary_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Optional result reference ids
    ref_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        Index("ix_audit_project", "project_id"),
        Index("ix_audit_action", "action"),
        Index("ix_audit_created", "created_at"),
    )
