from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, JSONType, UTCDateTime


class IdempotencyKeyRecord(Base):
    """
    Stores response for a POST request with Idempotency-Key header to prevent duplicates.

    Scope is strict:
      (project_id, participant_id, endpoint_key, idem_key) must be unique.
    """
    __tablename__ = "idempotency_key_records"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False)
    participant_id: Mapped[str] = mapped_column(String(128), nullable=False)

    endpoint_key: Mapped[str] = mapped_column(String(256), nullable=False)  # e.g. "POST:/api/v1/projects/<id>/payments/capture"
    idem_key: Mapped[str] = mapped_column(String(128), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    response_status: Mapped[str] = mapped_column(String(16), nullable=False, default="200")
    response_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("project_id", "participant_id", "endpoint_key", "idem_key", name="uq_idem_scope"),
        Index("ix_idem_lookup", "project_id", "participant_id", "endpoint_key"),
    )
