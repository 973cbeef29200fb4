#assignx/models/settlement_record.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, JSONType, UTCDateTime


class SettlementRecord(Base):
    """
    Marker row for a released settlement or a refund.

    The (project_id, kind) unique constraint is the guard that makes a second
    settle/refund lose, even when two callers race past the status check.
    """

    __tablename__ = "settlement_records"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False)  # settlement | refund

    triggered_by_status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    # Key amounts stored (paise)
    client_quote: Mapped[int] = mapped_column(BigInteger, nullable=False)
    worker_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    intermediary_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    platform_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    client_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Traceability bundle: ledger entry ids/hashes and the rates applied.
    receipt_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    computed_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("project_id", "kind", name="uq_settlement_project_kind"),
        Index("ix_settlement_computed", "computed_at"),
    )
